"""
CLI 命令模块 - wademo 的所有命令行命令定义。

本模块使用 Typer 框架定义 wademo 的 CLI 命令体系：
- onboard：生成默认配置文件
- start：连接 Redis 与桥接服务，运行会话生命周期（断线自动重启）
- status：查看当前生效的配置
- cache：Redis 缓存工具（演示全部操作、读取 key、查看待用的配对码）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
- loguru：运行时日志（终端 + 可选日志文件）
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from wademo import __logo__, __version__

app = typer.Typer(
    name="wademo",
    help=f"{__logo__} wademo - WhatsApp multi-device demo client",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} wademo v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """wademo CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


def configure_logging(level: str, log_file: str = "") -> None:
    """
    配置 loguru 输出目标。

    参数:
        level: 日志级别（DEBUG/INFO/WARNING/...）
        log_file: 额外的日志文件路径，为空时只输出到终端
    """
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        logger.add(Path(log_file).expanduser(), level=level, rotation="10 MB")


# ============================================================================
# Onboard / Status
# ============================================================================


@app.command()
def onboard():
    """在 ~/.wademo/ 下生成默认配置文件 config.json。"""
    from wademo.config.loader import get_config_path, save_config
    from wademo.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} wademo is ready!")
    console.print("\nNext steps:")
    console.print("  1. Start the WhatsApp bridge (it listens on [cyan]ws://localhost:3001[/cyan] by default)")
    console.print("  2. Run: [cyan]wademo start[/cyan]  (or [cyan]wademo start --use-pairing-code --phone 15551234567[/cyan])")


@app.command()
def status():
    """显示当前生效的配置（配置文件 + WADEMO_ 环境变量）。"""
    from wademo.config.loader import get_config_path, load_config

    config = load_config()
    config_path = get_config_path()

    console.print(f"{__logo__} wademo status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    creds_file = config.auth_path / "creds.json"
    console.print(f"Credentials: {creds_file} {'[green]✓[/green]' if creds_file.exists() else '[dim]not paired[/dim]'}")

    table = Table(title="Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Setting", style="green")
    table.add_column("Value", style="yellow")

    redis_cfg = config.redis
    table.add_row("Redis", "endpoint", f"{redis_cfg.host}:{redis_cfg.port}/{redis_cfg.db}")
    table.add_row("", "max retries", str(redis_cfg.max_retries))
    table.add_row("Bridge", "url", config.bridge.url)
    table.add_row("", "auth dir", str(config.auth_path))
    table.add_row("Features", "auto reply", "✓" if config.features.do_reply else "✗")
    table.add_row("", "pairing code", "✓" if config.features.use_pairing_code else "✗")
    table.add_row("Session", "restart delay", f"{config.session.restart_delay}s")
    max_restarts = config.session.max_restarts
    table.add_row("", "max restarts", str(max_restarts) if max_restarts else "unlimited")
    table.add_row("Logging", "level", config.logging.level)

    console.print(table)


# ============================================================================
# Session
# ============================================================================


@app.command()
def start(
    do_reply: bool = typer.Option(False, "--do-reply", help="Auto-reply to incoming messages"),
    use_pairing_code: bool = typer.Option(False, "--use-pairing-code", help="Log in with a pairing code instead of a QR code"),
    phone: str = typer.Option("", "--phone", help="Phone number for pairing (digits with country code)"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """
    启动会话（核心启动命令）。

    执行流程：
    1. 加载配置，命令行开关覆盖配置文件中的功能开关
    2. 连接 Redis（失败时继续运行，只是配对码不会被缓存）
    3. 创建 SessionController 并进入监督循环
    4. 登出时提示删除凭证目录后重新配对
    """
    from wademo.cache.redis_client import RedisClient
    from wademo.cache.retry_counter import RetryCounterCache
    from wademo.config.loader import load_config
    from wademo.errors import ConnectionFailure, ProtocolTerminal
    from wademo.session.controller import SessionController
    from wademo.session.credentials import FileCredentialStore
    from wademo.session.handle import BridgeSession

    config = load_config()
    configure_logging("DEBUG" if verbose else config.logging.level, config.logging.file)

    features = config.features.model_copy(update={
        "do_reply": do_reply or config.features.do_reply,
        "use_pairing_code": use_pairing_code or config.features.use_pairing_code,
    })
    phone_number = phone or config.session.phone_number
    if features.use_pairing_code and not phone_number:
        phone_number = typer.prompt("Please enter your phone number")
    session_config = config.session.model_copy(update={"phone_number": phone_number})

    console.print(f"{__logo__} Starting wademo (bridge {config.bridge.url})...")
    if features.do_reply:
        console.print("[green]✓[/green] Auto-reply enabled")
    if features.use_pairing_code:
        console.print(f"[green]✓[/green] Pairing code login for {phone_number}")

    # 保存在会话句柄之外，避免跨重启的解密重试死循环
    retry_counter = RetryCounterCache(
        max_entries=session_config.retry_counter_max_entries,
        max_age=session_config.retry_counter_max_age,
    )

    async def run():
        cache = RedisClient(config.redis)
        try:
            await cache.connect()
        except ConnectionFailure as e:
            console.print(f"[yellow]Warning: Redis unavailable, pairing codes will not be cached ({e})[/yellow]")

        controller = SessionController(
            handle_factory=lambda creds, counter: BridgeSession(config.bridge, creds, counter),
            credentials=FileCredentialStore(config.auth_path),
            retry_counter=retry_counter,
            cache=cache,
            features=features,
            session_config=session_config,
        )
        try:
            await controller.run()
        except ProtocolTerminal:
            console.print("[red]Connection closed. You are logged out.[/red]")
            console.print(f"Delete [cyan]{config.auth_path}[/cyan] and start again to pair a new device.")
            raise typer.Exit(1)
        except ConnectionFailure as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
        finally:
            await controller.stop()
            await cache.disconnect()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Cache Commands
# ============================================================================


cache_app = typer.Typer(help="Inspect the Redis cache")
app.add_typer(cache_app, name="cache")


def _run_with_cache(action: Callable[[Any], Awaitable[None]]) -> None:
    """连接 Redis，执行 action(client)，最后关闭连接。连接失败时退出码为 1。"""
    from wademo.cache.redis_client import RedisClient
    from wademo.config.loader import load_config
    from wademo.errors import ConnectionFailure

    config = load_config()
    configure_logging(config.logging.level, config.logging.file)

    async def run():
        client = RedisClient(config.redis)
        try:
            await client.connect()
            await action(client)
        except ConnectionFailure as e:
            console.print(f"[red]Cannot reach Redis at {config.redis.host}:{config.redis.port}: {e.cause}[/red]")
            raise typer.Exit(1)
        finally:
            await client.disconnect()

    asyncio.run(run())


@cache_app.command("get")
def cache_get(key: str = typer.Argument(..., help="Key to read")):
    """读取一个 key 的值和剩余过期时间。"""
    async def action(client):
        if not await client.exists(key):
            console.print(f"[yellow]{key} does not exist[/yellow]")
            return
        value = await client.get(key)
        ttl = await client.ttl(key)
        console.print(f"[cyan]{key}[/cyan] = {value!r}")
        console.print(f"[dim]ttl: {'no expiry' if ttl == -1 else f'{ttl}s'}[/dim]")

    _run_with_cache(action)


@cache_app.command("pairing")
def cache_pairing(phone: str = typer.Argument(..., help="Phone number the code was issued for")):
    """查看某个手机号当前有效的配对码。"""
    from wademo.session.controller import pairing_cache_key

    async def action(client):
        key = pairing_cache_key(phone)
        code = await client.get(key)
        if code is None:
            console.print(f"[yellow]No pending pairing code for {phone}[/yellow]")
            return
        ttl = await client.ttl(key)
        console.print(f"Pairing code for {phone}: [bold green]{code}[/bold green] (expires in {ttl}s)")

    _run_with_cache(action)


@cache_app.command("demo")
def cache_demo():
    """
    依次演示缓存客户端的全部操作。

    写入的 key 都以 demo: 开头，演示结束时全部删除。
    """
    async def action(client):
        def step(title: str, result: Any = None) -> None:
            console.print(f"[green]✓[/green] {title}" + (f": {result!r}" if result is not None else ""))

        await client.set("demo:user:name", "John Doe")
        step("get demo:user:name", await client.get("demo:user:name"))

        await client.set("demo:session:token", "abc123xyz", ttl=30)
        step("ttl demo:session:token", await client.ttl("demo:session:token"))

        user = {"id": 123, "name": "John Doe", "email": "john@example.com", "age": 30}
        await client.set("demo:user:123", user)
        step("get demo:user:123", await client.get("demo:user:123"))
        step("exists demo:user:123", await client.exists("demo:user:123"))

        counters = {
            "demo:counter:page_views": 1000,
            "demo:counter:user_logins": 500,
            "demo:counter:api_calls": 5000,
        }
        await client.mset(counters)
        step("mget counters", await client.mget(list(counters)))
        step("incr page_views by 100", await client.incr("demo:counter:page_views", 100))
        step("decr user_logins by 10", await client.decr("demo:counter:user_logins", 10))
        step("keys demo:counter:*", sorted(await client.keys("demo:counter:*")))

        step("delete demo:session:token", await client.delete("demo:session:token"))
        step("delete counters", await client.delete(list(counters)))
        step("expire demo:user:123 in 60s", await client.expire("demo:user:123", 60))

        await client.delete(["demo:user:name", "demo:user:123"])
        console.print(f"\n{__logo__} All cache operations completed")

    _run_with_cache(action)
