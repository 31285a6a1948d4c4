"""Shared pytest fixtures and fakes."""

import asyncio
import json

import fakeredis
import pytest
import pytest_asyncio

from wademo.cache.redis_client import RedisClient
from wademo.cache.retry_counter import RetryCounterCache
from wademo.config.schema import RedisConfig
from wademo.errors import ConnectionFailure, OperationFailed
from wademo.session.credentials import CredentialStore
from wademo.session.handle import SessionHandle

TRANSIENT_CLOSE = {
    "connection.update": {
        "connection": "close",
        "lastDisconnect": {"error": {"message": "Connection Failure", "output": {"statusCode": 428}}},
    }
}

LOGOUT_CLOSE = {
    "connection.update": {
        "connection": "close",
        "lastDisconnect": {"error": {"message": "Logged Out", "output": {"statusCode": 401}}},
    }
}


@pytest.fixture
def redis_server():
    """A fresh in-memory Redis server per test."""
    return fakeredis.FakeServer()


@pytest.fixture
def make_redis_client(redis_server):
    """Build a RedisClient whose underlying connection is a FakeAsyncRedis."""
    def factory(**config_overrides):
        config = RedisConfig(**config_overrides)
        def client_factory(**kwargs):
            client = fakeredis.FakeAsyncRedis(
                server=redis_server,
                decode_responses=True,
                retry=kwargs["retry"],
                retry_on_error=kwargs["retry_on_error"],
            )
            # fakeredis does not forward retry/retry_on_error to its connection pool
            client.connection_pool.connection_kwargs["retry"] = kwargs["retry"]
            client.connection_pool.connection_kwargs["retry_on_error"] = kwargs["retry_on_error"]
            return client

        return RedisClient(config, client_factory=client_factory)
    return factory


@pytest_asyncio.fixture
async def redis_client(make_redis_client):
    client = make_redis_client()
    await client.connect()
    yield client
    await client.disconnect()


class MemoryCredentialStore(CredentialStore):
    """Credential store that keeps everything in memory and records saves."""

    def __init__(self, creds=None):
        self.creds = dict(creds or {})
        self.saved = []

    async def load(self):
        return dict(self.creds)

    async def save(self, creds):
        self.creds = dict(creds)
        self.saved.append(dict(creds))


class FakeWebSocket:
    """
    In-memory bridge socket. Sent frames are recorded; incoming frames are
    fed by the test. send_error, when set, is raised by every send().
    """

    def __init__(self, send_error=None):
        self.sent = []
        self.closed = False
        self.send_error = send_error
        self._incoming = asyncio.Queue()

    async def send(self, data):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(None)

    def feed(self, frame):
        self._incoming.put_nowait(json.dumps(frame))

    def drop(self):
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self._incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


class FakeHandle(SessionHandle):
    """
    Scripted session handle.

    Each script item is either an event batch (dict) or the string
    "retry:<message id>", which reports a decrypt failure for that message.
    fail names commands that raise OperationFailed, or maps command names
    to the exception to raise.
    """

    def __init__(self, creds, retry_counter, script=(), calls=None, fail=(),
                 connect_error=False, hang=False, pairing_codes=()):
        super().__init__(creds, retry_counter)
        self.script = list(script)
        self.calls = calls if calls is not None else []
        if isinstance(fail, dict):
            self.fail = dict(fail)
        else:
            self.fail = {name: OperationFailed(name, "boom") for name in fail}
        self.connect_error = connect_error
        self.hang = hang
        self.pairing_codes = list(pairing_codes)
        self.closed = False
        self._closed_event = asyncio.Event()

    async def connect(self):
        if self.connect_error:
            raise ConnectionFailure("bridge unreachable")

    async def close(self):
        self.closed = True
        self._closed_event.set()

    async def events(self):
        for item in self.script:
            if self.closed:
                return
            if isinstance(item, str) and item.startswith("retry:"):
                self.retry_counter.increment(item.split(":", 1)[1])
                continue
            yield item
        if self.hang:
            await self._closed_event.wait()

    async def _record(self, name, *args, result=None):
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]
        return result

    async def send_message(self, jid, content):
        return await self._record("sendMessage", jid, content)

    async def send_presence_update(self, presence, jid):
        await self._record("sendPresenceUpdate", presence, jid)

    async def presence_subscribe(self, jid):
        await self._record("presenceSubscribe", jid)

    async def read_messages(self, keys):
        await self._record("readMessages", keys)

    async def request_pairing_code(self, phone_number):
        code = self.pairing_codes.pop(0) if self.pairing_codes else "ABCD1234"
        return await self._record("requestPairingCode", phone_number, result=code)

    async def request_placeholder_resend(self, key):
        return await self._record("requestPlaceholderResend", key, result="PH-1")

    async def fetch_message_history(self, count, oldest_key, oldest_timestamp):
        return await self._record("fetchMessageHistory", count, oldest_key, oldest_timestamp, result="HIST-1")

    async def profile_picture_url(self, jid):
        return await self._record("profilePictureUrl", jid, result=f"https://pps.example/{jid}.jpg")


class ScriptedHandleFactory:
    """
    Creates one FakeHandle per session. sessions[i] holds the keyword
    arguments for the i-th handle; sessions beyond the list get an empty
    script (the event stream ends immediately).
    """

    def __init__(self, *sessions, calls=None):
        self.sessions = list(sessions)
        self.calls = calls if calls is not None else []
        self.handles = []

    def __call__(self, creds, retry_counter):
        options = self.sessions[len(self.handles)] if len(self.handles) < len(self.sessions) else {}
        handle = FakeHandle(creds, retry_counter, calls=self.calls, **options)
        self.handles.append(handle)
        return handle


@pytest.fixture
def retry_counter():
    return RetryCounterCache(max_entries=100, max_age=0)
