"""wademo 命令行接口模块。"""
