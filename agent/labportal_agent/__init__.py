"""Lab Portal Agent - 主机侧服务控制代理。"""
__version__ = "0.1.0"
