import hashlib
import socket
import uuid

import uuid6
from snowflake import SnowflakeGenerator


def auto_snowflake_node_id() -> int:
    """基于机器信息自动生成 node_id (0-1023)"""
    mac = uuid.getnode()
    if mac:
        return mac % 1024
    hostname = socket.gethostname()
    return int(hashlib.md5(hostname.encode()).hexdigest(), 16) % 1024


class SnowflakeIDGenerator:
    """Snowflake ID 生成器工具类，所有表的主键都由它生成"""

    def __init__(self, node_id: int):
        if node_id is None:
            raise ValueError("node_id cannot be empty")
        self._generator = SnowflakeGenerator(node_id)

    def generate(self) -> int:
        return next(self._generator)


def uuid7_hex() -> str:
    """时间有序的 UUIDv7 十六进制串，用作 trace_id"""
    return uuid6.uuid7().hex


snowflake_id_generator = SnowflakeIDGenerator(node_id=auto_snowflake_node_id())
