"""客户端配置模型定义模块."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..connection.models import ConnectionConfig
from ..exceptions import ConfigError


@dataclass
class ClientSettings:
    """文档存储客户端配置模型.

    Attributes:
        nodes: 节点地址列表，如 ["http://localhost:9200"]
        username: Basic Auth 用户名
        password: Basic Auth 密码
        api_key: API Key（已编码字符串或 (id, key) 元组）
        ssl_verification: 是否校验 TLS 证书，False 时接受任意证书
        ca_certs: CA 证书文件路径
        bulk_size: 批量处理器的刷新阈值（操作数），默认 100
        flush_interval: 批量处理器的定时刷新间隔（秒），None 表示不定时刷新
        pipeline: 索引文档时使用的 ingest pipeline
        index: 文档索引名称
        index_folder: 目录索引名称，默认为 "<index>_folder"
        add_as_inner_object: JSON/XML 内容是否作为内部对象写入文档
        json_support: 是否解析 JSON 文件内容
        xml_support: 是否解析 XML 文件内容
        index_folders: 是否使用目录映射创建目录索引
        bulk_max_retries: 被拒绝的批量条目最大重试次数
        bulk_retry_delay: 批量条目重试间隔（秒）
        connection: 连接与故障转移配置
    """

    nodes: list[str] = field(default_factory=lambda: ["http://127.0.0.1:9200"])
    username: str | None = None
    password: str | None = None
    api_key: str | tuple[str, str] | None = None
    ssl_verification: bool = True
    ca_certs: str | None = None
    bulk_size: int = 100
    flush_interval: float | None = 5.0
    pipeline: str | None = None
    index: str | None = None
    index_folder: str | None = None
    add_as_inner_object: bool = False
    json_support: bool = False
    xml_support: bool = False
    index_folders: bool = True
    bulk_max_retries: int = 3
    bulk_retry_delay: float = 1.0
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)

    def __post_init__(self):
        """验证配置参数."""
        if isinstance(self.nodes, str):
            self.nodes = [self.nodes]
        if not self.nodes:
            raise ConfigError("nodes 不能为空，请提供至少一个节点地址")
        if self.bulk_size < 1:
            raise ConfigError(f"bulk_size 必须 >= 1，当前值: {self.bulk_size}")
        if self.flush_interval is not None and self.flush_interval <= 0:
            raise ConfigError(
                f"flush_interval 必须 > 0 或为 None，当前值: {self.flush_interval}"
            )
        if self.bulk_max_retries < 0:
            raise ConfigError(f"bulk_max_retries 必须 >= 0，当前值: {self.bulk_max_retries}")
        if self.bulk_retry_delay < 0:
            raise ConfigError(f"bulk_retry_delay 必须 >= 0，当前值: {self.bulk_retry_delay}")
        if (self.username is None) != (self.password is None):
            raise ConfigError("username 和 password 必须同时提供")
        if isinstance(self.api_key, list):
            self.api_key = tuple(self.api_key)
        if self.index_folder is None and self.index:
            self.index_folder = f"{self.index}_folder"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClientSettings:
        """从已解析的配置字典创建配置.

        Args:
            data: 配置字典，嵌套的 "connection" 字典会转换为 ConnectionConfig

        Raises:
            ConfigError: 存在未知字段或字段值不合法
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"未知的配置项: {', '.join(sorted(unknown))}")

        values = dict(data)
        connection = values.get("connection")
        if isinstance(connection, Mapping):
            try:
                values["connection"] = ConnectionConfig(**connection)
            except TypeError as e:
                raise ConfigError(f"connection 配置不合法: {e}") from e
        return cls(**values)
