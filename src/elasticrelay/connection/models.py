"""节点调度器数据模型定义模块.

提供节点调度相关的数据模型，包括：
- NodeState: 节点状态枚举
- NodeStatus: 单个节点的健康状态快照
- ConnectionConfig: 连接与故障转移配置
"""

from dataclasses import dataclass
from enum import Enum

from .exceptions import ConnectionConfigError


class NodeState(Enum):
    """节点状态枚举.

    Attributes:
        HEALTHY: 健康，正常参与轮询
        SUSPECTED: 可疑，出现过失败但仍参与轮询
        REMOVED: 已移除，在恢复超时之前不参与轮询
    """

    HEALTHY = "healthy"
    SUSPECTED = "suspected"
    REMOVED = "removed"


@dataclass
class NodeStatus:
    """单个节点的健康状态.

    Attributes:
        endpoint: 节点地址
        state: 当前状态
        consecutive_failures: 连续失败次数
        removed_at: 被移除的时间点（单调时钟），未移除时为 None
    """

    endpoint: str
    state: NodeState = NodeState.HEALTHY
    consecutive_failures: int = 0
    removed_at: float | None = None


@dataclass
class ConnectionConfig:
    """连接与故障转移配置模型.

    Attributes:
        max_retries: 服务端错误或传输错误时，最多再尝试的其他节点数，默认 3
        retry_on_timeout: 超时是否转移到其他节点重试，默认 False（超时的写请求可能已生效）
        request_timeout: 单次请求超时时间（秒），默认 30，必须 >= 0
        http_compress: 是否启用 HTTP 压缩，默认 False
        failure_threshold: 连续失败多少次后移除节点，默认 3，必须 >= 1
        resurrect_timeout: 被移除的节点多久后重新尝试（秒），默认 60

    Raises:
        ConnectionConfigError: 当参数不合法时抛出

    Examples:
        >>> config = ConnectionConfig(max_retries=1, request_timeout=10)
    """

    max_retries: int = 3
    retry_on_timeout: bool = False
    request_timeout: float = 30
    http_compress: bool = False
    failure_threshold: int = 3
    resurrect_timeout: float = 60.0

    def __post_init__(self) -> None:
        """校验连接配置参数合法性."""
        if self.max_retries < 0:
            raise ConnectionConfigError(
                f"max_retries 必须 >= 0，当前值: {self.max_retries}"
            )
        if self.request_timeout < 0:
            raise ConnectionConfigError(
                f"request_timeout 必须 >= 0，当前值: {self.request_timeout}"
            )
        if self.failure_threshold < 1:
            raise ConnectionConfigError(
                f"failure_threshold 必须 >= 1，当前值: {self.failure_threshold}"
            )
        if self.resurrect_timeout < 0:
            raise ConnectionConfigError(
                f"resurrect_timeout 必须 >= 0，当前值: {self.resurrect_timeout}"
            )
