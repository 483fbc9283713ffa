"""节点调度模块 - 在固定的集群节点之间轮询分发请求并分类错误.

主要组件:
    - NodeDispatcher: 节点调度器
    - NodeHealth / NodeHealthTracker: 可插拔的节点健康判断及熔断器实现
    - ConnectionConfig: 连接与故障转移配置
    - NodeState: 节点状态枚举

使用示例:
    from elasticrelay.connection import NodeDispatcher

    dispatcher = NodeDispatcher(["http://localhost:9200"])
    response = dispatcher.get("_cluster/health")
"""

from .exceptions import (
    ApiResponseError,
    ClientRequestError,
    ConnectionConfigError,
    DispatchError,
    ServerResponseError,
    TransportFailureError,
)
from .health import NodeHealth, NodeHealthTracker
from .models import ConnectionConfig, NodeState, NodeStatus
from .tool import NodeDispatcher

__all__ = [
    # 调度器
    "NodeDispatcher",
    # 健康状态
    "NodeHealth",
    "NodeHealthTracker",
    # 模型
    "ConnectionConfig",
    "NodeState",
    "NodeStatus",
    # 异常
    "DispatchError",
    "ConnectionConfigError",
    "TransportFailureError",
    "ApiResponseError",
    "ClientRequestError",
    "ServerResponseError",
]
