"""节点健康状态跟踪模块.

为节点调度器提供可插拔的健康判断接口，以及一个基于熔断器思路的默认实现：

    HEALTHY --失败--> SUSPECTED --连续失败达到阈值--> REMOVED
       ^                  |                             |
       +------成功--------+            超过恢复超时后半开（SUSPECTED）
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from .models import NodeState, NodeStatus

logger = logging.getLogger(__name__)


class NodeHealth(ABC):
    """节点健康判断接口.

    调度器只通过该接口过滤候选节点，不关心具体的故障策略。
    """

    @abstractmethod
    def is_available(self, endpoint: str) -> bool:
        """节点当前是否可以接收请求."""

    @abstractmethod
    def mark_success(self, endpoint: str) -> None:
        """记录一次成功响应."""

    @abstractmethod
    def mark_failure(self, endpoint: str) -> None:
        """记录一次服务端错误或传输错误."""

    @abstractmethod
    def state(self, endpoint: str) -> NodeState:
        """返回节点当前状态."""


class NodeHealthTracker(NodeHealth):
    """基于连续失败次数的节点熔断器.

    Args:
        failure_threshold: 连续失败多少次后移除节点
        resurrect_timeout: 被移除的节点多久后进入半开状态（秒）
        time_source: 可注入的单调时钟，便于测试
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        resurrect_timeout: float = 60.0,
        time_source: Callable[[], float] | None = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.resurrect_timeout = resurrect_timeout
        self._time_source = time_source or time.monotonic
        self._statuses: dict[str, NodeStatus] = {}
        self._lock = threading.Lock()

    def _status(self, endpoint: str) -> NodeStatus:
        """获取节点状态（需持有锁）."""
        status = self._statuses.get(endpoint)
        if status is None:
            status = NodeStatus(endpoint=endpoint)
            self._statuses[endpoint] = status
        return status

    def is_available(self, endpoint: str) -> bool:
        with self._lock:
            status = self._status(endpoint)
            if status.state != NodeState.REMOVED:
                return True
            elapsed = self._time_source() - (status.removed_at or 0.0)
            if elapsed < self.resurrect_timeout:
                return False
            # 半开：允许一次试探请求
            status.state = NodeState.SUSPECTED
            status.removed_at = None
            logger.info(f"节点 {endpoint} 已超过恢复超时，重新尝试")
            return True

    def mark_success(self, endpoint: str) -> None:
        with self._lock:
            status = self._status(endpoint)
            if status.state != NodeState.HEALTHY:
                logger.info(f"节点 {endpoint} 恢复健康")
            status.state = NodeState.HEALTHY
            status.consecutive_failures = 0
            status.removed_at = None

    def mark_failure(self, endpoint: str) -> None:
        with self._lock:
            status = self._status(endpoint)
            status.consecutive_failures += 1
            if status.consecutive_failures >= self.failure_threshold:
                if status.state != NodeState.REMOVED:
                    logger.warning(
                        f"节点 {endpoint} 连续失败 {status.consecutive_failures} 次，"
                        f"暂时移除 {self.resurrect_timeout} 秒"
                    )
                status.state = NodeState.REMOVED
                status.removed_at = self._time_source()
            else:
                status.state = NodeState.SUSPECTED

    def state(self, endpoint: str) -> NodeState:
        with self._lock:
            return self._status(endpoint).state

    def snapshot(self) -> dict[str, NodeStatus]:
        """返回所有已知节点状态的副本."""
        with self._lock:
            return {
                endpoint: NodeStatus(
                    endpoint=status.endpoint,
                    state=status.state,
                    consecutive_failures=status.consecutive_failures,
                    removed_at=status.removed_at,
                )
                for endpoint, status in self._statuses.items()
            }
