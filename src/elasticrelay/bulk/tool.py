"""批量处理器核心工具类."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from elastic_transport import NdjsonSerializer

from ..connection.exceptions import DispatchError
from ..exceptions import DecodeError
from ..parsers.response import JsonDocument
from .exceptions import (
    BulkProcessingError,
    BulkProcessorClosedError,
    BulkValidationError,
)
from .models import (
    BulkErrorItem,
    BulkListener,
    BulkOperation,
    BulkResult,
    RetryPolicy,
)

if TYPE_CHECKING:
    from ..connection.tool import NodeDispatcher

logger = logging.getLogger(__name__)


def to_ndjson(operations: Iterable[BulkOperation]) -> bytes:
    """将批量操作序列化为 _bulk 请求体（每行一个 JSON，末尾带换行）."""
    lines: list[Any] = []
    for operation in operations:
        lines.extend(operation.to_bulk_lines())
    return NdjsonSerializer().dumps(lines)


class BulkProcessor:
    """批量处理器.

    缓存索引/删除操作，在以下任一条件满足时提交一次 _bulk 请求：
    - 缓存的操作数达到 bulk_actions
    - 距上次刷新已超过 flush_interval 秒（后台定时线程）
    - 显式调用 flush() 或 close()

    批次按提交顺序串行发送。被拒绝的条目（默认 es_rejected_execution_exception）
    按 RetryPolicy 单独重新提交，其余失败条目记录到 BulkResult.errors。

    Args:
        dispatcher: 节点调度器
        bulk_actions: 触发刷新的操作数阈值，默认为 100
        flush_interval: 定时刷新间隔（秒），None 表示禁用定时刷新，默认为 5.0
        retry_policy: 条目重试策略，默认 RetryPolicy()
        listener: 批量处理监听器
        time_source: 可注入的单调时钟，便于测试

    示例:
        >>> with BulkProcessor(dispatcher, bulk_actions=500) as processor:
        ...     processor.add(IndexOperation("users", "1", {"name": "Alice"}))
    """

    def __init__(
        self,
        dispatcher: NodeDispatcher,
        bulk_actions: int = 100,
        flush_interval: float | None = 5.0,
        retry_policy: RetryPolicy | None = None,
        listener: BulkListener | None = None,
        time_source: Callable[[], float] | None = None,
    ):
        if bulk_actions < 1:
            raise BulkValidationError(f"bulk_actions 必须 >= 1，当前值: {bulk_actions}")
        if flush_interval is not None and flush_interval <= 0:
            raise BulkValidationError(
                f"flush_interval 必须 > 0 或为 None，当前值: {flush_interval}"
            )

        self.dispatcher = dispatcher
        self.bulk_actions = bulk_actions
        self.flush_interval = flush_interval
        self.retry_policy = retry_policy or RetryPolicy()
        self.listener = listener or BulkListener()
        self._time_source = time_source or time.monotonic

        self._queue: list[BulkOperation] = []
        self._lock = threading.Lock()
        # 保证批次按顺序串行提交
        self._flush_lock = threading.Lock()
        self._closed = threading.Event()
        self._execution_id = 0
        self._last_flush = self._time_source()
        self._thread: threading.Thread | None = None

        logger.info(
            f"初始化批量处理器: bulk_actions={bulk_actions}, "
            f"flush_interval={flush_interval}, "
            f"max_retries={self.retry_policy.max_retries}"
        )

    # ============================================================
    # 生命周期管理
    # ============================================================

    def start(self) -> BulkProcessor:
        """启动定时刷新线程（flush_interval 为 None 时不启动）."""
        if self._closed.is_set():
            raise BulkProcessorClosedError("批量处理器已关闭，无法启动")
        if self.flush_interval is not None and self._thread is None:
            self._thread = threading.Thread(
                target=self._flush_worker,
                name="elasticrelay-bulk-flush",
                daemon=True,
            )
            self._thread.start()
        return self

    def close(self, timeout: float | None = None) -> BulkResult | None:
        """停止定时线程并刷新剩余操作.

        重复调用是安全的，只有第一次会刷新。

        Args:
            timeout: 等待定时线程退出的时间（秒）

        Returns:
            最后一次刷新的结果，没有剩余操作时为 None
        """
        with self._lock:
            if self._closed.is_set():
                return None
            self._closed.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        result = self.flush()
        logger.info("批量处理器已关闭")
        return result

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        """当前缓存的操作数."""
        with self._lock:
            return len(self._queue)

    def __enter__(self) -> BulkProcessor:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ============================================================
    # 添加与刷新
    # ============================================================

    def add(self, operation: BulkOperation) -> None:
        """添加一个操作，缓存达到阈值时同步刷新.

        Raises:
            BulkProcessorClosedError: 处理器已关闭
            BulkProcessingError: 触发的刷新整体失败
        """
        with self._lock:
            if self._closed.is_set():
                raise BulkProcessorClosedError(
                    f"批量处理器已关闭，无法添加操作: {operation.index}/{operation.id}"
                )
            self._queue.append(operation)
            should_flush = len(self._queue) >= self.bulk_actions
        if should_flush:
            self.flush()

    def add_all(self, operations: Iterable[BulkOperation]) -> None:
        """依次添加多个操作."""
        for operation in operations:
            self.add(operation)

    def flush(self) -> BulkResult | None:
        """提交当前缓存的全部操作.

        Returns:
            本次刷新的结果，缓存为空时返回 None（不发送请求）

        Raises:
            BulkProcessingError: 整个批次提交失败
        """
        with self._flush_lock:
            with self._lock:
                self._last_flush = self._time_source()
                if not self._queue:
                    return None
                operations = self._queue
                self._queue = []
                self._execution_id += 1
                execution_id = self._execution_id
            return self._execute(execution_id, operations)

    def _flush_worker(self) -> None:
        """定时刷新线程."""
        assert self.flush_interval is not None
        while True:
            with self._lock:
                deadline = self._last_flush + self.flush_interval
            timeout = max(0.0, deadline - self._time_source())
            if self._closed.wait(timeout):
                return
            with self._lock:
                due = self._time_source() - self._last_flush >= self.flush_interval
            if not due:
                continue
            try:
                self.flush()
            except Exception as e:
                # 监听器已收到 on_failure 通知，定时线程继续运行
                logger.error(f"定时刷新失败: {e}")

    # ============================================================
    # 批次执行
    # ============================================================

    def _execute(
        self, execution_id: int, operations: list[BulkOperation]
    ) -> BulkResult:
        """提交一个批次，并按重试策略重新提交被拒绝的条目."""
        self.listener.before_bulk(execution_id, operations)
        logger.debug(f"提交批次 {execution_id}: {len(operations)} 个操作")

        start_time = time.time()
        result = BulkResult(total=len(operations))
        pending = list(operations)
        attempt = 0

        try:
            while pending:
                response_text = self.dispatcher.post("_bulk", to_ndjson(pending))
                failures = self._collect_failures(pending, response_text)
                result.success += len(pending) - len(failures)

                retryable: list[BulkOperation] = []
                for operation, error in failures:
                    if self.retry_policy.should_retry(attempt, error.error_type):
                        retryable.append(operation)
                    else:
                        result.failed += 1
                        result.errors.append(error)

                pending = retryable
                if pending:
                    attempt += 1
                    result.retried += len(pending)
                    delay = self.retry_policy.get_delay(attempt)
                    logger.warning(
                        f"批次 {execution_id} 有 {len(pending)} 个操作被拒绝，"
                        f"{delay} 秒后第 {attempt} 次重试"
                    )
                    time.sleep(delay)
        except (DispatchError, DecodeError) as e:
            logger.error(f"批次 {execution_id} 提交失败: {e}")
            self.listener.on_failure(execution_id, operations, e)
            raise BulkProcessingError(f"批次 {execution_id} 提交失败: {e}") from e

        result.took = time.time() - start_time
        if result.failed:
            logger.error(
                f"批次 {execution_id} 完成: 成功 {result.success}, "
                f"失败 {result.failed}\n{result.get_error_summary()}"
            )
        else:
            logger.info(
                f"批次 {execution_id} 完成: 成功 {result.success}, "
                f"重试 {result.retried}, 耗时 {result.took:.2f}s"
            )
        self.listener.after_bulk(execution_id, result)
        return result

    @staticmethod
    def _collect_failures(
        operations: list[BulkOperation], response_text: str
    ) -> list[tuple[BulkOperation, BulkErrorItem]]:
        """从 _bulk 响应中找出失败的条目，响应条目与请求按顺序一一对应."""
        document = JsonDocument.parse(response_text)
        if not document.read_optional("$.errors", default=False, expected_type=bool):
            return []

        items = document.read("$.items", list)
        if len(items) != len(operations):
            raise DecodeError(
                f"批量响应条目数 {len(items)} 与请求操作数 {len(operations)} 不一致"
            )

        failures: list[tuple[BulkOperation, BulkErrorItem]] = []
        for operation, item in zip(operations, items):
            # 每个条目形如 {"index": {...}} 或 {"delete": {...}}
            item_result = next(iter(item.values()), {}) if isinstance(item, dict) else {}
            error = item_result.get("error")
            if not error:
                continue
            if isinstance(error, dict):
                error_type = error.get("type", "unknown")
                error_reason = error.get("reason", "")
            else:
                error_type, error_reason = "unknown", str(error)
            failures.append(
                (
                    operation,
                    BulkErrorItem(
                        index=item_result.get("_index", operation.index),
                        id=item_result.get("_id", operation.id),
                        action=operation.action,
                        status=item_result.get("status", 0),
                        error_type=error_type,
                        error_reason=error_reason,
                    ),
                )
            )
        return failures
