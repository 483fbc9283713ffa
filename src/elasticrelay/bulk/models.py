"""批量处理器数据模型定义模块."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from ..core.constants import StoreDefaults
from .exceptions import BulkValidationError


class BulkAction(Enum):
    """批量操作类型枚举."""

    INDEX = "index"
    DELETE = "delete"


@dataclass(frozen=True)
class BulkOperation:
    """批量操作项基类.

    创建后不可修改，刷新时被处理器消费。

    Attributes:
        index: 索引名称
        id: 文档ID
    """

    action: ClassVar[BulkAction]

    index: str
    id: str | None

    def _metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"_index": self.index}
        if self.id is not None:
            metadata["_id"] = self.id
        return metadata

    def to_bulk_lines(self) -> list[Any]:
        """转换为 NDJSON 行（字典会被序列化，字符串原样写入）."""
        return [{self.action.value: self._metadata()}]


@dataclass(frozen=True)
class IndexOperation(BulkOperation):
    """索引文档操作.

    Attributes:
        body: 文档内容，字典或已序列化的 JSON 文本
        pipeline: ingest pipeline 名称（可选）
    """

    action: ClassVar[BulkAction] = BulkAction.INDEX

    body: dict[str, Any] | str = field(default_factory=dict)
    pipeline: str | None = None

    def _metadata(self) -> dict[str, Any]:
        metadata = super()._metadata()
        if self.pipeline:
            metadata["pipeline"] = self.pipeline
        return metadata

    def to_bulk_lines(self) -> list[Any]:
        body = self.body
        # 多行 JSON 文本会破坏 NDJSON 格式，需要重新序列化为单行
        if isinstance(body, str) and "\n" in body:
            try:
                body = json.loads(body)
            except ValueError as e:
                raise BulkValidationError(
                    f"文档 {self.index}/{self.id} 不是合法的 JSON: {e}"
                ) from e
        return [*super().to_bulk_lines(), body]


@dataclass(frozen=True)
class DeleteOperation(BulkOperation):
    """删除文档操作."""

    action: ClassVar[BulkAction] = BulkAction.DELETE

    def __post_init__(self) -> None:
        if not self.id:
            raise BulkValidationError(f"删除索引 '{self.index}' 中的文档需要提供文档ID")


@dataclass
class BulkErrorItem:
    """批量操作错误项数据类.

    Attributes:
        index: 索引名称
        id: 文档ID
        action: 失败的操作类型
        status: HTTP状态码
        error_type: 错误类型
        error_reason: 错误原因
    """

    index: str
    id: str | None
    action: BulkAction
    status: int
    error_type: str
    error_reason: str


@dataclass
class BulkResult:
    """批量刷新结果数据类.

    Attributes:
        total: 本次刷新的操作数
        success: 成功数
        failed: 最终失败数（含重试耗尽）
        retried: 被重新提交的操作次数
        errors: 错误详情列表
        took: 总耗时（秒）
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    retried: int = 0
    errors: list[BulkErrorItem] = field(default_factory=list)
    took: float = 0.0

    def is_success(self) -> bool:
        """判断操作是否全部成功."""
        return self.failed == 0

    def get_error_summary(self) -> str:
        """获取错误摘要."""
        if not self.errors:
            return "No errors"
        summary = f"Total errors: {len(self.errors)}\n"
        for i, error in enumerate(self.errors[:10], 1):  # 只显示前10个错误
            summary += (
                f"{i}. [{error.action.value}] "
                f"Index: {error.index}, DocID: {error.id}, "
                f"Status: {error.status}, Type: {error.error_type}, "
                f"Reason: {error.error_reason}\n"
            )
        if len(self.errors) > 10:
            summary += f"... and {len(self.errors) - 10} more errors\n"
        return summary


@dataclass
class RetryPolicy:
    """批量条目重试策略.

    只有错误类型在 retryable_errors 中的条目会被单独重新提交。

    Attributes:
        max_retries: 最大重试次数，默认 3
        retry_delay: 首次重试前的等待时间（秒），默认 1.0
        backoff_factor: 每次重试等待时间的倍数，默认 1.0（固定间隔）
        retryable_errors: 可重试的错误类型
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 1.0
    retryable_errors: frozenset[str] = frozenset({StoreDefaults.REJECTED_EXECUTION})

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise BulkValidationError(f"max_retries 必须 >= 0，当前值: {self.max_retries}")
        if self.retry_delay < 0:
            raise BulkValidationError(f"retry_delay 必须 >= 0，当前值: {self.retry_delay}")
        self.retryable_errors = frozenset(self.retryable_errors)

    def should_retry(self, attempt: int, error_type: str) -> bool:
        """第 attempt 次（从 0 开始）失败后是否重试."""
        return attempt < self.max_retries and error_type in self.retryable_errors

    def get_delay(self, attempt: int) -> float:
        """第 attempt 次（从 1 开始）重试前的等待时间."""
        return self.retry_delay * (self.backoff_factor ** max(attempt - 1, 0))


class BulkListener:
    """批量处理监听器.

    默认实现不做任何事，按需覆盖。
    """

    def before_bulk(self, execution_id: int, operations: list[BulkOperation]) -> None:
        """批次提交前调用."""

    def after_bulk(self, execution_id: int, result: BulkResult) -> None:
        """批次完成后调用（包括部分条目最终失败的情况）."""

    def on_failure(
        self,
        execution_id: int,
        operations: list[BulkOperation],
        error: Exception,
    ) -> None:
        """整个批次提交失败时调用."""
