"""批量处理器模块.

该模块提供了按数量阈值和时间间隔自动刷新的批量写入功能，包括：
- 索引、删除操作缓存
- 后台定时刷新
- 被拒绝条目的重试
- 批次监听回调

示例用法:
    >>> from elasticrelay.bulk import BulkProcessor, IndexOperation
    >>> with BulkProcessor(dispatcher, bulk_actions=100) as processor:
    ...     processor.add(IndexOperation("users", "1", {"name": "Alice"}))
"""

from .models import (
    BulkAction,
    BulkErrorItem,
    BulkListener,
    BulkOperation,
    BulkResult,
    DeleteOperation,
    IndexOperation,
    RetryPolicy,
)
from .tool import BulkProcessor, to_ndjson
from .exceptions import (
    BulkOperationError,
    BulkProcessingError,
    BulkProcessorClosedError,
    BulkValidationError,
)

__all__ = [
    "BulkAction",
    "BulkErrorItem",
    "BulkListener",
    "BulkOperation",
    "BulkResult",
    "DeleteOperation",
    "IndexOperation",
    "RetryPolicy",
    "BulkProcessor",
    "to_ndjson",
    "BulkOperationError",
    "BulkProcessingError",
    "BulkProcessorClosedError",
    "BulkValidationError",
]
