"""批量处理器异常定义模块."""

from ..exceptions import ElasticRelayError


class BulkOperationError(ElasticRelayError):
    """批量操作基础异常类."""

    pass


class BulkProcessingError(BulkOperationError):
    """整个批次提交失败（传输层或服务端错误）."""

    pass


class BulkValidationError(BulkOperationError):
    """批量操作或处理器参数验证异常."""

    pass


class BulkProcessorClosedError(BulkOperationError):
    """处理器关闭后继续添加操作."""

    pass
