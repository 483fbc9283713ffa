"""客户端异常定义模块."""

from ..exceptions import ElasticRelayError


class ClientOperationError(ElasticRelayError):
    """客户端操作基础异常类.

    由调用点根据响应内容判断出的业务错误。
    """

    pass


class IndexAlreadyExistsError(ClientOperationError):
    """索引已存在异常."""

    pass


class IndexNotFoundError(ClientOperationError):
    """索引不存在异常."""

    pass


class DocumentNotFoundError(ClientOperationError):
    """文档不存在异常."""

    pass


class PipelineNotFoundError(ClientOperationError):
    """配置的 ingest pipeline 不存在."""

    pass


class OperationFailedError(ClientOperationError):
    """请求成功返回，但结果字段表明操作未完成.

    例如刷新时有分片失败、删除索引未被确认、删除文档的 result 不是 deleted。
    """

    pass


class MappingNotFoundError(ClientOperationError):
    """映射来源中找不到指定的索引映射."""

    pass


class ClientNotStartedError(ClientOperationError):
    """客户端尚未调用 start()."""

    pass
