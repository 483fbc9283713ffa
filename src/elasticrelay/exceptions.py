"""elasticrelay 异常定义模块."""


class ElasticRelayError(Exception):
    """elasticrelay 基础异常类."""

    pass


class ConfigError(ElasticRelayError):
    """配置校验异常."""

    pass


class UnsupportedQueryError(ElasticRelayError):
    """不支持的查询类型异常."""

    pass


class DecodeError(ElasticRelayError):
    """响应解析异常.

    响应体与期望的结构不符时抛出。
    """

    pass


class MalformedJsonError(DecodeError):
    """响应体不是合法的 JSON."""

    pass


class PathNotFoundError(DecodeError):
    """路径在 JSON 文档中不存在.

    Attributes:
        path: 未找到的路径表达式
    """

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"路径 '{path}' 不存在")


class TypeMismatchError(DecodeError):
    """路径对应的值类型与期望不符."""

    pass
