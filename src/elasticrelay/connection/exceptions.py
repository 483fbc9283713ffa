"""节点调度器异常定义模块."""

from __future__ import annotations

from ..exceptions import ConfigError, ElasticRelayError, MalformedJsonError
from ..parsers.response import JsonDocument


class ConnectionConfigError(ConfigError):
    """连接配置校验异常.

    当连接配置参数不合法时抛出，例如 nodes 为空、max_retries 小于 0 等。
    """

    pass


class DispatchError(ElasticRelayError):
    """调度请求基础异常类.

    所有由节点调度器抛出的异常的基类。
    """

    pass


class TransportFailureError(DispatchError):
    """传输层异常.

    连接被拒绝、超时等未能获得任何响应的情况。

    Attributes:
        node: 发生错误的节点地址
    """

    def __init__(self, message: str, node: str | None = None) -> None:
        super().__init__(message)
        self.node = node


class ApiResponseError(DispatchError):
    """节点返回了非 2xx 响应.

    Attributes:
        status_code: HTTP 状态码
        body: 原始响应体文本
        method: 请求方法
        url: 请求地址（含节点）
    """

    def __init__(self, status_code: int, body: str, method: str, url: str) -> None:
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url
        super().__init__(f"{method} {url} 返回 {status_code}: {body}")

    def _error_field(self, path: str) -> str | None:
        try:
            value = JsonDocument.parse(self.body).read_optional(path)
        except MalformedJsonError:
            return None
        return value if isinstance(value, str) else None

    @property
    def error_type(self) -> str | None:
        """结构化错误体中的 error.type，无法解析时为 None."""
        return self._error_field("$.error.type")

    @property
    def error_reason(self) -> str | None:
        """结构化错误体中的 error.reason，无法解析时为 None."""
        return self._error_field("$.error.reason")


class ClientRequestError(ApiResponseError):
    """客户端错误（4xx）.

    请求本身被拒绝。调用方通过状态码和 error_type 区分
    "不存在"、"已存在" 等具体情况。
    """

    @property
    def is_not_found(self) -> bool:
        """是否为 404 Not Found."""
        return self.status_code == 404


class ServerResponseError(ApiResponseError):
    """服务端错误（5xx）."""

    pass
