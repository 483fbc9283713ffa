"""节点调度器工具模块.

提供 NodeDispatcher 类，在一组固定的集群节点之间轮询分发 HTTP 请求，
统一附加请求头、序列化请求体，并按 HTTP 状态码分类错误。

使用示例:
    from elasticrelay.connection import NodeDispatcher

    with NodeDispatcher(["http://node1:9200", "http://node2:9200"]) as dispatcher:
        body = dispatcher.get("_cluster/health")
"""

from __future__ import annotations

import base64
import dataclasses
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any
from urllib.parse import urlencode

from elastic_transport import (
    BaseNode,
    ConnectionTimeout,
    HttpHeaders,
    JsonSerializer,
    NodeConfig,
    TransportError,
    Urllib3HttpNode,
)
from elastic_transport.client_utils import (
    basic_auth_to_header,
    percent_encode,
    url_to_node_config,
)

from ..core.constants import USER_AGENT, Headers
from ..typing import QueryParams, RequestBody
from .exceptions import (
    ApiResponseError,
    ClientRequestError,
    ConnectionConfigError,
    DispatchError,
    ServerResponseError,
    TransportFailureError,
)
from .health import NodeHealth, NodeHealthTracker
from .models import ConnectionConfig

logger = logging.getLogger(__name__)


class NodeDispatcher:
    """集群节点调度器.

    通过原子计数器对节点列表取模实现轮询，节点集合在实例生命周期内固定。
    候选节点经过 NodeHealth 接口过滤；服务端错误和传输错误会在下一个可用节点上
    重试同一请求，4xx 错误原样抛给调用方。

    Attributes:
        _endpoints: 节点地址元组
        _config: 连接与故障转移配置
        _health: 节点健康状态判断
        _nodes: 按地址缓存的传输节点

    Examples:
        >>> dispatcher = NodeDispatcher(["http://localhost:9200"])
        >>> version = dispatcher.get()
    """

    def __init__(
        self,
        nodes: Sequence[str],
        connection_config: ConnectionConfig | None = None,
        *,
        username: str | None = None,
        password: str | None = None,
        api_key: str | tuple[str, str] | None = None,
        verify_certs: bool = True,
        ca_certs: str | None = None,
        node_class: Callable[[NodeConfig], BaseNode] = Urllib3HttpNode,
        health: NodeHealth | None = None,
    ) -> None:
        """初始化节点调度器.

        Args:
            nodes: 节点地址列表，不可为空
            connection_config: 连接配置，默认使用 ConnectionConfig 的默认值
            username: Basic Auth 用户名
            password: Basic Auth 密码
            api_key: API Key 认证（已编码字符串或 (id, key) 元组）
            verify_certs: 是否校验 TLS 证书，False 时接受任意证书
            ca_certs: CA 证书文件路径
            node_class: 传输节点类（或工厂），默认 Urllib3HttpNode
            health: 节点健康判断，默认按连接配置创建 NodeHealthTracker

        Raises:
            ConnectionConfigError: 当 nodes 为空时抛出
        """
        if not nodes:
            raise ConnectionConfigError("nodes 不能为空，请提供至少一个节点地址")
        self._endpoints: tuple[str, ...] = tuple(nodes)
        self._config = connection_config or ConnectionConfig()
        self._health = health or NodeHealthTracker(
            failure_threshold=self._config.failure_threshold,
            resurrect_timeout=self._config.resurrect_timeout,
        )
        self._counter = 0
        self._counter_lock = threading.Lock()
        self._serializer = JsonSerializer()

        headers = {
            Headers.USER_AGENT: USER_AGENT,
            Headers.CONTENT_TYPE: Headers.JSON_MEDIA_TYPE,
            Headers.ACCEPT: Headers.JSON_MEDIA_TYPE,
        }
        authorization = self._authorization_header(username, password, api_key)
        if authorization:
            headers[Headers.AUTHORIZATION] = authorization

        self._nodes: dict[str, BaseNode] = {
            endpoint: node_class(
                self._build_node_config(endpoint, headers, verify_certs, ca_certs)
            )
            for endpoint in self._endpoints
        }
        logger.info(f"初始化节点调度器: nodes={list(self._endpoints)}")

    @staticmethod
    def _authorization_header(
        username: str | None,
        password: str | None,
        api_key: str | tuple[str, str] | None,
    ) -> str | None:
        """根据认证方式生成 Authorization 头."""
        if username and password:
            return basic_auth_to_header((username, password))
        if api_key:
            if isinstance(api_key, tuple):
                api_key = base64.b64encode(":".join(api_key).encode("utf-8")).decode(
                    "ascii"
                )
            return f"ApiKey {api_key}"
        return None

    def _build_node_config(
        self,
        endpoint: str,
        headers: dict[str, str],
        verify_certs: bool,
        ca_certs: str | None,
    ) -> NodeConfig:
        """根据节点地址创建 NodeConfig."""
        try:
            node_config = url_to_node_config(endpoint, use_default_ports_for_scheme=True)
        except ValueError as e:
            raise ConnectionConfigError(f"节点地址 '{endpoint}' 不合法: {e}") from e

        # URL 中携带的认证信息优先级低于显式配置
        merged = HttpHeaders(node_config.headers)
        merged.update(headers)

        kwargs: dict[str, Any] = {
            "headers": merged,
            "request_timeout": self._config.request_timeout,
            "http_compress": self._config.http_compress,
        }
        # SSL/TLS 配置
        if node_config.scheme == "https":
            kwargs["verify_certs"] = verify_certs
            if not verify_certs:
                kwargs["ssl_show_warn"] = False
            if ca_certs:
                kwargs["ca_certs"] = ca_certs
        return dataclasses.replace(node_config, **kwargs)

    @property
    def endpoints(self) -> tuple[str, ...]:
        """节点地址列表."""
        return self._endpoints

    @property
    def health(self) -> NodeHealth:
        """节点健康状态判断."""
        return self._health

    # ============================================================
    # 节点选择
    # ============================================================

    def _next_index(self) -> int:
        """原子地递增计数器并返回本次的轮询位置.

        计数器从 0 开始，第一次请求固定落在第一个节点上。
        """
        with self._counter_lock:
            index = self._counter % len(self._endpoints)
            self._counter += 1
        return index

    def _select_node(self, exclude: set[str]) -> str:
        """从轮询位置开始选出第一个可用且未尝试过的节点.

        全部节点都不可用时，强制使用轮询位置上第一个未尝试过的节点。
        """
        start = self._next_index()
        count = len(self._endpoints)
        candidates = [
            self._endpoints[(start + offset) % count]
            for offset in range(count)
            if self._endpoints[(start + offset) % count] not in exclude
        ]
        for endpoint in candidates:
            if self._health.is_available(endpoint):
                return endpoint
        endpoint = candidates[0]
        logger.warning(f"没有可用的健康节点，强制使用节点 {endpoint}")
        return endpoint

    # ============================================================
    # 请求构建
    # ============================================================

    @staticmethod
    def _build_target(path: str | None, params: QueryParams) -> str:
        """拼接请求路径和查询参数（按调用顺序）."""
        target = "/"
        if path:
            target += percent_encode(path.lstrip("/"), safe="/,*")
        if params:
            items = params.items() if isinstance(params, Mapping) else params
            query = urlencode([(key, _param_value(value)) for key, value in items])
            target += f"?{query}"
        return target

    def _serialize_body(self, body: RequestBody) -> bytes | None:
        """序列化请求体，字符串原样发送."""
        if body is None:
            return None
        if isinstance(body, bytes):
            return body
        if isinstance(body, str):
            return body.encode("utf-8")
        return self._serializer.dumps(body)

    # ============================================================
    # 请求执行
    # ============================================================

    def call(
        self,
        method: str,
        path: str | None = None,
        body: RequestBody = None,
        params: QueryParams = None,
    ) -> str:
        """向一个节点发送请求并返回响应体文本.

        Args:
            method: HTTP 方法
            path: 相对节点地址的路径，None 表示根路径
            body: 请求体，字典/列表序列化为 JSON，字符串原样发送
            params: 查询参数

        Returns:
            响应体文本（HEAD 请求为空字符串）

        Raises:
            ClientRequestError: 节点返回 4xx
            ServerResponseError: 所有尝试的节点都返回 5xx
            TransportFailureError: 所有尝试的节点都无法连接
        """
        method = method.upper()
        target = self._build_target(path, params)
        payload = self._serialize_body(body)
        attempts = min(self._config.max_retries, len(self._endpoints) - 1) + 1

        tried: set[str] = set()
        last_error: DispatchError | None = None
        last_cause: Exception | None = None

        for attempt in range(attempts):
            endpoint = self._select_node(tried)
            tried.add(endpoint)
            url = f"{endpoint.rstrip('/')}{target}"
            logger.debug(f"调用 {method} {url} (第 {attempt + 1} 次尝试)")

            try:
                response = self._nodes[endpoint].perform_request(
                    method, target, body=payload
                )
            except TransportError as e:
                self._health.mark_failure(endpoint)
                last_error = TransportFailureError(
                    f"{method} {url} 传输失败: {e}", node=endpoint
                )
                last_cause = e
                if isinstance(e, ConnectionTimeout) and not self._config.retry_on_timeout:
                    break
                logger.warning(f"节点 {endpoint} 无法连接: {e}，尝试其他节点")
                continue

            status = response.meta.status
            text = _decode_body(response.body)

            if 200 <= status < 300:
                self._health.mark_success(endpoint)
                logger.debug(f"{method} {url} 返回 {status}")
                return text

            if status >= 500:
                self._health.mark_failure(endpoint)
                logger.warning(
                    f"节点 {endpoint} 服务端错误，尝试其他节点: {status} -> {text}"
                )
                last_error = ServerResponseError(status, text, method, url)
                last_cause = None
                continue

            # 节点本身可用，错误由请求导致
            self._health.mark_success(endpoint)
            logger.debug(f"执行 {method} {url} 出错: {status} -> {text}")
            if 400 <= status < 500:
                raise ClientRequestError(status, text, method, url)
            raise ApiResponseError(status, text, method, url)

        assert last_error is not None
        raise last_error from last_cause

    def head(self, path: str | None = None, params: QueryParams = None) -> str:
        """发送 HEAD 请求."""
        return self.call("HEAD", path, params=params)

    def get(self, path: str | None = None, params: QueryParams = None) -> str:
        """发送 GET 请求."""
        return self.call("GET", path, params=params)

    def post(
        self,
        path: str | None = None,
        body: RequestBody = None,
        params: QueryParams = None,
    ) -> str:
        """发送 POST 请求."""
        return self.call("POST", path, body, params)

    def put(
        self,
        path: str | None = None,
        body: RequestBody = None,
        params: QueryParams = None,
    ) -> str:
        """发送 PUT 请求."""
        return self.call("PUT", path, body, params)

    def delete(
        self,
        path: str | None = None,
        body: RequestBody = None,
        params: QueryParams = None,
    ) -> str:
        """发送 DELETE 请求."""
        return self.call("DELETE", path, body, params)

    # ============================================================
    # 生命周期管理
    # ============================================================

    def __enter__(self) -> NodeDispatcher:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """关闭所有节点的连接池."""
        for endpoint, node in self._nodes.items():
            try:
                node.close()
            except Exception as e:
                logger.warning(f"关闭节点 {endpoint} 连接失败: {e}")


def _param_value(value: Any) -> str:
    """将查询参数值转换为字符串，布尔值使用小写."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _decode_body(body: bytes | None) -> str:
    if not body:
        return ""
    return body.decode("utf-8")
