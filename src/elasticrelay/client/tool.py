"""文档存储客户端核心工具类."""

from __future__ import annotations

import logging
from typing import Any

from ..builders.dsl import build_search_body
from ..bulk import (
    BulkListener,
    BulkProcessor,
    BulkResult,
    DeleteOperation,
    IndexOperation,
    RetryPolicy,
)
from ..connection import ClientRequestError, DispatchError, NodeDispatcher
from ..core.constants import MappingFiles, StoreDefaults
from ..core.models import SearchRequest
from ..exceptions import ConfigError
from ..parsers import JsonDocument, SearchHit, SearchResponse, SearchResponseParser
from ..typing import JsonDict, RequestBody
from .exceptions import (
    ClientNotStartedError,
    DocumentNotFoundError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    MappingNotFoundError,
    OperationFailedError,
    PipelineNotFoundError,
)
from .mappings import MappingSource
from .models import ClientSettings

logger = logging.getLogger(__name__)


def extract_major_version(version: str) -> str:
    """从版本号中提取主版本号，如 "7.17.3" -> "7"."""
    return version.split(".", 1)[0]


class DocumentStoreClient:
    """文档存储客户端.

    组合节点调度器、批量处理器和响应解析器，提供索引管理、文档读写和搜索功能。
    index()/delete() 进入批量处理器异步写入，*_single() 方法同步执行。

    Args:
        settings: 客户端配置
        mapping_source: 索引映射来源，create_indices() 时使用
        dispatcher: 节点调度器，默认根据配置创建
        retry_policy: 批量条目重试策略，默认根据配置创建
        listener: 批量处理监听器

    示例:
        >>> settings = ClientSettings(nodes=["http://localhost:9200"], index="docs")
        >>> with DocumentStoreClient(settings).start() as client:
        ...     client.index("docs", "1", {"content": "hello"})
        ...     client.flush()
        ...     response = client.search(SearchRequest(index="docs"))
    """

    def __init__(
        self,
        settings: ClientSettings,
        mapping_source: MappingSource | None = None,
        dispatcher: NodeDispatcher | None = None,
        retry_policy: RetryPolicy | None = None,
        listener: BulkListener | None = None,
    ):
        self.settings = settings
        self.mapping_source = mapping_source
        self._dispatcher = dispatcher or NodeDispatcher(
            settings.nodes,
            settings.connection,
            username=settings.username,
            password=settings.password,
            api_key=settings.api_key,
            verify_certs=settings.ssl_verification,
            ca_certs=settings.ca_certs,
        )
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.bulk_max_retries,
            retry_delay=settings.bulk_retry_delay,
        )
        self._listener = listener
        self._parser = SearchResponseParser()
        self._bulk_processor: BulkProcessor | None = None
        self._major_version: str | None = None
        self._closed = False

    @property
    def dispatcher(self) -> NodeDispatcher:
        """节点调度器."""
        return self._dispatcher

    @property
    def major_version(self) -> str | None:
        """集群主版本号，start() 之前为 None."""
        return self._major_version

    # ============================================================
    # 生命周期管理
    # ============================================================

    def start(self) -> DocumentStoreClient:
        """连接集群并启动批量处理器，重复调用不会重复初始化.

        Raises:
            DispatchError: 无法获取集群版本
            PipelineNotFoundError: 配置的 pipeline 不存在
        """
        if self._bulk_processor is not None:
            return self

        try:
            version = self.get_version()
        except DispatchError as e:
            logger.warning(f"无法连接到集群 {self.settings.nodes}: {e}")
            raise
        self._major_version = extract_major_version(version)
        logger.info(f"已连接到集群，节点版本 {version}")

        pipeline = self.settings.pipeline
        if pipeline and not self.is_existing_pipeline(pipeline):
            raise PipelineNotFoundError(f"配置了 pipeline '{pipeline}'，但它不存在")

        self._bulk_processor = BulkProcessor(
            self._dispatcher,
            bulk_actions=self.settings.bulk_size,
            flush_interval=self.settings.flush_interval,
            retry_policy=self._retry_policy,
            listener=self._listener,
        ).start()
        return self

    def close(self) -> None:
        """刷新并关闭批量处理器，然后释放节点连接."""
        if self._closed:
            return
        self._closed = True
        logger.debug("关闭文档存储客户端")
        try:
            if self._bulk_processor is not None:
                self._bulk_processor.close()
        finally:
            self._dispatcher.close()

    def __enter__(self) -> DocumentStoreClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _processor(self) -> BulkProcessor:
        if self._bulk_processor is None:
            raise ClientNotStartedError("客户端尚未启动，请先调用 start()")
        return self._bulk_processor

    # ============================================================
    # 集群与索引管理
    # ============================================================

    def get_version(self) -> str:
        """获取集群版本号."""
        logger.debug("获取集群版本")
        return JsonDocument.parse(self._dispatcher.get()).read("$.version.number", str)

    def create_index(
        self,
        index: str,
        ignore_errors: bool = False,
        settings: RequestBody = None,
    ) -> bool:
        """创建索引并等待其达到 yellow 状态.

        Args:
            index: 索引名称
            ignore_errors: 索引已存在时是否忽略
            settings: 索引 settings/mappings（JSON 文本或字典），None 时发送空对象

        Returns:
            是否新建了索引

        Raises:
            IndexAlreadyExistsError: 索引已存在且 ignore_errors 为 False
            ClientRequestError: 其他 4xx 错误
        """
        logger.debug(f"创建索引 '{index}'")
        try:
            self._dispatcher.put(index, settings if settings is not None else "{}")
        except ClientRequestError as e:
            logger.debug(f"创建索引 '{index}' 的响应: {e}")
            if StoreDefaults.RESOURCE_ALREADY_EXISTS in (e.error_type or ""):
                if ignore_errors:
                    logger.debug(f"索引 '{index}' 已存在，跳过创建")
                    return False
                raise IndexAlreadyExistsError(f"索引 '{index}' 已存在") from e
            raise
        self.wait_for_healthy_index(index)
        logger.info(f"索引 '{index}' 创建成功")
        return True

    def is_existing_index(self, index: str) -> bool:
        """检查索引是否存在."""
        logger.debug(f"检查索引 '{index}' 是否存在")
        return self._exists_path(index)

    def is_existing_pipeline(self, name: str) -> bool:
        """检查 ingest pipeline 是否存在."""
        logger.debug(f"检查 pipeline '{name}' 是否存在")
        return self._exists_path(f"_ingest/pipeline/{name}")

    def _exists_path(self, path: str) -> bool:
        try:
            self._dispatcher.get(path)
        except ClientRequestError as e:
            if e.is_not_found:
                logger.debug(f"{path} 不存在")
                return False
            raise
        return True

    def wait_for_healthy_index(
        self, index: str, timeout: str = StoreDefaults.HEALTH_TIMEOUT
    ) -> str | None:
        """等待索引至少达到 yellow 状态（所有主分片已分配）.

        Returns:
            集群报告的健康状态
        """
        logger.debug(f"等待索引 '{index}' 达到 {StoreDefaults.HEALTH_STATUS} 状态")
        response = self._dispatcher.get(
            f"_cluster/health/{index}",
            params=[("wait_for_status", StoreDefaults.HEALTH_STATUS), ("timeout", timeout)],
        )
        return JsonDocument.parse(response).read_optional("$.status", expected_type=str)

    def refresh(self, index: str | None = None) -> None:
        """刷新索引，index 为 None 时刷新全部索引.

        Raises:
            OperationFailedError: 有分片刷新失败
        """
        logger.debug(f"刷新索引 '{index}'")
        path = f"{index}/_refresh" if index else "_refresh"
        response = self._dispatcher.post(path)
        failed = JsonDocument.parse(response).read("$._shards.failed", int)
        if failed > 0:
            raise OperationFailedError(f"无法刷新索引 {index}: {response}")

    def delete_index(self, index: str) -> None:
        """删除索引，索引不存在时忽略.

        Raises:
            OperationFailedError: 删除请求未被确认
        """
        logger.debug(f"删除索引 '{index}'")
        try:
            response = self._dispatcher.delete(index)
        except ClientRequestError as e:
            if e.is_not_found:
                logger.debug(f"索引 '{index}' 不存在")
                return
            raise
        document = JsonDocument.parse(response)
        if not document.read("$.acknowledged", bool):
            reason = document.read_optional("$.error.reason")
            raise OperationFailedError(f"无法删除索引 {index}: {reason}")
        logger.info(f"索引 '{index}' 已删除")

    def create_indices(self) -> None:
        """按配置创建文档索引和目录索引.

        JSON/XML 内容作为内部对象写入时，文档索引不使用映射文件（由存储动态映射）；
        index_folders 关闭时，目录索引同样不使用映射文件。已存在的索引会被忽略。

        Raises:
            ConfigError: 未配置索引名称
            MappingNotFoundError: 映射来源中没有需要的映射
        """
        settings = self.settings
        if not settings.index:
            raise ConfigError("未配置索引名称，无法创建索引")

        if not settings.add_as_inner_object or not (
            settings.json_support or settings.xml_support
        ):
            self._create_index_from_mapping(MappingFiles.INDEX_SETTINGS, settings.index)
        else:
            self.create_index(settings.index, ignore_errors=True)

        if settings.index_folders:
            self._create_index_from_mapping(
                MappingFiles.INDEX_SETTINGS_FOLDER, settings.index_folder
            )
        else:
            self.create_index(settings.index_folder, ignore_errors=True)

    def _create_index_from_mapping(self, mapping_name: str, index: str) -> None:
        if self._major_version is None:
            raise ClientNotStartedError("客户端尚未启动，无法确定映射版本")
        if self.mapping_source is None:
            raise MappingNotFoundError(f"未配置映射来源，无法读取映射 '{mapping_name}'")
        try:
            index_settings = self.mapping_source.read(self._major_version, mapping_name)
            self.create_index(index, ignore_errors=True, settings=index_settings)
        except Exception:
            logger.warning(f"创建索引 '{index}' 失败")
            raise

    # ============================================================
    # 文档操作
    # ============================================================

    def _document_path(self, index: str, id: str) -> str:
        return f"{index}/{StoreDefaults.DOC_TYPE}/{id}"

    def index(
        self,
        index: str,
        id: str | None,
        document: JsonDict,
        pipeline: str | None = None,
    ) -> None:
        """将文档加入批量处理器."""
        self._processor().add(
            IndexOperation(index, id, body=document, pipeline=pipeline)
        )

    def index_raw_json(
        self,
        index: str,
        id: str | None,
        json_text: str,
        pipeline: str | None = None,
    ) -> None:
        """将已序列化的 JSON 文档加入批量处理器."""
        logger.debug(f"索引 JSON 文档 {index}/{id}")
        self._processor().add(
            IndexOperation(index, id, body=json_text, pipeline=pipeline)
        )

    def index_single(
        self,
        index: str,
        id: str,
        document: JsonDict | str,
        pipeline: str | None = None,
    ) -> str:
        """同步索引单个文档.

        Returns:
            原始响应文本
        """
        logger.debug(f"同步索引文档 {index}/{id}")
        params = {"pipeline": pipeline} if pipeline else None
        return self._dispatcher.put(self._document_path(index, id), document, params)

    def delete(self, index: str, id: str) -> None:
        """将删除操作加入批量处理器."""
        self._processor().add(DeleteOperation(index, id))

    def delete_single(self, index: str, id: str) -> None:
        """同步删除单个文档.

        Raises:
            DocumentNotFoundError: 文档不存在
            OperationFailedError: 响应的 result 不是 deleted
        """
        logger.debug(f"删除文档 {index}/{id}")
        try:
            response = self._dispatcher.delete(self._document_path(index, id))
        except ClientRequestError as e:
            if e.is_not_found:
                logger.debug(f"文档 {index}/{id} 不存在，无法删除")
                raise DocumentNotFoundError(f"文档 {index}/{id} 不存在") from e
            raise
        result = JsonDocument.parse(response).read("$.result", str)
        if result != "deleted":
            raise OperationFailedError(f"无法删除文档 {index}/{id}: {response}")
        logger.debug(f"文档 {index}/{id} 已删除")

    def get(self, index: str, id: str) -> SearchHit:
        """获取单个文档.

        Raises:
            DocumentNotFoundError: 文档不存在
        """
        logger.debug(f"获取文档 {index}/{id}")
        try:
            response = self._dispatcher.get(self._document_path(index, id))
        except ClientRequestError as e:
            if e.is_not_found:
                raise DocumentNotFoundError(f"文档 {index}/{id} 不存在") from e
            raise
        return self._parser.parse_hit(JsonDocument.parse(response))

    def exists(self, index: str, id: str) -> bool:
        """检查文档是否存在."""
        logger.debug(f"检查文档 {index}/{id} 是否存在")
        return self._exists_head(self._document_path(index, id))

    def _exists_head(self, path: str) -> bool:
        try:
            self._dispatcher.head(path)
        except ClientRequestError as e:
            if e.is_not_found:
                return False
            raise
        return True

    # ============================================================
    # 搜索与批量
    # ============================================================

    def search(self, request: SearchRequest) -> SearchResponse:
        """执行搜索.

        Raises:
            IndexNotFoundError: 指定的索引不存在
        """
        path = f"{request.index}/_search" if request.index else "_search"
        body = build_search_body(request)
        logger.debug(f"执行搜索 {path}: {body}")
        try:
            response = self._dispatcher.post(path, body, {"version": True})
        except ClientRequestError as e:
            if e.is_not_found:
                logger.debug(f"索引 {request.index} 不存在")
                raise IndexNotFoundError(f"索引 {request.index} 不存在") from e
            raise
        return self._parser.parse_search(response, request.effective_size)

    def bulk(self, ndjson: str) -> str:
        """直接提交 NDJSON 批量请求，返回原始响应文本."""
        logger.debug(f"提交 {len(ndjson)} 个字符的批量请求")
        return self._dispatcher.post("_bulk", ndjson)

    def flush(self) -> BulkResult | None:
        """立即刷新批量处理器."""
        return self._processor().flush()

    def perform_low_level_request(
        self,
        method: str,
        endpoint: str | None = None,
        body: RequestBody = None,
        params: Any = None,
    ) -> str:
        """发送任意请求并返回原始响应文本."""
        return self._dispatcher.call(method, endpoint, body, params)
