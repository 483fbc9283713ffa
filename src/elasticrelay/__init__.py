"""elasticrelay - 面向文档存储集群的 REST 客户端.

这是一个在多个集群节点之间轮询分发请求的 Python 客户端库。

主要功能:
    - NodeDispatcher: 节点轮询、故障转移与错误分类
    - DocumentStoreClient: 索引管理、文档读写、搜索
    - BulkProcessor: 按数量和时间自动刷新的批量写入
    - compile_query / build_search_body: 类型化查询到 JSON DSL 的转换
    - JsonDocument / SearchResponseParser: 按路径解析响应

使用示例:
    from elasticrelay import ClientSettings, DocumentStoreClient, SearchRequest, TermQuery

    client = DocumentStoreClient(ClientSettings(nodes=["http://localhost:9200"]))
    client.start()
    response = client.search(SearchRequest(index="docs", query=TermQuery("tag", "a")))
    client.close()
"""

__version__ = "0.1.0"

# 导出构建器
from elasticrelay.builders import build_search_body, compile_query

# 导出批量处理器
from elasticrelay.bulk import (
    BulkListener,
    BulkProcessor,
    BulkResult,
    DeleteOperation,
    IndexOperation,
    RetryPolicy,
)

# 导出客户端
from elasticrelay.client import (
    ClientSettings,
    DirectoryMappingSource,
    DocumentStoreClient,
    MappingSource,
    StaticMappingSource,
)

# 导出调度器
from elasticrelay.connection import ConnectionConfig, NodeDispatcher, NodeHealthTracker

# 导出核心组件
from elasticrelay.core import (
    BoolQuery,
    MatchQuery,
    PrefixQuery,
    QueryKind,
    RangeQuery,
    SearchRequest,
    TermQuery,
    TermsAggregation,
)

# 导出异常
from elasticrelay.exceptions import (
    ConfigError,
    DecodeError,
    ElasticRelayError,
    MalformedJsonError,
    PathNotFoundError,
    TypeMismatchError,
    UnsupportedQueryError,
)

# 导出解析器
from elasticrelay.parsers import JsonDocument, SearchHit, SearchResponse, SearchResponseParser

__all__ = [
    # 版本
    "__version__",
    # 客户端
    "ClientSettings",
    "DocumentStoreClient",
    "MappingSource",
    "DirectoryMappingSource",
    "StaticMappingSource",
    # 调度器
    "NodeDispatcher",
    "NodeHealthTracker",
    "ConnectionConfig",
    # 批量处理器
    "BulkProcessor",
    "BulkListener",
    "BulkResult",
    "IndexOperation",
    "DeleteOperation",
    "RetryPolicy",
    # 查询
    "QueryKind",
    "TermQuery",
    "MatchQuery",
    "PrefixQuery",
    "RangeQuery",
    "BoolQuery",
    "SearchRequest",
    "TermsAggregation",
    "compile_query",
    "build_search_body",
    # 解析器
    "JsonDocument",
    "SearchResponseParser",
    "SearchHit",
    "SearchResponse",
    # 异常
    "ElasticRelayError",
    "ConfigError",
    "DecodeError",
    "MalformedJsonError",
    "PathNotFoundError",
    "TypeMismatchError",
    "UnsupportedQueryError",
]
