"""文档存储客户端模块.

该模块提供了面向应用的客户端门面，包括：
- 连接集群、检查版本和 pipeline
- 索引创建、删除、刷新、健康等待
- 文档的批量与同步写入、删除、读取
- 搜索

示例用法:
    >>> from elasticrelay.client import ClientSettings, DocumentStoreClient
    >>> client = DocumentStoreClient(ClientSettings(index="docs")).start()
    >>> client.index("docs", "1", {"content": "hello"})
    >>> client.close()
"""

from .exceptions import (
    ClientNotStartedError,
    ClientOperationError,
    DocumentNotFoundError,
    IndexAlreadyExistsError,
    IndexNotFoundError,
    MappingNotFoundError,
    OperationFailedError,
    PipelineNotFoundError,
)
from .mappings import DirectoryMappingSource, MappingSource, StaticMappingSource
from .models import ClientSettings
from .tool import DocumentStoreClient, extract_major_version

__all__ = [
    "ClientSettings",
    "DocumentStoreClient",
    "extract_major_version",
    "MappingSource",
    "DirectoryMappingSource",
    "StaticMappingSource",
    "ClientOperationError",
    "ClientNotStartedError",
    "DocumentNotFoundError",
    "IndexAlreadyExistsError",
    "IndexNotFoundError",
    "MappingNotFoundError",
    "OperationFailedError",
    "PipelineNotFoundError",
]
