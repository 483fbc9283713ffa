"""结果解析器模块.

提供路径式 JSON 读取和搜索响应解析功能.
"""

from elasticrelay.parsers.response import JsonDocument, SearchResponseParser, parse_path
from elasticrelay.parsers.types import SearchHit, SearchResponse, TermsBucket

__all__ = [
    "JsonDocument",
    "SearchResponseParser",
    "parse_path",
    "SearchHit",
    "SearchResponse",
    "TermsBucket",
]
