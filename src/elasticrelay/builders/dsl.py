"""DSL 查询编译模块.

将类型化查询树编译为文档存储的 wire 查询片段，并按固定顺序构建搜索请求体.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from elasticsearch.dsl import Q

from elasticrelay.core.models import SearchRequest
from elasticrelay.core.query import (
    BoolQuery,
    QueryKind,
    RangeQuery,
    TypedQuery,
)
from elasticrelay.exceptions import UnsupportedQueryError

# 模块级别日志记录器
logger = logging.getLogger(__name__)


def _compile_field_value(query: Any) -> dict[str, Any]:
    """编译 term / match / prefix 查询，字段名和值都原样写入.

    使用字典形式构造 Q，关键字参数形式会把字段名中的 "__" 改写为 "."。
    """
    return Q({query.kind.value: {query.field: query.value}}).to_dict()


def _compile_range(query: RangeQuery) -> dict[str, Any]:
    """编译 range 查询，缺失的边界不输出."""
    bounds: dict[str, Any] = {}
    if query.gte is not None:
        bounds["gte"] = query.gte
    if query.lt is not None:
        bounds["lt"] = query.lt
    return {"range": {query.field: bounds}}


def _compile_bool(query: BoolQuery) -> dict[str, Any]:
    """编译 bool 查询.

    Q 在 to_dict 时会丢弃空的 must 列表，这里直接构建以保证 must 始终存在。
    """
    return {"bool": {"must": [compile_query(clause) for clause in query.must]}}


# 查询类型到编译函数的映射，新增类型需要在此登记
QUERY_COMPILERS: dict[QueryKind, Callable[[Any], dict[str, Any]]] = {
    QueryKind.TERM: _compile_field_value,
    QueryKind.MATCH: _compile_field_value,
    QueryKind.PREFIX: _compile_field_value,
    QueryKind.RANGE: _compile_range,
    QueryKind.BOOL: _compile_bool,
}


def compile_query(query: TypedQuery) -> dict[str, Any]:
    """
    将类型化查询编译为 wire 查询片段.

    Args:
        query: 类型化查询

    Returns:
        查询片段，例如 {"term": {"status": "done"}}

    Raises:
        UnsupportedQueryError: 查询类型不在支持的集合中

    示例:
        >>> compile_query(RangeQuery("size", gte=10))
        {'range': {'size': {'gte': 10}}}
    """
    kind = getattr(query, "kind", None)
    compiler = QUERY_COMPILERS.get(kind) if isinstance(kind, QueryKind) else None
    if compiler is None:
        raise UnsupportedQueryError(f"查询类型 {type(query).__name__} 尚未实现")
    return compiler(query)


def build_search_body(request: SearchRequest) -> dict[str, Any]:
    """
    构建搜索请求体.

    按 size、stored_fields、query、sort、highlight、aggs 的固定顺序输出，
    只输出已设置的部分。

    Args:
        request: 搜索请求

    Returns:
        请求体字典（键顺序即输出顺序）
    """
    body: dict[str, Any] = {}

    if request.size is not None:
        body["size"] = request.size
    if request.stored_fields:
        body["stored_fields"] = list(request.stored_fields)
    if request.query is not None:
        body["query"] = compile_query(request.query)
    if request.sort:
        body["sort"] = [request.sort]
    if request.highlighters:
        body["highlight"] = {"fields": {name: {} for name in request.highlighters}}
    if request.aggregations:
        body["aggs"] = {
            agg.name: {"terms": {"field": agg.field}} for agg in request.aggregations
        }

    logger.debug(f"构建搜索请求体: {body}")
    return body
