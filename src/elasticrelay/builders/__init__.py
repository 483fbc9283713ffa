"""构建器模块导出."""

from elasticrelay.builders.dsl import QUERY_COMPILERS, build_search_body, compile_query

__all__ = [
    "compile_query",
    "build_search_body",
    "QUERY_COMPILERS",
]
