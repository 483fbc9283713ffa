"""核心模块导出."""

from elasticrelay.core.constants import (
    USER_AGENT,
    VERSION,
    Headers,
    MappingFiles,
    StoreDefaults,
)
from elasticrelay.core.models import SearchRequest, TermsAggregation
from elasticrelay.core.query import (
    BoolQuery,
    MatchQuery,
    PrefixQuery,
    QueryKind,
    RangeQuery,
    TermQuery,
    TypedQuery,
)

__all__ = [
    "VERSION",
    "USER_AGENT",
    "Headers",
    "StoreDefaults",
    "MappingFiles",
    "QueryKind",
    "TypedQuery",
    "TermQuery",
    "MatchQuery",
    "PrefixQuery",
    "RangeQuery",
    "BoolQuery",
    "SearchRequest",
    "TermsAggregation",
]
