"""搜索请求数据模型定义模块."""

from __future__ import annotations

from dataclasses import dataclass, field

from .constants import StoreDefaults
from .query import TypedQuery


@dataclass(frozen=True)
class TermsAggregation:
    """Terms 聚合配置.

    Attributes:
        name: 聚合名称
        field: 聚合字段
    """

    name: str
    field: str


@dataclass
class SearchRequest:
    """搜索请求.

    Attributes:
        index: 目标索引，None 表示所有索引
        size: 返回结果数量，None 时使用默认值 10（不写入请求体）
        stored_fields: 需要返回的 stored 字段
        query: 类型化查询
        sort: 排序字段
        highlighters: 需要高亮的字段
        aggregations: Terms 聚合列表

    Examples:
        >>> request = SearchRequest(
        ...     index="docs",
        ...     size=2,
        ...     query=TermQuery("status", "done"),
        ... )
    """

    index: str | None = None
    size: int | None = None
    stored_fields: list[str] = field(default_factory=list)
    query: TypedQuery | None = None
    sort: str | None = None
    highlighters: list[str] = field(default_factory=list)
    aggregations: list[TermsAggregation] = field(default_factory=list)

    @property
    def effective_size(self) -> int:
        """实际期望的结果数量."""
        return self.size if self.size is not None else StoreDefaults.SEARCH_SIZE
