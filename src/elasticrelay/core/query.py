"""类型化查询模块.

用一组不可变数据类表示查询树，每种查询通过 kind 标识自身类型。
编译器按 kind 查表生成 wire 查询，不支持的类型直接报错。

使用示例:
    query = BoolQuery(must=[
        TermQuery("status", "done"),
        RangeQuery("size", gte=10, lt=100),
    ])
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar


class QueryKind(str, Enum):
    """支持的查询类型."""

    TERM = "term"
    MATCH = "match"
    PREFIX = "prefix"
    RANGE = "range"
    BOOL = "bool"


@dataclass(frozen=True)
class TypedQuery:
    """类型化查询基类."""

    kind: ClassVar[QueryKind | None] = None


@dataclass(frozen=True)
class TermQuery(TypedQuery):
    """精确匹配查询.

    Attributes:
        field: 字段名
        value: 字段值，原样写入查询，不做转义
    """

    kind: ClassVar[QueryKind] = QueryKind.TERM

    field: str
    value: str


@dataclass(frozen=True)
class MatchQuery(TypedQuery):
    """全文匹配查询."""

    kind: ClassVar[QueryKind] = QueryKind.MATCH

    field: str
    value: str


@dataclass(frozen=True)
class PrefixQuery(TypedQuery):
    """前缀查询."""

    kind: ClassVar[QueryKind] = QueryKind.PREFIX

    field: str
    value: str


@dataclass(frozen=True)
class RangeQuery(TypedQuery):
    """范围查询.

    Attributes:
        field: 字段名
        gte: 下界（包含），None 表示不限
        lt: 上界（不包含），None 表示不限
    """

    kind: ClassVar[QueryKind] = QueryKind.RANGE

    field: str
    gte: Any = None
    lt: Any = None


@dataclass(frozen=True)
class BoolQuery(TypedQuery):
    """布尔查询.

    must 子句的顺序会原样保留到 wire 查询中。

    Attributes:
        must: must 子句列表
    """

    kind: ClassVar[QueryKind] = QueryKind.BOOL

    must: tuple[TypedQuery, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """将 must 统一为元组，保持不可变."""
        if not isinstance(self.must, tuple):
            object.__setattr__(self, "must", tuple(self.must))

    def add_must(self, clause: TypedQuery) -> BoolQuery:
        """返回追加了一个 must 子句的新查询."""
        return BoolQuery(must=(*self.must, clause))
