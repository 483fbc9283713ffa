"""
响应解析数据类型定义.

包含搜索命中、搜索响应、Terms 聚合桶等数据类.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TermsBucket:
    """
    Terms 聚合桶.

    Attributes:
        key: 桶键值（优先使用 key_as_string）
        doc_count: 文档数量
    """

    key: Any
    doc_count: int


@dataclass
class SearchHit:
    """
    搜索命中文档.

    同时保留文档的 JSON 文本和解析后的字典，调用方可以原样回传文档内容。

    Attributes:
        index: 所属索引
        id: 文档 ID
        version: 文档版本号
        source: _source 的 JSON 文本，文档没有 _source 时为 None
        source_as_map: _source 解析后的字典，没有 _source 时为空字典
        highlights: 高亮字段映射，key 为字段名，value 为高亮片段列表
        stored_fields: stored 字段值映射

    示例:
        for hit in response.hits:
            print(f"文档: {hit.index}/{hit.id} v{hit.version}")
            print(f"高亮: {hit.get_highlight('content', '无高亮')}")
    """

    index: str
    id: str
    version: int | None = None
    source: str | None = None
    source_as_map: dict[str, Any] = field(default_factory=dict)
    highlights: dict[str, list[str]] = field(default_factory=dict)
    stored_fields: dict[str, list[Any]] = field(default_factory=dict)

    def get_highlight(self, field_name: str, default: str = "") -> str:
        """
        获取指定字段的第一个高亮片段.

        Args:
            field_name: 字段名
            default: 无高亮时的默认值

        Returns:
            高亮片段或默认值
        """
        fragments = self.highlights.get(field_name, [])
        return fragments[0] if fragments else default


@dataclass
class SearchResponse:
    """
    搜索响应.

    Attributes:
        total_hits: 命中总数
        hits: 命中文档列表，数量不超过 min(请求的 size, 实际返回数)
        aggregations: Terms 聚合结果，key 为聚合名称
        took_ms: 查询耗时（毫秒）
    """

    total_hits: int
    hits: list[SearchHit] = field(default_factory=list)
    aggregations: dict[str, list[TermsBucket]] = field(default_factory=dict)
    took_ms: int | None = None
