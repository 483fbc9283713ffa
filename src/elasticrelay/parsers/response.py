"""
响应解析器.

通过路径表达式从原始 JSON 响应中读取类型化的值，并将搜索响应解析为结构化对象.
"找不到路径"、"JSON 非法"、"类型不符" 分别对应不同的异常，调用方据此实现可选字段语义。
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from elasticrelay.exceptions import (
    MalformedJsonError,
    PathNotFoundError,
    TypeMismatchError,
)
from elasticrelay.parsers.types import SearchHit, SearchResponse, TermsBucket

# 模块级别日志记录器
logger = logging.getLogger(__name__)

# 路径片段: [0]、['a.b']、["a.b"]、.name
_PATH_TOKEN = re.compile(r"\[(\d+)\]|\['([^']*)'\]|\[\"([^\"]*)\"\]|\.?([^.\[\]]+)")

_MISSING = object()


def parse_path(path: str) -> list[str | int]:
    """
    解析路径表达式.

    支持可选的 $ 前缀、点号分隔的字段名、[n] 下标以及 ['带.点的字段'].

    示例:
        >>> parse_path("$.hits.hits[0]._source")
        ['hits', 'hits', 0, '_source']
        >>> parse_path("highlight['file.name']")
        ['highlight', 'file.name']
    """
    expr = path.strip()
    if expr.startswith("$"):
        expr = expr[1:]

    tokens: list[str | int] = []
    pos = 0
    while pos < len(expr):
        match = _PATH_TOKEN.match(expr, pos)
        if match is None:
            raise ValueError(f"非法的路径表达式: {path}")
        index, single_quoted, double_quoted, name = match.groups()
        if index is not None:
            tokens.append(int(index))
        elif single_quoted is not None:
            tokens.append(single_quoted)
        elif double_quoted is not None:
            tokens.append(double_quoted)
        else:
            tokens.append(name)
        pos = match.end()
    return tokens


def _type_name(expected_type: Any) -> str:
    if isinstance(expected_type, tuple):
        return " | ".join(t.__name__ for t in expected_type)
    return expected_type.__name__


class JsonDocument:
    """
    可按路径读取的 JSON 文档.

    使用示例:
        document = JsonDocument.parse(response_text)

        total = document.read("$.hits.total.value", int)
        highlight = document.read_optional("$.hits.hits[0].highlight", default={})
        source_text = document.extract_json("$.hits.hits[0]._source")
    """

    def __init__(self, data: Any) -> None:
        self._data = data

    @classmethod
    def parse(cls, text: str | bytes) -> JsonDocument:
        """
        解析 JSON 文本.

        Raises:
            MalformedJsonError: 文本不是合法的 JSON
        """
        try:
            return cls(json.loads(text))
        except (TypeError, ValueError) as e:
            raise MalformedJsonError(f"无法解析 JSON 响应: {e}") from e

    @property
    def data(self) -> Any:
        """解析后的原始数据."""
        return self._data

    def _resolve(self, path: str) -> Any:
        current = self._data
        for token in parse_path(path):
            if isinstance(token, int):
                if not isinstance(current, list) or token >= len(current):
                    raise PathNotFoundError(path)
            elif not isinstance(current, dict) or token not in current:
                raise PathNotFoundError(path)
            current = current[token]
        return current

    @staticmethod
    def _convert(value: Any, expected_type: Any, path: str) -> Any:
        """校验并转换值类型，bool 不视为数字."""
        if expected_type is None:
            return value
        if expected_type is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, bool) and expected_type is not bool:
            accepts_bool = isinstance(expected_type, tuple) and bool in expected_type
            if not accepts_bool:
                raise TypeMismatchError(
                    f"路径 '{path}' 期望 {_type_name(expected_type)}，实际为 bool"
                )
        if not isinstance(value, expected_type):
            raise TypeMismatchError(
                f"路径 '{path}' 期望 {_type_name(expected_type)}，"
                f"实际为 {type(value).__name__}"
            )
        return value

    def read(self, path: str, expected_type: Any = None) -> Any:
        """
        读取路径对应的值.

        Args:
            path: 路径表达式
            expected_type: 期望的类型（或类型元组），None 表示不校验

        Returns:
            路径对应的值

        Raises:
            PathNotFoundError: 路径不存在
            TypeMismatchError: 值类型与期望不符
        """
        return self._convert(self._resolve(path), expected_type, path)

    def read_optional(
        self,
        path: str,
        default: Any = None,
        expected_type: Any = None,
    ) -> Any:
        """
        读取可选路径，路径不存在或值为 null 时返回默认值.

        Raises:
            TypeMismatchError: 值存在但类型与期望不符
        """
        try:
            value = self._resolve(path)
        except PathNotFoundError:
            return default
        if value is None:
            return default
        return self._convert(value, expected_type, path)

    def has(self, path: str) -> bool:
        """路径是否存在."""
        return self.read_optional(path, default=_MISSING) is not _MISSING

    def extract_json(self, path: str) -> str:
        """
        以 JSON 文本形式提取子文档，保持字段顺序.

        Raises:
            PathNotFoundError: 路径不存在
        """
        return json.dumps(self._resolve(path), ensure_ascii=False, separators=(",", ":"))

    def length(self, path: str) -> int:
        """
        获取数组或对象的长度.

        Raises:
            PathNotFoundError: 路径不存在
            TypeMismatchError: 值不是数组或对象
        """
        return len(self.read(path, (list, dict)))


class SearchResponseParser:
    """
    搜索响应解析器.

    将文档存储的原始响应解析为 SearchResponse / SearchHit.
    highlight、fields、_source、aggregations 都是可选部分，缺失时得到空结果而非异常。

    使用示例:
        parser = SearchResponseParser()
        response = parser.parse_search(response_text, size=10)

        print(f"共 {response.total_hits} 条记录")
        for hit in response.hits:
            print(hit.id, hit.source_as_map)
    """

    def parse_search(self, text: str, size: int) -> SearchResponse:
        """
        解析搜索响应.

        Args:
            text: 原始响应文本
            size: 请求的结果数量，返回的命中数不超过该值

        Returns:
            搜索响应对象

        Raises:
            DecodeError: 响应结构不符合预期
        """
        document = JsonDocument.parse(text)
        num_hits = document.length("$.hits.hits")
        hits = [
            self.parse_hit(document, f"$.hits.hits[{hit_num}]")
            for hit_num in range(min(size, num_hits))
        ]
        return SearchResponse(
            total_hits=self.get_total(document),
            hits=hits,
            aggregations=self.parse_terms_aggregations(document),
            took_ms=document.read_optional("$.took", expected_type=int),
        )

    def parse_hit(self, document: JsonDocument, prefix: str = "$") -> SearchHit:
        """
        解析单个命中文档（搜索结果中的一项，或 GET 文档的响应）.

        Args:
            document: JSON 文档
            prefix: 命中对象所在路径

        Returns:
            搜索命中对象
        """
        hit = SearchHit(
            index=document.read(f"{prefix}._index", str),
            id=document.read(f"{prefix}._id", str),
            version=document.read(f"{prefix}._version", int),
        )

        if document.has(f"{prefix}._source"):
            hit.source = document.extract_json(f"{prefix}._source")
            hit.source_as_map = document.read(f"{prefix}._source", dict)

        hit.highlights = document.read_optional(
            f"{prefix}.highlight", default={}, expected_type=dict
        )
        hit.stored_fields = document.read_optional(
            f"{prefix}.fields", default={}, expected_type=dict
        )
        return hit

    def get_total(self, document: JsonDocument) -> int:
        """
        获取命中总数.

        兼容 ES 6.x（整数）和 7.x 以上（{"value": n}）的格式.
        """
        total = document.read("$.hits.total", (int, dict))
        if isinstance(total, dict):
            return document.read("$.hits.total.value", int)
        return total

    def parse_terms_aggregations(
        self, document: JsonDocument
    ) -> dict[str, list[TermsBucket]]:
        """解析所有 Terms 聚合的桶，不含 buckets 的聚合会被跳过."""
        aggregations = document.read_optional(
            "$.aggregations", default={}, expected_type=dict
        )
        results: dict[str, list[TermsBucket]] = {}
        for name, agg_data in aggregations.items():
            if not isinstance(agg_data, dict) or "buckets" not in agg_data:
                logger.debug(f"聚合 '{name}' 不是 Terms 聚合，跳过")
                continue
            results[name] = [
                TermsBucket(
                    key=bucket.get("key_as_string", bucket.get("key")),
                    doc_count=bucket.get("doc_count", 0),
                )
                for bucket in agg_data["buckets"]
            ]
        return results
