"""elasticrelay 类型定义模块."""

from collections.abc import Mapping, Sequence
from typing import Any, Dict, Tuple, Union

# JSON 对象类型
JsonDict = Dict[str, Any]

# 请求体类型: 字典/列表会被序列化为 JSON，字符串原样发送
RequestBody = Union[JsonDict, list, str, None]

# 查询参数类型
# 格式: {参数名: 值} 或 [(参数名, 值), ...]，按调用顺序追加到 URL
QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], None]
