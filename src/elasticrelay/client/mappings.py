"""索引映射来源.

按存储的主版本号和映射名称提供索引创建时使用的 settings/mappings JSON 文本。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

from .exceptions import MappingNotFoundError

logger = logging.getLogger(__name__)


class MappingSource(ABC):
    """索引映射来源接口."""

    @abstractmethod
    def read(self, major_version: str, name: str) -> str:
        """读取映射内容.

        Args:
            major_version: 存储的主版本号，如 "7"
            name: 映射名称，如 "_settings"

        Returns:
            JSON 文本

        Raises:
            MappingNotFoundError: 没有对应的映射
        """


class DirectoryMappingSource(MappingSource):
    """从目录读取映射，文件路径为 <root>/<major_version>/<name>.json.

    示例:
        >>> source = DirectoryMappingSource("/etc/crawler/_mappings")
        >>> settings = source.read("7", "_settings")
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def read(self, major_version: str, name: str) -> str:
        path = self.root / str(major_version) / f"{name}.json"
        if not path.is_file():
            raise MappingNotFoundError(
                f"找不到版本 {major_version} 的映射 '{name}': {path}"
            )
        logger.debug(f"读取映射文件 {path}")
        return path.read_text(encoding="utf-8")


class StaticMappingSource(MappingSource):
    """内存中的映射来源.

    键可以是 (major_version, name) 元组，也可以只是 name（适用于所有版本），
    前者优先。
    """

    def __init__(self, mappings: Mapping[str | tuple[str, str], str]) -> None:
        self._mappings = dict(mappings)

    def read(self, major_version: str, name: str) -> str:
        key = (str(major_version), name)
        if key in self._mappings:
            return self._mappings[key]
        if name in self._mappings:
            return self._mappings[name]
        raise MappingNotFoundError(f"找不到版本 {major_version} 的映射 '{name}'")
