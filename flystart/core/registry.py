"""YAML 注册表基类

一个 YAML 文件中的单个 section，按 name -> 条目 保存，条目顺序即文件顺序。
文件在构造时读入；每次修改立即写回。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

from flystart.core.exceptions import ValidationError
from flystart.utils.yaml_io import load_yaml, save_yaml


class YamlRegistry:
    """子类指定 section_key；文件损坏或 section 不是映射时抛 ValidationError"""

    section_key: str = "entries"

    def __init__(self, registry_file: str | Path) -> None:
        self.registry_file = Path(registry_file)
        try:
            self._data: dict[str, Any] = load_yaml(self.registry_file)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        section = self._data.setdefault(self.section_key, {})
        if section is None:
            section = self._data[self.section_key] = {}
        if not isinstance(section, dict):
            raise ValidationError(
                f"{self.registry_file} 的 {self.section_key} 必须是映射"
            )
        self._entries: dict[str, dict[str, Any] | None] = section

    def _items(self) -> Iterator[tuple[str, dict[str, Any]]]:
        for name, entry in self._entries.items():
            yield str(name), entry or {}

    def _put(self, name: str, entry: dict[str, Any]) -> None:
        self._entries[name] = entry
        save_yaml(self.registry_file, self._data)

    def _get_raw(self, name: str) -> dict[str, Any] | None:
        if name not in self._entries:
            return None
        return self._entries[name] or {}

    def _remove(self, name: str) -> bool:
        if name not in self._entries:
            return False
        del self._entries[name]
        save_yaml(self.registry_file, self._data)
        return True
