"""YAML 注册表基类

基于单个 YAML 文件的记录表共享相同的加载、保存、增删改查逻辑，
子类只需指定 section_key。写入统一走原子替换。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from pkgmirror.core.exceptions import ConfigError
from pkgmirror.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class YamlRegistry:
    """YAML 文件注册表基类

    子类用法:
        class MyRegistry(YamlRegistry):
            section_key = "items"
    """

    section_key: str = "entries"

    def __init__(self, registry_file: Path | str) -> None:
        self.registry_file = Path(registry_file)
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            return load_yaml(self.registry_file)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise ConfigError(f"记录文件损坏: {self.registry_file}: {e}") from e

    def reload(self) -> None:
        """重新从磁盘读取（其他进程可能已修改）"""
        self._data = self._load()

    def _section(self, key: str | None = None) -> dict[str, Any]:
        """获取 section 字典（自动创建），默认为 section_key"""
        key = key or self.section_key
        section = self._data.get(key)
        if not isinstance(section, dict):
            section = {}
            self._data[key] = section
        return section

    def _save(self) -> None:
        save_yaml(self.registry_file, self._data)

    def _put(self, name: str, entry: dict[str, Any]) -> dict[str, Any]:
        """写入条目并保存"""
        self._section()[name] = entry
        self._save()
        return entry

    def _get_raw(self, name: str) -> dict[str, Any] | None:
        entry = self._section().get(name)
        return entry if isinstance(entry, dict) else None

    def _list_raw(self) -> list[dict[str, Any]]:
        """列出所有条目（带 name 字段），保持写入顺序"""
        return [
            {"name": k, **v} for k, v in self._section().items() if isinstance(v, dict)
        ]

    def _remove(self, name: str) -> bool:
        section = self._section()
        if name not in section:
            return False
        del section[name]
        self._save()
        return True
