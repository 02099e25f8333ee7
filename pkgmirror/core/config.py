"""集中配置管理

支持从 YAML 文件加载 + 编程式覆盖。Config 在入口处构造一次，
再显式传给各组件，组件内部不读取全局状态。

配置文件示例:

    mirror_root: ~/.cache/pkgmirror
    cache_ttl: 3600
    remotes:
      - name: packages
        url: https://github.com/archlinux/svntogit-packages.git
      - name: community
        url: https://github.com/archlinux/svntogit-community.git
        namespace: packages/
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from pkgmirror.core.exceptions import ConfigError, ValidationError
from pkgmirror.core.models import Remote
from pkgmirror.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "configs/pkgmirror.yml"


def _default_remotes() -> list[Remote]:
    return [
        Remote("packages", "https://github.com/archlinux/svntogit-packages.git"),
        Remote("community", "https://github.com/archlinux/svntogit-community.git"),
    ]


@dataclass
class Config:
    """全局配置"""

    # 目录
    mirror_root: str = "data/mirror"

    # 引用缓存
    cache_ttl: int = 3600

    # 包组回退查询
    metadata_url: str = "https://archlinux.org/packages/search/json/?name={name}"
    metadata_field: str = "pkgbase"
    metadata_timeout: int = 10

    # 执行
    max_workers: int = 4
    lock_timeout: float = 30.0

    # 按优先级排列的远程
    remotes: list[Remote] = field(default_factory=_default_remotes)

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        names = [r.name for r in self.remotes]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ConfigError(f"远程名重复: {', '.join(dupes)}")
        if not self.remotes:
            raise ConfigError("至少需要配置一个远程")
        if self.cache_ttl < 0:
            raise ConfigError(f"cache_ttl 不能为负数: {self.cache_ttl}")

    # ---- 派生路径 ----

    @property
    def root(self) -> Path:
        return Path(self.mirror_root).expanduser()

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def store_dir(self) -> Path:
        return self.root / "store"

    @property
    def tracking_file(self) -> Path:
        return self.root / "tracking.yml"

    @property
    def lock_file(self) -> Path:
        return self.root / ".lock"

    def remote(self, name: str) -> Remote | None:
        """按名称查找已配置的远程"""
        for r in self.remotes:
            if r.name == name:
                return r
        return None

    # ---- 加载 ----

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        known = {f.name for f in fields(cls)}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        if "remotes" in matched:
            matched["remotes"] = _parse_remotes(matched["remotes"])
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置项类型错误: {e}") from e
        cfg.extra = extra
        return cfg

    @classmethod
    def from_file(cls, path: str | Path = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        if not data:
            logger.debug("配置文件不存在或为空，使用默认配置: %s", path)
            return cls()
        cfg = cls.from_dict(data)
        logger.info("配置已加载: %s", path)
        return cfg

    def to_dict(self) -> dict[str, Any]:
        return {
            "mirror_root": self.mirror_root,
            "cache_ttl": self.cache_ttl,
            "metadata_url": self.metadata_url,
            "metadata_field": self.metadata_field,
            "metadata_timeout": self.metadata_timeout,
            "max_workers": self.max_workers,
            "lock_timeout": self.lock_timeout,
            "remotes": [
                {"name": r.name, "url": r.url, "namespace": r.namespace}
                for r in self.remotes
            ],
            **self.extra,
        }


def _parse_remotes(raw: Any) -> list[Remote]:
    if not isinstance(raw, list):
        raise ConfigError("remotes 必须是列表")
    remotes: list[Remote] = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"remotes[{i}] 必须是字典")
        try:
            remotes.append(Remote(
                name=str(entry.get("name", "")),
                url=str(entry.get("url", "")),
                namespace=str(entry.get("namespace", "packages/")),
            ))
        except ValidationError as e:
            raise ConfigError(f"remotes[{i}] 无效: {e}") from e
    return remotes

