"""远程包名缓存

每个远程一个缓存文件（换行分隔的包名），文件 mtime 即新鲜度时间戳。

过期规则:
  - now - 时间戳 > TTL（默认 3600 秒，恰好等于 TTL 不算过期）
  - 或者当前工具的构建时间戳严格晚于缓存时间戳（升级后强制重建一次）

刷新失败（远程不可达/认证失败）直接向上抛出，不回退到过期缓存；
缓存文件缺失或损坏等同于过期，静默重建。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.core.refstore import RefStore

from pkgmirror.core.exceptions import CacheCorrupt, ValidationError
from pkgmirror.core.models import PackageName, Remote
from pkgmirror.utils.yaml_io import read_lines, write_lines

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600


@dataclass
class CacheEntry:
    """单个远程的缓存条目 — 有序且唯一的包名 + 时间戳"""

    names: list[PackageName]
    timestamp: float

    def __post_init__(self) -> None:
        self._members = set(self.names)

    def __contains__(self, name: object) -> bool:
        return name in self._members

    def add(self, name: PackageName) -> bool:
        if name in self._members:
            return False
        self.names.append(name)
        self._members.add(name)
        return True


class RefCache:
    """按远程缓存其当前通告的全部包名"""

    def __init__(
        self,
        store: RefStore,
        cache_dir: Path | str,
        ttl: int = DEFAULT_TTL,
        tool_timestamp: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if tool_timestamp is None:
            from pkgmirror import build_timestamp
            tool_timestamp = build_timestamp()
        self.store = store
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl
        self.tool_timestamp = tool_timestamp
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}

    # ---- 公共接口 ----

    def is_stale(self, timestamp: float) -> bool:
        """判断给定时间戳的缓存是否过期"""
        return self.clock() - timestamp > self.ttl or self.tool_timestamp > timestamp

    def get(self, remote: Remote) -> list[PackageName]:
        """获取远程的包名列表，过期则透明刷新"""
        return list(self._entry(remote).names)

    def contains(self, remote: Remote, name: PackageName) -> bool:
        """包名是否在远程当前通告的集合中（必要时刷新）"""
        return name in self._entry(remote)

    def refresh(self, remote: Remote) -> CacheEntry:
        """重新查询远程引用，整体替换缓存条目（先写新文件再替换）"""
        logger.info("刷新远程包列表: %s", remote.name)
        refs = self.store.list_remote_refs(remote, remote.ref_pattern)

        seen: dict[PackageName, None] = {}
        for ref in refs:
            bare = remote.strip_namespace(ref)
            if bare is None:
                continue
            try:
                seen.setdefault(PackageName(bare), None)
            except ValidationError:
                logger.debug("跳过无法识别的引用: %s", ref)

        now = self.clock()
        entry = CacheEntry(names=list(seen), timestamp=now)
        write_lines(self._path(remote), [str(n) for n in entry.names], mtime=now)
        self._entries[remote.name] = entry
        logger.info("远程 %s 共 %d 个包", remote.name, len(entry.names))
        return entry

    def remember(self, remote: Remote, name: PackageName) -> None:
        """将新跟踪的包并入缓存成员（不刷新时间戳）

        仅在已有缓存时生效；无缓存时下次刷新自然包含该包。
        """
        entry = self._entries.get(remote.name) or self._load_quietly(remote)
        if entry is None or not entry.add(name):
            return
        write_lines(
            self._path(remote), [str(n) for n in entry.names], mtime=entry.timestamp,
        )
        self._entries[remote.name] = entry
        logger.debug("缓存并入新跟踪包: %s/%s", remote.name, name)

    def invalidate(self, remote: Remote | None = None) -> int:
        """删除缓存（指定远程或全部），返回删除的文件数"""
        if remote is not None:
            self._entries.pop(remote.name, None)
            path = self._path(remote)
            if path.exists():
                path.unlink()
                return 1
            return 0
        self._entries.clear()
        if not self.cache_dir.exists():
            return 0
        count = 0
        for path in self.cache_dir.glob("remote-*"):
            path.unlink()
            count += 1
        return count

    # ---- 内部 ----

    def _path(self, remote: Remote) -> Path:
        return self.cache_dir / f"remote-{remote.name}"

    def _entry(self, remote: Remote) -> CacheEntry:
        entry = self._entries.get(remote.name)
        if entry is not None and not self.is_stale(entry.timestamp):
            return entry

        entry = self._load_quietly(remote)
        if entry is not None and not self.is_stale(entry.timestamp):
            logger.debug("缓存命中: %s (%d 个包)", remote.name, len(entry.names))
            self._entries[remote.name] = entry
            return entry
        return self.refresh(remote)

    def _load_quietly(self, remote: Remote) -> CacheEntry | None:
        """读取缓存文件，缺失或损坏返回 None"""
        try:
            return self._load(remote)
        except CacheCorrupt as e:
            logger.debug("缓存损坏，将重建: %s", e)
            return None

    def _load(self, remote: Remote) -> CacheEntry | None:
        path = self._path(remote)
        if not path.exists():
            return None
        try:
            timestamp = path.stat().st_mtime
            lines = read_lines(path)
        except (OSError, UnicodeDecodeError) as e:
            raise CacheCorrupt(f"无法读取 {path}: {e}") from e
        try:
            names = list(dict.fromkeys(PackageName(line) for line in lines))
        except ValidationError as e:
            raise CacheCorrupt(f"{path} 内容无效: {e}") from e
        return CacheEntry(names=names, timestamp=timestamp)
