"""包名解析器 — 将包名映射到托管它的远程

解析顺序（首个成功即返回）:
  1. 快速路径: 跟踪集中已有 (远程, 包) 记录，不访问网络
  2. 慢速路径: 按配置优先级依次查询各远程的引用缓存（可能触发刷新）
  3. 包组回退: 先查已记录的包组别名，再查询元数据服务得到包组名，用包组名重试 1~2

network=False 时只走快速路径（含已记录的包组别名，同步器使用），未命中即失败。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.core.metadata import MetadataFallback
    from pkgmirror.core.refcache import RefCache
    from pkgmirror.core.tracking import TrackingSet

from pkgmirror.core.exceptions import UnknownPackage, ValidationError
from pkgmirror.core.models import PackageName, Remote, Resolution

logger = logging.getLogger(__name__)


class Resolver:
    """包名解析器"""

    def __init__(
        self,
        remotes: list[Remote],
        tracking: TrackingSet,
        cache: RefCache,
        metadata: MetadataFallback | None = None,
    ) -> None:
        self.remotes = list(remotes)
        self.tracking = tracking
        self.cache = cache
        self.metadata = metadata
        # 本进程内已确认的包组替换: 子包 -> 包组
        self.aliases: dict[PackageName, PackageName] = {}

    def resolve(
        self,
        name: PackageName | str,
        *,
        channel: str | None = None,
        network: bool = True,
    ) -> Resolution:
        """解析包名到远程

        Args:
            name: 包名，字符串形式允许 channel/name
            channel: 限定只在该远程中查找
            network: False 时只查跟踪集

        Raises:
            UnknownPackage: 没有远程托管该包
            ValidationError: 包名或 channel 非法
            RemoteUnreachable: 刷新缓存时远程不可达（致命）
        """
        if isinstance(name, str):
            parsed_channel, pkg = PackageName.parse(name)
            channel = channel or parsed_channel
        else:
            pkg = name
        candidates = self._candidates(channel)

        remote = self._lookup(pkg, candidates, network=network)
        if remote is not None:
            return Resolution(pkg, remote)

        group = self.aliases.get(pkg) or self.tracking.group_of(pkg)
        if group is None and network and self.metadata is not None:
            group = self.metadata.lookup_group(pkg)
        if group is not None and group != pkg:
            remote = self._lookup(group, candidates, network=network)
            if remote is not None:
                self.aliases[pkg] = group
                logger.info("%s 通过包组 %s 解析到远程 %s", pkg, group, remote)
                return Resolution(pkg, remote, via_group=group)

        if not network:
            raise UnknownPackage(str(pkg), "未被跟踪")
        where = f"远程 '{channel}'" if channel else "任何已配置的远程"
        raise UnknownPackage(str(pkg), f"{where}及其包组中均不存在")

    def resolve_many(
        self, names: Iterable[PackageName | str], *, network: bool = True,
    ) -> tuple[list[Resolution], dict[str, str]]:
        """批量解析，单个失败不影响其余条目

        返回 (成功结果列表, {包名: 失败原因})。远程不可达仍然整体抛出。
        """
        results: list[Resolution] = []
        errors: dict[str, str] = {}
        for name in names:
            try:
                results.append(self.resolve(name, network=network))
            except (UnknownPackage, ValidationError) as e:
                logger.warning("%s", e)
                errors[str(name)] = str(e)
        return results, errors

    def _candidates(self, channel: str | None) -> list[Remote]:
        if not channel:
            return self.remotes
        for r in self.remotes:
            if r.name == channel:
                return [r]
        raise ValidationError(
            f"未知的 channel '{channel}'，可用: {', '.join(r.name for r in self.remotes)}"
        )

    def _lookup(
        self, pkg: PackageName, candidates: list[Remote], *, network: bool,
    ) -> Remote | None:
        for remote in candidates:
            if self.tracking.is_tracked(remote, pkg):
                logger.debug("快速路径命中: %s -> %s", pkg, remote)
                return remote
        if not network:
            return None
        for remote in candidates:
            if self.cache.contains(remote, pkg):
                logger.debug("缓存命中: %s -> %s", pkg, remote)
                return remote
        return None
