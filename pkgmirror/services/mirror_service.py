"""镜像服务 — 面向 CLI 的统一入口

所有变更操作（缓存刷新、track/untrack、同步）都在镜像锁内执行，
并在开始时先做一次一致性修复。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.services.container import ServiceContainer

from pkgmirror.core.exceptions import UnknownPackage, ValidationError
from pkgmirror.core.models import PackageName, Remote, Resolution, SyncReport, TrackingRecord
from pkgmirror.utils.locking import mirror_lock

logger = logging.getLogger(__name__)


@dataclass
class TrackOutcome:
    """批量 track 的结果"""

    tracked: list[Resolution] = field(default_factory=list)
    already: list[Resolution] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


class MirrorService:
    """镜像服务"""

    def __init__(self, container: ServiceContainer) -> None:
        self.container = container
        self.config = container.config

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with mirror_lock(self.config.lock_file, timeout=self.config.lock_timeout):
            yield

    # ---- 查询 ----

    def remotes(self) -> list[Remote]:
        return list(self.config.remotes)

    def list_tracked(self) -> list[TrackingRecord]:
        return self.container.tracking.all_tracked()

    def list_all(
        self, remote_name: str | None = None, *, refresh: bool = False,
    ) -> dict[str, list[PackageName]]:
        """列出各远程当前通告的全部包名"""
        remotes = self._select_remotes(remote_name)
        cache = self.container.cache
        with self._locked():
            if refresh:
                for r in remotes:
                    cache.invalidate(r)
            return {r.name: cache.get(r) for r in remotes}

    def resolve(self, name: str) -> Resolution:
        """解析单个包名（可能刷新缓存，因此持锁）

        Raises:
            UnknownPackage: 没有远程托管该包
        """
        with self._locked():
            return self.container.resolver.resolve(name)

    # ---- 变更 ----

    def track(self, names: Sequence[str]) -> TrackOutcome:
        """解析并跟踪一组包，单个失败不影响其余"""
        outcome = TrackOutcome()
        with self._locked():
            self.container.tracking.reconcile()
            for name in names:
                self._track_one(name, outcome)
        return outcome

    def untrack(self, names: Sequence[str]) -> dict[str, bool]:
        """取消跟踪，返回 {包名: 是否实际移除}

        未跟踪的包为空操作；channel/name 形式只在该远程下移除。
        经包组替换跟踪的子包名按记录的别名移除其包组。
        """
        tracking = self.container.tracking
        removed: dict[str, bool] = {}
        with self._locked():
            tracking.reconcile()
            for name in names:
                channel, pkg = PackageName.parse(name)
                if tracking.remote_of(pkg) is None:
                    pkg = tracking.group_of(pkg) or pkg
                remote = self.config.remote(channel) if channel else tracking.remote_of(pkg)
                if channel and remote is None:
                    raise ValidationError(f"未知的 channel '{channel}'")
                removed[name] = remote is not None and tracking.untrack(remote, pkg)
        return removed

    def update(self, names: Sequence[str] = (), *, track_new: bool = False) -> SyncReport:
        """同步镜像；track_new=True 时先跟踪尚未跟踪的包"""
        with self._locked():
            pre_errors: dict[str, str] = {}
            targets = list(names)
            if track_new and names:
                outcome = TrackOutcome()
                self.container.tracking.reconcile()
                for name in names:
                    self._track_one(name, outcome)
                pre_errors = outcome.errors
                targets = [n for n in names if n not in pre_errors]
                if not targets:
                    return SyncReport(errors=pre_errors)
            report = self.container.synchronizer.sync(targets)
        report.errors = {**pre_errors, **report.errors}
        return report

    def _track_one(self, name: str, outcome: TrackOutcome) -> None:
        try:
            res = self.container.resolver.resolve(name)
            tracking = self.container.tracking
            if tracking.track(res.remote, res.target):
                outcome.tracked.append(res)
            else:
                outcome.already.append(res)
            if res.via_group is not None:
                tracking.record_alias(res.name, res.via_group)
        except (UnknownPackage, ValidationError) as e:
            logger.warning("%s", e)
            outcome.errors[name] = str(e)

    def _select_remotes(self, remote_name: str | None) -> list[Remote]:
        if not remote_name:
            return self.remotes()
        remote = self.config.remote(remote_name)
        if remote is None:
            raise ValidationError(
                f"未知的远程 '{remote_name}'，可用: {', '.join(r.name for r in self.remotes())}"
            )
        return [remote]
