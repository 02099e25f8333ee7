"""批量同步器

给定一组包名（为空表示全部已跟踪的包）:
  1. 一致性修复（TrackingSet.reconcile）
  2. 仅走快速路径解析，按远程分组得到待拉取的 refspec
  3. 每个远程只发起一次 fetch；多个远程之间可并行
  4. 拉取完成后，将本地镜像引用强制更新到新拉取的远程跟踪引用

单个包解析失败或远程上已不存在只记入该包的错误，不中断其余包；
远程不可达/认证失败则终止整个同步。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.core.refstore import RefStore
    from pkgmirror.core.resolver import Resolver
    from pkgmirror.core.tracking import TrackingSet

from pkgmirror.core.exceptions import RefNotFound, UnknownPackage, ValidationError
from pkgmirror.core.models import PackageName, Remote, SyncReport

logger = logging.getLogger(__name__)


@dataclass
class _Batch:
    """单个远程的一次批量拉取"""

    remote: Remote
    packages: list[PackageName] = field(default_factory=list)
    missing: dict[str, str] = field(default_factory=dict)
    fetches: int = 0


class Synchronizer:
    """按远程批量拉取并对齐本地镜像引用"""

    def __init__(
        self,
        store: RefStore,
        tracking: TrackingSet,
        resolver: Resolver,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.tracking = tracking
        self.resolver = resolver
        self.max_workers = max(1, max_workers)

    def sync(self, names: Sequence[PackageName | str] = ()) -> SyncReport:
        """同步指定包（为空则同步全部已跟踪的包）"""
        report = SyncReport()
        self.tracking.reconcile()

        batches = self._plan(names, report)
        if not batches:
            logger.info("没有需要同步的包")
            return report

        for batch in self._fetch_all(batches):
            report.fetches += batch.fetches
            report.errors.update(batch.missing)
            for pkg in batch.packages:
                self._update_local(batch.remote, pkg, report)

        logger.info(
            "同步完成: %d 更新, %d 未变, %d 失败, %d 次拉取",
            len(report.updated), len(report.unchanged), len(report.errors), report.fetches,
        )
        return report

    # ---- 规划 ----

    def _plan(self, names: Sequence[PackageName | str], report: SyncReport) -> list[_Batch]:
        """按远程分组（保持远程首次出现顺序），同名包只拉取一次"""
        batches: dict[str, _Batch] = {}

        def add(remote: Remote, pkg: PackageName) -> None:
            batch = batches.setdefault(remote.name, _Batch(remote))
            if pkg not in batch.packages:
                batch.packages.append(pkg)

        if not names:
            for record in self.tracking.all_tracked():
                add(record.remote, record.name)
            return list(batches.values())

        for name in names:
            try:
                res = self.resolver.resolve(name, network=False)
            except (UnknownPackage, ValidationError) as e:
                logger.warning("跳过 %s: %s", name, e)
                report.errors[str(name)] = str(e)
                continue
            add(res.remote, res.target)
        return list(batches.values())

    # ---- 拉取 ----

    def _fetch_all(self, batches: list[_Batch]) -> list[_Batch]:
        """每个远程一次拉取；不同远程之间互不依赖，可并行"""
        if len(batches) == 1 or self.max_workers == 1:
            return [self._fetch_batch(b) for b in batches]

        workers = min(self.max_workers, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._fetch_batch, b) for b in batches]
            return [f.result() for f in futures]

    def _fetch_batch(self, batch: _Batch) -> _Batch:
        """拉取单个远程的全部 refspec

        远程上缺失的引用会使整次 fetch 失败；此时将该包记为错误，
        去掉它后重新发起本远程的 fetch。
        """
        remote = batch.remote
        while batch.packages:
            batch.fetches += 1
            logger.info("拉取 %s: %d 个包", remote.name, len(batch.packages))
            try:
                self.store.fetch_refs(remote, [remote.refspec(p) for p in batch.packages])
                return batch
            except RefNotFound as e:
                pkg = self._package_for_ref(remote, batch.packages, e.ref)
                if pkg is None:
                    raise
                logger.warning("远程 %s 上已不存在: %s", remote.name, pkg)
                batch.packages.remove(pkg)
                batch.missing[str(pkg)] = f"远程 '{remote.name}' 上已不存在包 '{pkg}'"
        return batch

    @staticmethod
    def _package_for_ref(
        remote: Remote, packages: list[PackageName], ref: str,
    ) -> PackageName | None:
        for pkg in packages:
            if ref in (remote.remote_ref(pkg), f"{remote.namespace}{pkg}", str(pkg)):
                return pkg
        return None

    # ---- 本地对齐 ----

    def _update_local(self, remote: Remote, pkg: PackageName, report: SyncReport) -> None:
        """将本地镜像引用强制指向新拉取的远程跟踪引用"""
        local_ref = remote.local_ref(pkg)
        fetched_ref = remote.fetched_ref(pkg)
        new = self.store.read_ref(fetched_ref)
        if new is None:
            report.errors[str(pkg)] = f"拉取后未找到引用 {fetched_ref}"
            return
        old = self.store.read_ref(local_ref)
        key = (remote.name, str(pkg))
        if old == new:
            report.unchanged.append(key)
            return
        self.store.create_or_update_local_ref(local_ref, fetched_ref)
        report.updated.append(key)
        logger.info("已更新 %s/%s: %s -> %s", remote.name, pkg, (old or "-")[:12], new[:12])
