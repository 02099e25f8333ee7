"""跟踪集 — 记录哪些 (远程, 包) 当前以本地引用形式镜像

不变量: 跟踪记录存在 ⇔ 对应本地镜像引用存在。
操作中途被打断可能短暂破坏该不变量，由 reconcile() 在下一次变更操作开始时修复。

同一包同时只能被一个远程跟踪；切换远程需先 untrack 再 track。
记录以包名为键存放在 tracking.yml 中，结构上保证该约束。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.core.refcache import RefCache
    from pkgmirror.core.refstore import RefStore

from pkgmirror.core.exceptions import InvariantViolation, ValidationError
from pkgmirror.core.models import PackageName, Remote, TrackingRecord
from pkgmirror.core.registry import YamlRegistry

logger = logging.getLogger(__name__)


class TrackingRegistry(YamlRegistry):
    """跟踪记录文件

        tracked: {包名: {remote: 远程名}}
        aliases: {子包名: 包组名}    # 经包组替换解析后跟踪的子包
    """

    section_key = "tracked"
    alias_key = "aliases"

    def remote_name(self, name: str) -> str | None:
        entry = self._get_raw(name)
        return None if entry is None else str(entry.get("remote", ""))

    def put(self, name: str, remote_name: str) -> None:
        self._put(name, {"remote": remote_name})

    def remove(self, name: str) -> bool:
        return self._remove(name)

    def entries(self) -> list[tuple[str, str]]:
        """(包名, 远程名) 列表，保持写入顺序"""
        return [(e["name"], str(e.get("remote", ""))) for e in self._list_raw()]

    # ---- 包组别名 ----

    def alias(self, name: str) -> str | None:
        group = self._section(self.alias_key).get(name)
        return str(group) if group else None

    def put_alias(self, name: str, group: str) -> None:
        aliases = self._section(self.alias_key)
        if aliases.get(name) == group:
            return
        aliases[name] = group
        self._save()

    def remove_aliases(self, names: set[str]) -> list[str]:
        """删除键或目标在 names 中的别名，返回被删除的子包名"""
        aliases = self._section(self.alias_key)
        dropped = [k for k, v in aliases.items() if k in names or v in names]
        for k in dropped:
            del aliases[k]
        if dropped:
            self._save()
        return dropped

    def alias_entries(self) -> list[tuple[str, str]]:
        return [(k, str(v)) for k, v in self._section(self.alias_key).items()]


class TrackingSet:
    """跟踪集"""

    def __init__(
        self,
        store: RefStore,
        remotes: list[Remote],
        tracking_file: Path | str,
        cache: RefCache | None = None,
    ) -> None:
        self.store = store
        self.remotes = list(remotes)
        self.cache = cache
        self._registry = TrackingRegistry(tracking_file)

    # ---- 查询 ----

    def remote_of(self, name: PackageName) -> Remote | None:
        """返回跟踪该包的远程；记录指向已不在配置中的远程时视为未跟踪"""
        remote_name = self._registry.remote_name(str(name))
        if remote_name is None:
            return None
        return self._remote_by_name(remote_name)

    def is_tracked(self, remote: Remote, name: PackageName) -> bool:
        return self.remote_of(name) == remote

    def group_of(self, name: PackageName) -> PackageName | None:
        """返回已记录的包组别名（子包经包组替换后被跟踪）"""
        group = self._registry.alias(str(name))
        if group is None:
            return None
        try:
            return PackageName(group)
        except ValidationError:
            logger.warning("包组别名无效，已忽略: %s -> %r", name, group)
            return None

    def record_alias(self, name: PackageName, group: PackageName) -> None:
        """记录子包经包组解析，供后续进程的快速路径使用"""
        if name == group:
            return
        self._registry.put_alias(str(name), str(group))
        logger.debug("记录包组别名: %s -> %s", name, group)

    def all_tracked(self) -> list[TrackingRecord]:
        records: list[TrackingRecord] = []
        for pkg, remote_name in self._registry.entries():
            remote = self._remote_by_name(remote_name)
            if remote is None:
                logger.warning("跟踪记录 %s 指向未配置的远程 '%s'，已忽略", pkg, remote_name)
                continue
            try:
                records.append(TrackingRecord(remote, PackageName(pkg)))
            except ValidationError:
                logger.warning("跟踪记录中的包名无效，已忽略: %r", pkg)
        return records

    # ---- 变更 ----

    def track(self, remote: Remote, name: PackageName) -> bool:
        """跟踪包并确保本地镜像引用存在

        已跟踪且本地引用完好时为空操作（不访问网络），返回 False；
        否则按需拉取远程引用、创建本地引用并写入记录，返回 True。

        Raises:
            ValidationError: 该包已被其他远程跟踪
        """
        current = self.remote_of(name)
        if current is not None and current != remote:
            raise ValidationError(
                f"包 '{name}' 已由远程 '{current}' 跟踪，请先 untrack 再切换到 '{remote}'"
            )

        record = TrackingRecord(remote, name)
        if current is not None and self.store.local_ref_exists(record.local_ref):
            logger.debug("已跟踪: %s/%s", remote, name)
            return False

        if not self.store.local_ref_exists(record.fetched_ref):
            logger.info("拉取: %s/%s", remote, name)
            self.store.fetch_refs(remote, [remote.refspec(name)])
        self.store.create_or_update_local_ref(record.local_ref, record.fetched_ref)

        if current is None:
            self._registry.put(str(name), remote.name)
            logger.info("开始跟踪: %s/%s", remote, name)
        else:
            logger.warning("已修复跟踪记录缺失的本地引用: %s/%s", remote, name)
        if self.cache is not None:
            self.cache.remember(remote, name)
        return True

    def untrack(self, remote: Remote, name: PackageName) -> bool:
        """移除跟踪记录及其本地引用；记录不存在时为空操作，返回 False"""
        if not self.is_tracked(remote, name):
            logger.debug("未跟踪，无需移除: %s/%s", remote, name)
            return False
        record = TrackingRecord(remote, name)
        self.store.delete_local_ref(record.local_ref)
        self.store.delete_local_ref(record.fetched_ref)
        self._registry.remove(str(name))
        dropped = self._registry.remove_aliases({str(name)})
        logger.info("已取消跟踪: %s/%s", remote, name)
        if dropped:
            logger.info("已移除包组别名: %s", ", ".join(dropped))
        return True

    # ---- 一致性修复 ----

    def check(self, record: TrackingRecord) -> None:
        """检查单条记录的本地引用

        Raises:
            InvariantViolation: 记录存在但本地引用缺失
        """
        if not self.store.local_ref_exists(record.local_ref):
            raise InvariantViolation(
                f"跟踪记录 {record.remote}/{record.name} 缺少本地引用 {record.local_ref}"
            )

    def reconcile(self) -> list[str]:
        """修复记录与本地引用之间的不一致，返回修复说明列表

        - 记录存在、本地引用缺失: 从已拉取的远程跟踪引用重建；
          远程跟踪引用也缺失时保留记录，待下次 track/update 拉取后修复
        - 本地引用存在、记录缺失: 若能由远程跟踪引用确定远程则补建记录，否则删除孤立引用
        - 记录指向未配置的远程: 保留记录与本地引用
        - 包组别名指向未跟踪的包组: 删除别名
        """
        self._registry.reload()
        repairs: list[str] = []
        records = self.all_tracked()

        for record in records:
            try:
                self.check(record)
            except InvariantViolation as e:
                logger.warning("%s", e)
                if self.store.local_ref_exists(record.fetched_ref):
                    self.store.create_or_update_local_ref(record.local_ref, record.fetched_ref)
                    repairs.append(f"重建本地引用 {record.local_ref}")
                else:
                    repairs.append(f"待拉取 {record.remote}/{record.name}")

        known = {r.local_ref for r in records}
        # 指向未配置远程的记录仍然保留，其本地引用不作为孤立引用处理
        namespaces = dict.fromkeys(r.namespace for r in self.remotes)
        for pkg, remote_name in self._registry.entries():
            if self._remote_by_name(remote_name) is None:
                known.update(f"refs/heads/{ns}{pkg}" for ns in namespaces)

        for ref in self._local_mirror_refs():
            if ref in known:
                continue
            logger.warning("本地引用 %s 缺少跟踪记录", ref)
            owner = self._owner_of_orphan(ref)
            if owner is None:
                self.store.delete_local_ref(ref)
                repairs.append(f"删除孤立引用 {ref}")
                continue
            remote, name = owner
            self._registry.put(str(name), remote.name)
            known.add(ref)
            repairs.append(f"补建跟踪记录 {remote}/{name}")

        stale = {
            group for _, group in self._registry.alias_entries()
            if self._registry.remote_name(group) is None
        }
        for name in self._registry.remove_aliases(stale):
            repairs.append(f"删除失效别名 {name}")

        if repairs:
            logger.warning("一致性修复 %d 项: %s", len(repairs), "; ".join(repairs))
        return repairs

    # ---- 内部 ----

    def _remote_by_name(self, name: str) -> Remote | None:
        for r in self.remotes:
            if r.name == name:
                return r
        return None

    def _local_mirror_refs(self) -> list[str]:
        refs: list[str] = []
        for ns in dict.fromkeys(r.namespace for r in self.remotes):
            refs.extend(self.store.list_local_refs(f"refs/heads/{ns}"))
        return list(dict.fromkeys(refs))

    def _owner_of_orphan(self, ref: str) -> tuple[Remote, PackageName] | None:
        """按配置顺序找到拥有该本地引用对应远程跟踪引用的远程"""
        for remote in self.remotes:
            bare = remote.strip_namespace(ref)
            if bare is None:
                continue
            try:
                name = PackageName(bare)
            except ValidationError:
                return None
            if self.remote_of(name) is not None:
                return None
            if self.store.local_ref_exists(remote.fetched_ref(name)):
                return remote, name
        return None
