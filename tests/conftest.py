"""测试共享 fixture：内存版引用存储 + 元数据服务

FakeRefStore 模拟 git 语义:
  - fetch 中任一 refspec 的源引用不存在时整次失败（RefNotFound），不写入任何引用
  - 标记为 unreachable 的远程在 ls-remote / fetch 时抛 RemoteUnreachable
所有远程调用记录在 calls 中，便于断言网络往返次数。
"""

from __future__ import annotations

import fnmatch
import itertools
from pathlib import Path

import pytest

from pkgmirror.core.config import Config
from pkgmirror.core.exceptions import ExecutionError, RefNotFound, RemoteUnreachable
from pkgmirror.core.models import PackageName, Remote
from pkgmirror.core.refcache import RefCache
from pkgmirror.core.resolver import Resolver
from pkgmirror.core.synchronizer import Synchronizer
from pkgmirror.core.tracking import TrackingSet
from pkgmirror.services.container import ServiceContainer

_sha_counter = itertools.count(1)


def new_sha() -> str:
    return f"{next(_sha_counter):040x}"


class FakeRefStore:
    def __init__(self, upstream: dict[str, list[str]] | None = None) -> None:
        # 远程名 -> {远程引用: sha}
        self.upstream: dict[str, dict[str, str]] = {}
        self.local: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.unreachable: set[str] = set()
        for remote_name, pkgs in (upstream or {}).items():
            for pkg in pkgs:
                self.publish(remote_name, pkg)

    # ---- 测试辅助 ----

    def publish(self, remote_name: str, pkg: str, namespace: str = "packages/") -> str:
        sha = new_sha()
        self.upstream.setdefault(remote_name, {})[f"refs/heads/{namespace}{pkg}"] = sha
        return sha

    def withdraw(self, remote_name: str, pkg: str, namespace: str = "packages/") -> None:
        self.upstream[remote_name].pop(f"refs/heads/{namespace}{pkg}")

    @property
    def fetch_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "fetch"]

    @property
    def network_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("ls-remote", "fetch")]

    # ---- RefStore 协议 ----

    def list_remote_refs(self, remote: Remote, pattern: str) -> list[str]:
        self.calls.append(("ls-remote", remote.name, pattern))
        if remote.name in self.unreachable:
            raise RemoteUnreachable(remote.name, "connection refused")
        refs = self.upstream.get(remote.name, {})
        return [r for r in refs if fnmatch.fnmatchcase(r, pattern)]

    def fetch_refs(self, remote: Remote, refspecs: list[str]) -> None:
        self.calls.append(("fetch", remote.name, list(refspecs)))
        if remote.name in self.unreachable:
            raise RemoteUnreachable(remote.name, "connection refused")
        refs = self.upstream.get(remote.name, {})
        pairs = [spec.lstrip("+").split(":", 1) for spec in refspecs]
        for src, _ in pairs:
            if src not in refs:
                raise RefNotFound(remote.name, src)
        for src, dst in pairs:
            self.local[dst] = refs[src]

    def list_local_refs(self, pattern: str) -> list[str]:
        return sorted(r for r in self.local if r.startswith(pattern))

    def create_or_update_local_ref(self, name: str, target: str) -> None:
        if target not in self.local:
            raise ExecutionError(f"目标 {target} 不存在")
        self.local[name] = self.local[target]

    def delete_local_ref(self, name: str) -> None:
        self.local.pop(name, None)

    def local_ref_exists(self, name: str) -> bool:
        return name in self.local

    def read_ref(self, name: str) -> str | None:
        return self.local.get(name)


class FakeMetadata:
    def __init__(self, groups: dict[str, str] | None = None) -> None:
        self.groups = groups or {}
        self.calls: list[str] = []

    def lookup_group(self, name: PackageName) -> PackageName | None:
        self.calls.append(str(name))
        group = self.groups.get(str(name))
        return PackageName(group) if group else None


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def core_remote() -> Remote:
    return Remote("core", "https://git.example.com/core.git")


@pytest.fixture()
def extra_remote() -> Remote:
    return Remote("extra", "https://git.example.com/extra.git")


@pytest.fixture()
def remotes(core_remote: Remote, extra_remote: Remote) -> list[Remote]:
    return [core_remote, extra_remote]


@pytest.fixture()
def store() -> FakeRefStore:
    return FakeRefStore({
        "core": ["bash", "glibc", "linux", "pacman", "base-pkg"],
        "extra": ["vim", "python", "ruby", "linux"],
    })


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def cache(store: FakeRefStore, tmp_path: Path, clock: Clock) -> RefCache:
    return RefCache(store, tmp_path / "cache", ttl=3600, tool_timestamp=0.0, clock=clock)


@pytest.fixture()
def tracking(store: FakeRefStore, remotes: list[Remote], tmp_path: Path, cache: RefCache) -> TrackingSet:
    return TrackingSet(store, remotes, tmp_path / "tracking.yml", cache=cache)


@pytest.fixture()
def metadata() -> FakeMetadata:
    return FakeMetadata({"sub-pkg": "base-pkg", "orphan-sub": "no-such-base"})


@pytest.fixture()
def resolver(
    remotes: list[Remote], tracking: TrackingSet, cache: RefCache, metadata: FakeMetadata,
) -> Resolver:
    return Resolver(remotes, tracking, cache, metadata)


@pytest.fixture()
def synchronizer(store: FakeRefStore, tracking: TrackingSet, resolver: Resolver) -> Synchronizer:
    return Synchronizer(store, tracking, resolver, max_workers=2)


@pytest.fixture()
def container(
    tmp_path: Path, remotes: list[Remote], store: FakeRefStore, metadata: FakeMetadata,
) -> ServiceContainer:
    cfg = Config(mirror_root=str(tmp_path / "mirror"), remotes=remotes, lock_timeout=1)
    return ServiceContainer(config=cfg, refstore=store, metadata=metadata)
