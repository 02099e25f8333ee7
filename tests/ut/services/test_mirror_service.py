"""MirrorService 单元测试：注入内存引用存储的端到端流程"""

from __future__ import annotations

import pytest

from pkgmirror.core.exceptions import LockTimeoutError, RemoteUnreachable, UnknownPackage, ValidationError
from pkgmirror.core.models import PackageName
from pkgmirror.services.container import ServiceContainer
from pkgmirror.utils.locking import mirror_lock


@pytest.fixture()
def svc(container: ServiceContainer):
    return container.mirror


class TestQueries:
    def test_remotes_in_priority_order(self, svc) -> None:
        assert [r.name for r in svc.remotes()] == ["core", "extra"]

    def test_list_all(self, svc) -> None:
        listing = svc.list_all()
        assert [str(n) for n in listing["extra"]] == ["vim", "python", "ruby", "linux"]
        assert PackageName("bash") in listing["core"]

    def test_list_all_single_remote(self, svc) -> None:
        assert list(svc.list_all("extra")) == ["extra"]

    def test_list_all_unknown_remote(self, svc) -> None:
        with pytest.raises(ValidationError, match="未知的远程"):
            svc.list_all("nope")

    def test_list_all_refresh_sees_new_package(self, svc, store) -> None:
        svc.list_all("core")
        store.publish("core", "zsh")
        assert PackageName("zsh") not in svc.list_all("core")["core"]
        assert PackageName("zsh") in svc.list_all("core", refresh=True)["core"]

    def test_resolve_priority(self, svc) -> None:
        assert svc.resolve("linux").remote.name == "core"
        assert svc.resolve("extra/linux").remote.name == "extra"

    def test_resolve_unknown(self, svc) -> None:
        with pytest.raises(UnknownPackage):
            svc.resolve("emacs")


class TestTrack:
    def test_track_creates_local_refs(self, svc, store) -> None:
        outcome = svc.track(["bash", "vim"])
        assert outcome.success
        assert [(r.remote.name, str(r.target)) for r in outcome.tracked] == [
            ("core", "bash"), ("extra", "vim"),
        ]
        assert store.local_ref_exists("refs/heads/packages/bash")
        assert [(r.remote.name, str(r.name)) for r in svc.list_tracked()] == [
            ("core", "bash"), ("extra", "vim"),
        ]

    def test_track_twice_is_noop(self, svc, store) -> None:
        svc.track(["bash"])
        calls = len(store.network_calls)
        outcome = svc.track(["bash"])
        assert outcome.tracked == []
        assert [str(r.name) for r in outcome.already] == ["bash"]
        assert len(store.network_calls) == calls

    def test_track_partial_failure(self, svc) -> None:
        outcome = svc.track(["bash", "emacs", "extra/bash"])
        assert [str(r.name) for r in outcome.tracked] == ["bash"]
        assert set(outcome.errors) == {"emacs", "extra/bash"}
        assert not outcome.success

    def test_track_via_group(self, svc, metadata) -> None:
        outcome = svc.track(["sub-pkg"])
        res = outcome.tracked[0]
        assert (res.remote.name, str(res.target), str(res.via_group)) == ("core", "base-pkg", "base-pkg")
        assert metadata.calls == ["sub-pkg"]

    def test_track_other_remote_rejected(self, svc) -> None:
        svc.track(["linux"])
        outcome = svc.track(["extra/linux"])
        assert "已由远程 'core' 跟踪" in outcome.errors["extra/linux"]

    def test_untrack(self, svc, store) -> None:
        svc.track(["bash", "vim"])
        assert svc.untrack(["bash", "emacs"]) == {"bash": True, "emacs": False}
        assert not store.local_ref_exists("refs/heads/packages/bash")
        assert [str(r.name) for r in svc.list_tracked()] == ["vim"]

    def test_untrack_wrong_channel_is_noop(self, svc) -> None:
        svc.track(["linux"])
        assert svc.untrack(["extra/linux"]) == {"extra/linux": False}
        assert [str(r.name) for r in svc.list_tracked()] == ["linux"]

    def test_untrack_unknown_channel(self, svc) -> None:
        with pytest.raises(ValidationError, match="未知的 channel"):
            svc.untrack(["aur/linux"])

    def test_switch_remote_after_untrack(self, svc) -> None:
        svc.track(["linux"])
        svc.untrack(["linux"])
        outcome = svc.track(["extra/linux"])
        assert outcome.tracked[0].remote.name == "extra"


class TestUpdate:
    def test_update_all(self, svc, store) -> None:
        svc.track(["bash", "glibc", "vim"])
        store.publish("core", "bash")
        report = svc.update()
        assert report.success
        assert report.updated == [("core", "bash")]
        assert sorted(report.unchanged) == [("core", "glibc"), ("extra", "vim")]
        assert report.fetches == 2

    def test_update_untracked_reports_error(self, svc) -> None:
        svc.track(["bash"])
        report = svc.update(["bash", "vim"])
        assert "vim" in report.errors
        assert report.unchanged == [("core", "bash")]

    def test_update_track_new(self, svc, store) -> None:
        report = svc.update(["bash", "sub-pkg", "emacs"], track_new=True)
        assert set(report.errors) == {"emacs"}
        assert sorted(report.unchanged) == [("core", "base-pkg"), ("core", "bash")]
        assert store.local_ref_exists("refs/heads/packages/base-pkg")

    def test_update_track_new_all_failed(self, svc, store) -> None:
        report = svc.update(["emacs"], track_new=True)
        assert set(report.errors) == {"emacs"}
        assert store.fetch_calls == []

    def test_update_unreachable_is_fatal(self, svc, store) -> None:
        svc.track(["bash"])
        store.unreachable.add("core")
        with pytest.raises(RemoteUnreachable):
            svc.update()


class TestLocking:
    def test_mutation_waits_for_lock(self, svc, container: ServiceContainer) -> None:
        with mirror_lock(container.config.lock_file, timeout=1):
            with pytest.raises(LockTimeoutError):
                svc.track(["bash"])
        assert svc.track(["bash"]).success

    def test_reconcile_before_track(self, svc, store) -> None:
        svc.track(["bash"])
        store.delete_local_ref("refs/heads/packages/bash")
        svc.track(["vim"])
        assert store.local_ref_exists("refs/heads/packages/bash")


class _NoMetadata:
    def lookup_group(self, name):
        raise AssertionError(f"不应查询元数据: {name}")


class TestGroupAliasAcrossProcesses:
    """同一镜像根目录上的两个容器模拟先后两次 CLI 调用"""

    @pytest.fixture()
    def second(self, container: ServiceContainer, store) -> ServiceContainer:
        return ServiceContainer(config=container.config, refstore=store, metadata=_NoMetadata())

    def test_update_sub_package_in_new_process(self, svc, second, store) -> None:
        assert svc.track(["sub-pkg"]).success
        store.publish("core", "base-pkg")
        report = second.mirror.update(["sub-pkg"])
        assert report.success
        assert report.updated == [("core", "base-pkg")]
        assert report.fetches == 1

    def test_untrack_sub_package_in_new_process(self, svc, second, store) -> None:
        svc.track(["sub-pkg"])
        assert second.mirror.untrack(["sub-pkg"]) == {"sub-pkg": True}
        assert not store.local_ref_exists("refs/heads/packages/base-pkg")
        assert second.tracking.group_of(PackageName("sub-pkg")) is None
