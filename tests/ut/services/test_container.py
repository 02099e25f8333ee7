"""ServiceContainer 单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgmirror.core.config import Config
from pkgmirror.core.refstore import GitRefStore
from pkgmirror.services.container import ServiceContainer


class TestServiceContainer:
    def test_lazy_loading(self, container: ServiceContainer) -> None:
        assert "resolver" not in container._instances
        _ = container.resolver
        assert {"resolver", "tracking", "cache"} <= set(container._instances)

    def test_shared_instances(self, container: ServiceContainer) -> None:
        assert container.tracking is container.tracking
        assert container.resolver.tracking is container.tracking
        assert container.synchronizer.resolver is container.resolver
        assert container.tracking.cache is container.cache

    def test_injected_adapters(self, container: ServiceContainer, store, metadata) -> None:
        assert container.refstore is store
        assert container.resolver.metadata is metadata

    def test_config_wiring(self, container: ServiceContainer) -> None:
        assert container.cache.ttl == 3600
        assert container.synchronizer.max_workers == container.config.max_workers

    def test_default_git_store(self, tmp_path: Path) -> None:
        c = ServiceContainer(config=Config(mirror_root=str(tmp_path)))
        assert isinstance(c.refstore, GitRefStore)
        assert c.refstore.store_dir == tmp_path / "store"


    def test_config_is_required(self) -> None:
        import pkgmirror.core.config as cfgmod

        with pytest.raises(TypeError):
            ServiceContainer()  # type: ignore[call-arg]
        assert not hasattr(cfgmod, "get_config")
        assert not hasattr(cfgmod, "_current")
