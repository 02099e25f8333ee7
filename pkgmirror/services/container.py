"""服务容器 — 统一依赖注入

所有组件通过容器获取，同一容器内的实例共享状态（引用缓存、跟踪集等）。
CLI 只通过容器获取服务，而非直接构造组件。

依赖关系图（→ 表示依赖）:
  refcache     → refstore
  tracking     → refstore, refcache
  resolver     → tracking, refcache, metadata
  synchronizer → refstore, tracking, resolver
  mirror       → 以上全部

用法:
    cfg = Config.from_file("configs/pkgmirror.yml")
    container = ServiceContainer(config=cfg)
    container.mirror.track(["linux"])

    # 测试中替换底层存储
    container = ServiceContainer(config=cfg, refstore=FakeRefStore())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgmirror.core.config import Config
    from pkgmirror.core.metadata import MetadataFallback
    from pkgmirror.core.refcache import RefCache
    from pkgmirror.core.refstore import RefStore
    from pkgmirror.core.resolver import Resolver
    from pkgmirror.core.synchronizer import Synchronizer
    from pkgmirror.core.tracking import TrackingSet
    from pkgmirror.services.mirror_service import MirrorService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器 — 每个实例持有一组共享的组件"""

    def __init__(
        self,
        config: Config,
        refstore: RefStore | None = None,
        metadata: MetadataFallback | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        self._config = config
        if refstore is not None:
            self._instances["refstore"] = refstore
        if metadata is not None:
            self._instances["metadata"] = metadata

    @property
    def config(self) -> Config:
        return self._config

    # ---- 外部协作者适配器 ----

    @property
    def refstore(self) -> RefStore:
        if "refstore" not in self._instances:
            from pkgmirror.core.refstore import GitRefStore
            self._instances["refstore"] = GitRefStore(
                store_dir=self._config.store_dir,
                remotes=self._config.remotes,
            )
        return self._instances["refstore"]  # type: ignore[return-value]

    @property
    def metadata(self) -> MetadataFallback:
        if "metadata" not in self._instances:
            from pkgmirror.core.metadata import MetadataFallback
            self._instances["metadata"] = MetadataFallback(
                url_template=self._config.metadata_url,
                field=self._config.metadata_field,
                timeout=self._config.metadata_timeout,
            )
        return self._instances["metadata"]  # type: ignore[return-value]

    # ---- 核心组件 ----

    @property
    def cache(self) -> RefCache:
        if "cache" not in self._instances:
            from pkgmirror.core.refcache import RefCache
            self._instances["cache"] = RefCache(
                store=self.refstore,
                cache_dir=self._config.cache_dir,
                ttl=self._config.cache_ttl,
            )
        return self._instances["cache"]  # type: ignore[return-value]

    @property
    def tracking(self) -> TrackingSet:
        if "tracking" not in self._instances:
            from pkgmirror.core.tracking import TrackingSet
            self._instances["tracking"] = TrackingSet(
                store=self.refstore,
                remotes=self._config.remotes,
                tracking_file=self._config.tracking_file,
                cache=self.cache,
            )
        return self._instances["tracking"]  # type: ignore[return-value]

    @property
    def resolver(self) -> Resolver:
        if "resolver" not in self._instances:
            from pkgmirror.core.resolver import Resolver
            self._instances["resolver"] = Resolver(
                remotes=self._config.remotes,
                tracking=self.tracking,
                cache=self.cache,
                metadata=self.metadata,
            )
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def synchronizer(self) -> Synchronizer:
        if "synchronizer" not in self._instances:
            from pkgmirror.core.synchronizer import Synchronizer
            self._instances["synchronizer"] = Synchronizer(
                store=self.refstore,
                tracking=self.tracking,
                resolver=self.resolver,
                max_workers=self._config.max_workers,
            )
        return self._instances["synchronizer"]  # type: ignore[return-value]

    # ---- 服务层 ----

    @property
    def mirror(self) -> MirrorService:
        if "mirror" not in self._instances:
            from pkgmirror.services.mirror_service import MirrorService
            self._instances["mirror"] = MirrorService(self)
        return self._instances["mirror"]  # type: ignore[return-value]

