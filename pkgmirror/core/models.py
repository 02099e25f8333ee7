"""核心数据模型

远程、包名均建模为带校验的值类型，避免字符串在调用链中被混用。
其他模块统一从此处导入 Remote / PackageName / Resolution 等实体。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pkgmirror.core.exceptions import ValidationError

_REMOTE_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._\-]*")
_PKGNAME_RE = re.compile(r"[A-Za-z0-9@_+][A-Za-z0-9@._+\-]*")


# =========================================================================
# 远程
# =========================================================================


@dataclass(frozen=True)
class Remote:
    """已配置的上游远程 — 在其 namespace 下以引用形式托管包

    name 即 git remote 名，同时作为 channel/name 形式输入中的 channel。
    """

    name: str
    url: str
    namespace: str = "packages/"

    def __post_init__(self) -> None:
        if not _REMOTE_NAME_RE.fullmatch(self.name):
            raise ValidationError(f"远程名非法: {self.name!r}")
        if not self.url:
            raise ValidationError(f"远程 '{self.name}' 必须指定 url")
        if not self.namespace.endswith("/") or self.namespace.startswith("/"):
            raise ValidationError(
                f"远程 '{self.name}' 的 namespace 必须形如 'packages/': {self.namespace!r}"
            )

    def __str__(self) -> str:
        return self.name

    @property
    def ref_pattern(self) -> str:
        """远程端包引用的匹配模式"""
        return f"refs/heads/{self.namespace}*"

    def remote_ref(self, pkg: PackageName) -> str:
        """包在远程端的引用名"""
        return f"refs/heads/{self.namespace}{pkg}"

    def fetched_ref(self, pkg: PackageName) -> str:
        """拉取后在本地存放的远程跟踪引用"""
        return f"refs/remotes/{self.name}/{self.namespace}{pkg}"

    def local_ref(self, pkg: PackageName) -> str:
        """本地镜像引用（同一包同时只跟踪一个远程，因此不含远程名）"""
        return f"refs/heads/{self.namespace}{pkg}"

    def refspec(self, pkg: PackageName) -> str:
        """强制更新的拉取 refspec"""
        return f"+{self.remote_ref(pkg)}:{self.fetched_ref(pkg)}"

    def strip_namespace(self, ref: str) -> str | None:
        """从远程引用名中剥离前缀，得到裸包名；不在 namespace 下则返回 None"""
        prefix = f"refs/heads/{self.namespace}"
        if not ref.startswith(prefix):
            return None
        return ref[len(prefix):] or None


# =========================================================================
# 包名
# =========================================================================


@dataclass(frozen=True, order=True)
class PackageName:
    """包名 — 区分大小写，不含路径分隔符"""

    value: str

    def __post_init__(self) -> None:
        if not _PKGNAME_RE.fullmatch(self.value):
            raise ValidationError(f"包名非法: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> tuple[str | None, PackageName]:
        """解析用户输入，支持 channel/name 形式，返回 (channel, name)"""
        raw = text.strip()
        channel: str | None = None
        name = raw
        if "/" in raw:
            channel, _, name = raw.partition("/")
            if not channel or "/" in name:
                raise ValidationError(f"无法解析包名（应为 name 或 channel/name）: {raw!r}")
        return channel, cls(name)


# =========================================================================
# 解析 / 跟踪 / 同步结果
# =========================================================================


@dataclass(frozen=True)
class Resolution:
    """一次解析的结果（不持久化）

    via_group 非空时表示通过包组名替换解析成功，remote 托管的是包组。
    """

    name: PackageName
    remote: Remote
    via_group: PackageName | None = None

    @property
    def target(self) -> PackageName:
        """实际在远程上存在引用的包名"""
        return self.via_group or self.name


@dataclass(frozen=True)
class TrackingRecord:
    """(远程, 包) -> 本地镜像引用"""

    remote: Remote
    name: PackageName

    @property
    def local_ref(self) -> str:
        return self.remote.local_ref(self.name)

    @property
    def fetched_ref(self) -> str:
        return self.remote.fetched_ref(self.name)


@dataclass
class SyncReport:
    """同步结果汇总"""

    updated: list[tuple[str, str]] = field(default_factory=list)    # (remote, pkg)
    unchanged: list[tuple[str, str]] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)            # pkg -> 原因
    fetches: int = 0

    @property
    def success(self) -> bool:
        return not self.errors
