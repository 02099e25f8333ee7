"""统一异常体系

所有业务异常继承 PkgMirrorError，每类带稳定的 code，CLI 层据此输出友好提示。

传播策略:
  - RemoteUnreachable / AuthFailure: 终止当前整个操作
  - UnknownPackage: 批量场景下按条目报告，其余条目继续
  - CacheCorrupt / MetadataLookupFailed / InvariantViolation: 内部捕获并自愈，不向上抛出
"""

from __future__ import annotations


class PkgMirrorError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PkgMirrorError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(PkgMirrorError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(PkgMirrorError):
    """本地命令执行失败"""

    code = "EXECUTION_ERROR"


class RemoteUnreachable(PkgMirrorError):
    """远程不可达（网络/传输层失败），不自动重试"""

    code = "REMOTE_UNREACHABLE"

    def __init__(self, remote: str, reason: str) -> None:
        super().__init__(f"远程 '{remote}' 不可达: {reason}")
        self.remote = remote
        self.reason = reason


class AuthFailure(RemoteUnreachable):
    """远程认证失败"""

    code = "AUTH_FAILURE"

    def __init__(self, remote: str, reason: str) -> None:
        PkgMirrorError.__init__(self, f"远程 '{remote}' 认证失败: {reason}")
        self.remote = remote
        self.reason = reason


class RefNotFound(PkgMirrorError):
    """拉取时远程不存在所请求的引用"""

    code = "REF_NOT_FOUND"

    def __init__(self, remote: str, ref: str) -> None:
        super().__init__(f"远程 '{remote}' 上不存在引用: {ref}")
        self.remote = remote
        self.ref = ref


class UnknownPackage(PkgMirrorError):
    """没有任何远程（或其所属包组）托管该包"""

    code = "UNKNOWN_PACKAGE"

    def __init__(self, name: str, reason: str = "") -> None:
        msg = f"没有远程托管包 '{name}'"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.name = name


class CacheCorrupt(PkgMirrorError):
    """缓存文件无法读取或格式错误，触发重建"""

    code = "CACHE_CORRUPT"


class MetadataLookupFailed(PkgMirrorError):
    """包组查询服务出错，视为无结果"""

    code = "METADATA_LOOKUP_FAILED"


class InvariantViolation(PkgMirrorError):
    """跟踪记录与本地引用不一致"""

    code = "INVARIANT_VIOLATION"


class LockTimeoutError(PkgMirrorError):
    """在超时内未能获取镜像锁"""

    code = "LOCK_TIMEOUT"
