"""引用存储适配器 — 对底层 git 对象库的薄封装

职责:
- 列出远程 namespace 下的引用（ls-remote）
- 按 refspec 批量拉取（每个远程一次 fetch）
- 本地引用的列出/创建/强制更新/删除/存在性检查

GitRefStore 通过 CommandExecutor 调用 git，测试时可注入 fake 执行器，
上层组件只依赖 RefStore 协议。
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

from pkgmirror.core.exceptions import (
    AuthFailure,
    ExecutionError,
    RefNotFound,
    RemoteUnreachable,
)
from pkgmirror.core.models import Remote
from pkgmirror.utils.shell import CommandExecutor, CommandResult, LocalExecutor, run_checked

logger = logging.getLogger(__name__)

_AUTH_PATTERNS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "access denied",
    "http basic: access denied",
)
_MISSING_REF_RE = re.compile(r"couldn't find remote ref (\S+)", re.IGNORECASE)


class RefStore(Protocol):
    """引用存储协议"""

    def list_remote_refs(self, remote: Remote, pattern: str) -> list[str]: ...

    def fetch_refs(self, remote: Remote, refspecs: list[str]) -> None: ...

    def list_local_refs(self, pattern: str) -> list[str]: ...

    def create_or_update_local_ref(self, name: str, target: str) -> None: ...

    def delete_local_ref(self, name: str) -> None: ...

    def local_ref_exists(self, name: str) -> bool: ...

    def read_ref(self, name: str) -> str | None: ...


def classify_remote_failure(remote: Remote, result: CommandResult) -> Exception:
    """将 git 远程命令的失败输出归类为 AuthFailure / RefNotFound / RemoteUnreachable"""
    stderr = result.stderr.strip()
    lowered = stderr.lower()
    if any(p in lowered for p in _AUTH_PATTERNS):
        return AuthFailure(remote.name, stderr[:300])
    m = _MISSING_REF_RE.search(stderr)
    if m:
        return RefNotFound(remote.name, m.group(1))
    return RemoteUnreachable(remote.name, stderr[:300] or f"rc={result.returncode}")


class GitRefStore:
    """基于本地裸仓库的 git 引用存储"""

    def __init__(
        self,
        store_dir: Path | str,
        remotes: list[Remote],
        executor: CommandExecutor | None = None,
    ) -> None:
        self.store_dir = Path(store_dir)
        self.remotes = list(remotes)
        self.executor = executor or LocalExecutor()
        self._initialized = False

    # ---- 初始化 ----

    def ensure_initialized(self) -> None:
        """首次使用时创建裸仓库并登记所有远程（url 变化时更新）"""
        if self._initialized:
            return
        if not (self.store_dir / "HEAD").exists():
            self.store_dir.mkdir(parents=True, exist_ok=True)
            run_checked(
                self.executor, ["git", "init", "--quiet", "--bare", str(self.store_dir)],
                label="git init",
            )
            logger.info("已初始化本地存储: %s", self.store_dir)

        configured = self._git(["remote"]).stdout.split()
        for remote in self.remotes:
            if remote.name not in configured:
                run_checked(
                    self.executor, self._args(["remote", "add", remote.name, remote.url]),
                    cwd=str(self.store_dir), label="git remote add",
                )
                continue
            current = self._git(["remote", "get-url", remote.name]).stdout.strip()
            if current != remote.url:
                run_checked(
                    self.executor, self._args(["remote", "set-url", remote.name, remote.url]),
                    cwd=str(self.store_dir), label="git remote set-url",
                )
                logger.info("远程 %s url 已更新: %s -> %s", remote.name, current, remote.url)
        self._initialized = True

    # ---- 远程操作 ----

    def list_remote_refs(self, remote: Remote, pattern: str) -> list[str]:
        """列出远程上匹配 pattern 的引用名（按远程通告顺序）"""
        r = self.executor.execute(["git", "ls-remote", remote.url, pattern])
        if not r.success:
            raise classify_remote_failure(remote, r)
        refs: list[str] = []
        for line in r.stdout.splitlines():
            parts = line.split("\t", 1)
            if len(parts) == 2 and parts[1]:
                refs.append(parts[1].strip())
        return refs

    def fetch_refs(self, remote: Remote, refspecs: list[str]) -> None:
        """一次 fetch 拉取该远程的全部 refspec"""
        if not refspecs:
            return
        self.ensure_initialized()
        r = self._git(["fetch", "--quiet", "--no-tags", remote.name, *refspecs])
        if not r.success:
            raise classify_remote_failure(remote, r)

    # ---- 本地引用 ----

    def list_local_refs(self, pattern: str) -> list[str]:
        self.ensure_initialized()
        r = self._git(["for-each-ref", "--format=%(refname)", pattern])
        if not r.success:
            raise ExecutionError(f"git for-each-ref 失败: {r.stderr[:300]}")
        return [line.strip() for line in r.stdout.splitlines() if line.strip()]

    def create_or_update_local_ref(self, name: str, target: str) -> None:
        self.ensure_initialized()
        sha = self.read_ref(target)
        if sha is None:
            raise ExecutionError(f"无法创建引用 {name}: 目标 {target} 不存在")
        run_checked(
            self.executor, self._args(["update-ref", name, sha]),
            cwd=str(self.store_dir), label="git update-ref",
        )

    def delete_local_ref(self, name: str) -> None:
        if not self.local_ref_exists(name):
            return
        run_checked(
            self.executor, self._args(["update-ref", "-d", name]),
            cwd=str(self.store_dir), label="git update-ref -d",
        )

    def local_ref_exists(self, name: str) -> bool:
        self.ensure_initialized()
        return self._git(["show-ref", "--verify", "--quiet", name]).success

    def read_ref(self, name: str) -> str | None:
        """返回引用指向的 commit，不存在返回 None"""
        self.ensure_initialized()
        r = self._git(["rev-parse", "--verify", "--quiet", f"{name}^{{commit}}"])
        if not r.success:
            return None
        return r.stdout.strip() or None

    # ---- 内部 ----

    def _args(self, args: list[str]) -> list[str]:
        return ["git", "--git-dir", str(self.store_dir), *args]

    def _git(self, args: list[str]) -> CommandResult:
        return self.executor.execute(self._args(args), cwd=str(self.store_dir))
