"""shell.py LocalExecutor / run_checked 单元测试"""

from __future__ import annotations

import pytest

from pkgmirror.core.exceptions import ExecutionError
from pkgmirror.utils.shell import CommandResult, LocalExecutor, run_checked


class TestLocalExecutor:
    def test_success(self, tmp_path) -> None:
        r = LocalExecutor().execute(["echo", "hello"], cwd=str(tmp_path))
        assert r.success
        assert "hello" in r.stdout

    def test_string_command_is_split(self, tmp_path) -> None:
        r = LocalExecutor().execute("echo 'a b'", cwd=str(tmp_path))
        assert r.stdout.strip() == "a b"

    def test_failure_returns_result(self, tmp_path) -> None:
        r = LocalExecutor().execute(["false"], cwd=str(tmp_path))
        assert not r.success

    def test_missing_command(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="命令不存在"):
            LocalExecutor().execute(["definitely-not-a-command-xyz"], cwd=str(tmp_path))

    def test_env_passed(self, tmp_path) -> None:
        import os
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = LocalExecutor().execute(["env"], cwd=str(tmp_path), env=env)
        assert "MY_TEST_VAR=42" in r.stdout


class _StubExecutor:
    def __init__(self, result: CommandResult) -> None:
        self.result = result
        self.calls: list = []

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        self.calls.append((cmd, cwd))
        return self.result


class TestRunChecked:
    def test_success(self) -> None:
        ex = _StubExecutor(CommandResult(0, "ok", ""))
        assert run_checked(ex, ["x"], cwd="/tmp").stdout == "ok"
        assert ex.calls == [(["x"], "/tmp")]

    def test_failure_raises(self) -> None:
        with pytest.raises(ExecutionError, match="cmd失败"):
            run_checked(_StubExecutor(CommandResult(1, "", "boom")), ["x"])

    def test_custom_label_in_error(self) -> None:
        with pytest.raises(ExecutionError, match="git init失败 \\(rc=128\\): boom"):
            run_checked(_StubExecutor(CommandResult(128, "", "boom")), ["x"], label="git init")
