"""yaml_io 原子写入与读写工具测试"""

from __future__ import annotations

import os
from pathlib import Path

from pkgmirror.utils.yaml_io import atomic_write, load_yaml, read_lines, save_yaml, write_lines


class TestAtomicWrite:
    def test_sets_mtime(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "file"
        atomic_write(target, "x\n", mtime=1_000_000.0)
        assert target.read_text(encoding="utf-8") == "x\n"
        assert os.stat(target).st_mtime == 1_000_000.0

    def test_leaves_no_temp(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / "f", "x")
        assert [p.name for p in tmp_path.iterdir()] == ["f"]


class TestLines:
    def test_roundtrip_skips_blank(self, tmp_path: Path) -> None:
        path = tmp_path / "lines"
        write_lines(path, ["a", "b"])
        path.write_text(path.read_text(encoding="utf-8") + "\n\n", encoding="utf-8")
        assert read_lines(path) == ["a", "b"]


class TestYaml:
    def test_keeps_unicode_and_order(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yml"
        save_yaml(path, {"z": "镜像", "a": 1})
        assert list(load_yaml(path)) == ["z", "a"]
        assert "镜像" in path.read_text(encoding="utf-8")

    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_yaml(tmp_path / "none.yml") == {}

    def test_non_dict(self, tmp_path: Path) -> None:
        path = tmp_path / "l.yml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        assert load_yaml(path) == {}
