"""pkgmirror - 包名解析与本地引用镜像同步工具"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

__version__ = "0.3.0"


@lru_cache(maxsize=1)
def build_timestamp() -> float:
    """返回当前安装版本的构建时间戳（包内源文件的最新 mtime）

    升级后该值变大，早于它写入的引用缓存一律视为过期。
    """
    root = Path(__file__).resolve().parent
    return max((p.stat().st_mtime for p in root.rglob("*.py")), default=0.0)
