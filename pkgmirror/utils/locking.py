"""镜像根目录的咨询式文件锁

同一镜像上的多个进程并发写入（缓存重建、跟踪、拉取）会互相覆盖，
所有变更操作在持有该锁期间执行。
"""

from __future__ import annotations

import fcntl
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pkgmirror.core.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


@contextmanager
def mirror_lock(lock_file: Path | str, timeout: float = 30.0) -> Iterator[None]:
    """获取排他锁，超时抛 LockTimeoutError

    使用 fcntl.flock 非阻塞模式轮询；锁文件本身保留，不在释放时删除，
    避免删除与他人加锁之间的竞争。
    """
    target = Path(lock_file)
    target.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout

    with open(target, "a+", encoding="utf-8") as fh:
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(
                        f"{timeout} 秒内未能获取镜像锁: {target}（是否有其他 pkgmirror 进程在运行？）"
                    ) from None
                time.sleep(_POLL_INTERVAL)
        logger.debug("已获取镜像锁: %s", target)
        try:
            yield
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
            logger.debug("已释放镜像锁: %s", target)
