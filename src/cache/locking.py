# src/cache/locking.py — v1
"""Cross-process exclusive lock for mutations of a shared cache directory.

Uses a POSIX advisory lock (fcntl.flock) on a lock file inside the cache
directory. The lock is released by the kernel when the process dies, so a
killed build agent never leaves the cache locked.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import time
from pathlib import Path
from types import TracebackType

from smartcache.core.errors import TransientIOError

logger = logging.getLogger(__name__)

_POLL_INTERVAL_S = 0.2


class CacheLock:
    """Async context manager holding an exclusive flock on ``path``.

    Acquisition is polled without blocking, so a caller-supplied timeout
    always applies. On timeout a TransientIOError is raised.
    """

    def __init__(self, path: Path, timeout_s: float = 300.0) -> None:
        self._path = Path(path)
        self._timeout_s = timeout_s
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    async def acquire(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_RDWR | os.O_CREAT, 0o644)
        deadline = time.monotonic() + self._timeout_s
        waited = False
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise TransientIOError(
                        "lock", f"timed out after {self._timeout_s:.0f}s waiting for {self._path}"
                    ) from None
                if not waited:
                    logger.info("Waiting for cache lock %s", self._path)
                    waited = True
                await asyncio.sleep(_POLL_INTERVAL_S)
        self._fd = fd
        logger.debug("Acquired cache lock %s", self._path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released cache lock %s", self._path)

    async def __aenter__(self) -> CacheLock:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
