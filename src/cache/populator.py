# src/cache/populator.py — v1
"""Dependency populators: fill a staging directory with the project's dependencies.

Every external process runs with a caller-supplied timeout; a timeout or a
non-zero exit raises TransientIOError so the caller can discard the staging
directory and keep the committed cache.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from abc import ABC, abstractmethod
from pathlib import Path

from smartcache.core.errors import TransientIOError

logger = logging.getLogger(__name__)

# Gradle's dependency cache layout: files-2.1/<group>/<artifact>/<version>/<sha1>/<file>
GRADLE_FILES_DIR = Path("caches") / "modules-2" / "files-2.1"

DEFAULT_GRADLE_STEPS: tuple[tuple[str, ...], ...] = (
    ("dependencies", "--refresh-dependencies"),
    ("assembleDebug", "--build-cache", "--dry-run"),
)


class BaseDependencyPopulator(ABC):
    """Unified interface for cache population strategies."""

    def __init__(self, timeout_s: float = 1800.0) -> None:
        self._timeout_s = timeout_s

    @abstractmethod
    async def populate(self, staging_dir: Path, project_dir: Path) -> None:
        """Download/build the dependency set into ``staging_dir``."""

    def count_dependencies(self, staging_dir: Path) -> int:
        """Count distinct group/artifact/version directories in a Gradle cache."""
        root = staging_dir / GRADLE_FILES_DIR
        if not root.is_dir():
            return 0
        return sum(
            1
            for group in root.iterdir() if group.is_dir()
            for artifact in group.iterdir() if artifact.is_dir()
            for version in artifact.iterdir() if version.is_dir()
        )

    async def _run(self, argv: list[str], cwd: Path, env: dict[str, str]) -> None:
        """Run one external command with the populate timeout."""
        logger.info("Running %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise TransientIOError("populate", f"cannot start {argv[0]}: {e}") from e

        try:
            output, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TransientIOError(
                "populate", f"{argv[0]} timed out after {self._timeout_s:.0f}s"
            ) from None

        text = output.decode("utf-8", errors="replace") if output else ""
        for line in text.splitlines():
            if "Download" in line:
                logger.debug("%s", line)
        if proc.returncode != 0:
            tail = "\n".join(text.splitlines()[-20:])
            raise TransientIOError(
                "populate", f"{argv[0]} exited with {proc.returncode}: {tail}"
            )


class GradlePopulator(BaseDependencyPopulator):
    """Populate via the project's Gradle wrapper with GRADLE_USER_HOME=staging."""

    def __init__(
        self,
        timeout_s: float = 1800.0,
        steps: tuple[tuple[str, ...], ...] = DEFAULT_GRADLE_STEPS,
    ) -> None:
        super().__init__(timeout_s)
        self._steps = steps

    async def populate(self, staging_dir: Path, project_dir: Path) -> None:
        wrapper = project_dir / "gradlew"
        if not wrapper.is_file():
            logger.warning("No Gradle wrapper at %s, recording an empty cache", wrapper)
            return

        env = dict(os.environ)
        env["GRADLE_USER_HOME"] = str(staging_dir)
        for step in self._steps:
            await self._run(["./gradlew", "--no-daemon", *step], cwd=project_dir, env=env)


class CommandPopulator(BaseDependencyPopulator):
    """Populate with an arbitrary command line; the staging path is exported."""

    def __init__(self, command: str, timeout_s: float = 1800.0) -> None:
        super().__init__(timeout_s)
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("CommandPopulator requires a non-empty command")

    async def populate(self, staging_dir: Path, project_dir: Path) -> None:
        env = dict(os.environ)
        env["SMARTCACHE_STAGING_DIR"] = str(staging_dir)
        env["GRADLE_USER_HOME"] = str(staging_dir)
        await self._run(self._argv, cwd=project_dir, env=env)


class NullPopulator(BaseDependencyPopulator):
    """Record the fingerprint only; the build fills the cache itself."""

    async def populate(self, staging_dir: Path, project_dir: Path) -> None:
        logger.debug("Null populator: nothing to download into %s", staging_dir)


def create_populator(kind: str, timeout_s: float = 1800.0, command: str = "") -> BaseDependencyPopulator:
    """Instantiate the configured populator.

    Raises:
        ValueError: For an unknown kind or a missing command.
    """
    if kind == "gradle":
        return GradlePopulator(timeout_s=timeout_s)
    if kind == "command":
        return CommandPopulator(command, timeout_s=timeout_s)
    if kind == "none":
        return NullPopulator(timeout_s=timeout_s)
    raise ValueError(f"Unsupported cache populator: {kind!r}")
