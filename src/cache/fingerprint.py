# src/cache/fingerprint.py — v3
"""Dependency fingerprinting over the build's declaration files.

The digest is SHA-256 over a schema marker followed by the SHA-256 of each
file's bytes, in declared order. Order is part of the contract: the list is
never sorted, so an accidental reordering of the inputs shows up as a new
fingerprint. Missing files contribute empty content.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable

from smartcache.cache.models import CacheFingerprint
from smartcache.core.errors import InputError

DEFAULT_SCHEMA_VERSION = "v1"

# Root-level Gradle files, always listed even when absent so that creating
# or deleting one changes the fingerprint.
ROOT_MANIFESTS = (
    "build.gradle.kts",
    "settings.gradle.kts",
    "build.gradle",
    "settings.gradle",
    "gradle.properties",
)
WRAPPER_PROPERTIES = "gradle/wrapper/gradle-wrapper.properties"
MODULE_MANIFEST = "build.gradle.kts"
_SKIPPED_DIRS = {".gradle", "build", ".git", "node_modules"}

_EMPTY_DIGEST = hashlib.sha256(b"").hexdigest()


def compute_fingerprint(
    file_paths: Iterable[Path | str],
    schema_version: str = DEFAULT_SCHEMA_VERSION,
) -> CacheFingerprint:
    """Compute the fingerprint of an ordered list of dependency files.

    Args:
        file_paths: Dependency declaration files in canonical order.
        schema_version: Marker mixed into the digest; bump it to invalidate
            every existing cache without touching the files.

    Returns:
        CacheFingerprint with a 64-char lowercase hex value.

    Raises:
        InputError: If the file list is empty.
        OSError: If an existing file cannot be read.
    """
    paths = [Path(p) for p in file_paths]
    if not paths:
        raise InputError("compute_fingerprint requires at least one file path")

    digest = hashlib.sha256()
    digest.update(f"smartcache-fingerprint:{schema_version}\n".encode("utf-8"))
    for path in paths:
        digest.update(_file_digest(path).encode("ascii"))
        digest.update(b"\n")

    return CacheFingerprint(
        value=digest.hexdigest(),
        schema_version=schema_version,
        files=[str(p) for p in paths],
    )


def discover_manifest_files(project_dir: Path) -> list[Path]:
    """Return the canonical ordered dependency file list for a Gradle project.

    Root manifests first, then nested module ``build.gradle.kts`` files in
    sorted relative-path order, then the wrapper properties.
    """
    project_dir = Path(project_dir)
    files = [project_dir / name for name in ROOT_MANIFESTS]
    files.extend(_module_manifests(project_dir))
    files.append(project_dir / WRAPPER_PROPERTIES)
    return files


def resolve_manifest_files(project_dir: Path, overrides: list[str] | None = None) -> list[Path]:
    """Use explicit manifest overrides when given, otherwise discover them."""
    if overrides:
        return [Path(project_dir) / name for name in overrides]
    return discover_manifest_files(project_dir)


def _file_digest(path: Path) -> str:
    """SHA-256 of file bytes, or of empty content when the file is missing."""
    if not path.is_file():
        return _EMPTY_DIGEST
    h = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            h.update(block)
    return h.hexdigest()


def _module_manifests(project_dir: Path) -> list[Path]:
    if not project_dir.is_dir():
        return []
    found: list[Path] = []
    for path in project_dir.rglob(MODULE_MANIFEST):
        rel = path.relative_to(project_dir)
        if len(rel.parts) == 1:
            continue  # root manifest, already listed
        if any(part in _SKIPPED_DIRS for part in rel.parts[:-1]):
            continue
        found.append(path)
    return sorted(found, key=lambda p: p.relative_to(project_dir).as_posix())
