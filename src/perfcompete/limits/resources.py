"""Limits resource resolution, checksums and atomic writes.

A resource name resolves to a file on disk (the exact path first, then the
base directory joined with the name) or, failing that, to a file shipped
inside the benchmark module's package whose relative path ends with the
name. Package resources are read-only.
"""

from __future__ import annotations

import hashlib
import importlib.resources
import importlib.util
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from perfcompete.logging import get_logger

log = get_logger("resources")


@dataclass(frozen=True)
class ResolvedResource:
    """A limits resource located on disk or inside a package."""

    name: str
    path: Path | None = None
    package: str | None = None
    package_path: str | None = None  # posix path relative to the package root

    @property
    def is_embedded(self) -> bool:
        return self.package is not None

    @property
    def key(self) -> str:
        """Identity of the physical resource, used as the cache key."""
        if self.is_embedded:
            return f"package:{self.package}/{self.package_path}"
        assert self.path is not None
        return str(self.path.resolve())

    def __str__(self) -> str:
        if self.is_embedded:
            return f"{self.package}:{self.package_path}"
        return str(self.path)

    def read(self) -> bytes | None:
        """Return the resource content, or None if the file does not exist."""
        if self.is_embedded:
            assert self.package is not None and self.package_path is not None
            node = importlib.resources.files(self.package)
            for part in self.package_path.split("/"):
                node = node.joinpath(part)
            return node.read_bytes()
        assert self.path is not None
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None


def select_resource_name(names: tuple[str, ...] | list[str], default: str | None) -> str | None:
    """Return the innermost non-empty name, else *default*."""
    for name in reversed(names):
        if name:
            return name
    return default or None


def resolve_resource(
    name: str,
    *,
    base_dir: Path | None = None,
    module: str | None = None,
) -> ResolvedResource:
    """Locate the resource called *name*.

    When nothing exists yet, the result points at the file that would be
    created: the base directory joined with *name* (or *name* itself).

    Args:
        name: Resource name or path.
        base_dir: Directory searched after *name* itself.
        module: Module whose package may embed the resource.

    Returns:
        The resolved resource. Embedded resources have no path.
    """
    exact = Path(name)
    if exact.is_file():
        return ResolvedResource(name, path=exact)
    if base_dir is not None and (base_dir / name).is_file():
        return ResolvedResource(name, path=base_dir / name)

    if module:
        embedded = _find_package_resource(name, module)
        if embedded is not None:
            return embedded

    if base_dir is not None and not exact.is_absolute():
        return ResolvedResource(name, path=base_dir / name)
    return ResolvedResource(name, path=exact)


def _module_package(module: str) -> str | None:
    try:
        spec = importlib.util.find_spec(module)
    except (ImportError, ValueError):
        return None
    if spec is None:
        return None
    if spec.submodule_search_locations is not None:
        return module
    return module.rpartition(".")[0] or None


def _find_package_resource(name: str, module: str) -> ResolvedResource | None:
    package = _module_package(module)
    if package is None:
        return None
    try:
        root = importlib.resources.files(package)
    except (ModuleNotFoundError, TypeError):
        return None
    suffix = name.replace(os.sep, "/").lstrip("/")
    for rel_path in sorted(_walk(root, "")):
        if rel_path == suffix or rel_path.endswith("/" + suffix):
            log.debug("Resource %s resolved to package %s: %s", name, package, rel_path)
            return ResolvedResource(name, package=package, package_path=rel_path)
    return None


def _walk(node: Any, prefix: str) -> list[str]:
    found: list[str] = []
    for child in node.iterdir():
        rel = f"{prefix}{child.name}"
        if child.is_dir():
            if child.name != "__pycache__":
                found.extend(_walk(child, rel + "/"))
        elif child.is_file():
            found.append(rel)
    return found


# ---------------------------------------------------------------------------
# Checksums and writes
# ---------------------------------------------------------------------------


def checksum(content: bytes | None) -> str | None:
    """SHA-256 hex digest of *content*; None stands for a missing file."""
    if content is None:
        return None
    return hashlib.sha256(content).hexdigest()


def atomic_write(path: Path, content: bytes) -> None:
    """Write *content* to a temporary file next to *path*, then replace it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
