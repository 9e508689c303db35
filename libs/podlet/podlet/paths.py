"""
Host path resolution.

Rewrites relative host paths in quadlet keys to absolute paths. Only keys
marked ``host_path`` are touched; PodmanArgs and Kubernetes YAML are left
alone.
"""

import posixpath
from dataclasses import fields, replace
from typing import Any

from .types import QuadletFile
from .values import clean_path

# SetWorkingDirectory also accepts these keywords
_KEYWORDS = ("file", "unit")


def absolutize(path: str, resolve_dir: str) -> str:
    """Make ``path`` absolute relative to ``resolve_dir``."""
    if not path or path.startswith(("%", "~")) or "://" in path:
        return path
    if posixpath.isabs(path):
        return clean_path(path)
    return clean_path(posixpath.join(resolve_dir, path))


def _map(value: Any, resolve_dir: str) -> Any:
    if isinstance(value, list):
        return [_map(item, resolve_dir) for item in value]
    if isinstance(value, str):
        return absolutize(value, resolve_dir)
    if hasattr(value, "map_host_paths"):
        return value.map_host_paths(lambda path: absolutize(path, resolve_dir))
    return value


def _resolve_section(section: Any, resolve_dir: str) -> Any:
    changes = {}
    for f in fields(section):
        spec = f.metadata.get("quadlet")
        if spec is None or not spec.host_path:
            continue
        value = getattr(section, f.name)
        if value is None:
            continue
        if spec.key == "SetWorkingDirectory" and value in _KEYWORDS:
            continue
        changes[f.name] = _map(value, resolve_dir)
    return replace(section, **changes) if changes else section


def resolve_host_paths(file: QuadletFile, resolve_dir: str) -> QuadletFile:
    """Return a copy of ``file`` with relative host paths made absolute."""
    return replace(
        file,
        resource=_resolve_section(file.resource, resolve_dir),
        globals=_resolve_section(file.globals, resolve_dir),
    )
