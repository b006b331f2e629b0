"""Resolve OPX edit paths against one or more named workspace roots."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence, Tuple
from urllib.parse import unquote, urlparse

from ..errors import PathResolutionError


@dataclass(slots=True, frozen=True)
class WorkspaceRoot:
    """Named directory that edits may target."""

    name: str
    path: Path

    @classmethod
    def from_path(cls, path: Path | str, name: str | None = None) -> "WorkspaceRoot":
        resolved = Path(path).expanduser().resolve()
        return cls(name=name or resolved.name, path=resolved)


class PathResolver(Protocol):
    """Maps an edit path (plus optional root name) onto an absolute path."""

    def resolve(self, edit_path: str, root: str | None = None) -> Path:
        ...


def _normalise_relative(value: str) -> str:
    """Drop a leading ``./`` and convert backslashes to forward slashes."""
    if value.startswith("./") or value.startswith(".\\"):
        value = value[2:]
    return value.replace("\\", "/")


def _file_uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    raw = unquote(parsed.path)
    if parsed.netloc and parsed.netloc != "localhost":
        raw = f"//{parsed.netloc}{raw}"
    if os.name == "nt" and raw.startswith("/") and len(raw) > 2 and raw[2] == ":":
        raw = raw[1:]
    return Path(raw)


def _lexical(path: Path) -> Path:
    """Absolute, normalised form of ``path``; symlinks are left in place."""
    return Path(os.path.normpath(os.path.abspath(path.expanduser())))


class WorkspacePathResolver:
    """Default resolver for workspace-relative, absolute and ``file://`` paths."""

    def __init__(self, roots: Iterable[WorkspaceRoot]) -> None:
        self.roots: Tuple[WorkspaceRoot, ...] = tuple(roots)

    @classmethod
    def from_mapping(cls, roots: Mapping[str, Path | str]) -> "WorkspacePathResolver":
        return cls(WorkspaceRoot.from_path(path, name) for name, path in roots.items())

    @classmethod
    def single(cls, path: Path | str) -> "WorkspacePathResolver":
        return cls([WorkspaceRoot.from_path(path)])

    def available(self) -> str:
        return ", ".join(root.name for root in self.roots) or "<none>"

    def _find_root(self, name: str) -> WorkspaceRoot | None:
        for root in self.roots:
            if root.name == name:
                return root
        return None

    def _ensure_inside(self, candidate: Path) -> Path:
        resolved = _lexical(candidate)
        if not self.roots:
            return resolved
        # Roots are stored resolved; an absolute path may name them through an alias.
        via_parent = Path(os.path.realpath(resolved.parent)) / resolved.name
        for root in self.roots:
            for form in (resolved, via_parent):
                if form == root.path or form.is_relative_to(root.path):
                    return resolved
        raise PathResolutionError(
            f"Path is outside the current workspace: {resolved}",
            details={"path": str(resolved), "roots": self.available()},
        )

    def _join(self, root: WorkspaceRoot, relative: str) -> Path:
        target = _lexical(root.path / _normalise_relative(relative))
        if target != root.path and not target.is_relative_to(root.path):
            raise PathResolutionError(
                f"Path is outside the current workspace: {target}",
                details={"path": str(target), "root": root.name},
            )
        return target

    def resolve(self, edit_path: str, root: str | None = None) -> Path:
        """Resolve ``edit_path`` to an absolute path inside a workspace root."""
        value = (edit_path or "").strip()
        if not value:
            raise PathResolutionError("Empty path cannot be resolved")

        if value.startswith("file://"):
            return self._ensure_inside(_file_uri_to_path(value))

        if Path(value).is_absolute():
            return self._ensure_inside(Path(value))

        if not self.roots:
            raise PathResolutionError(f"No workspace is open. Cannot resolve path: {value}")

        if root:
            target_root = self._find_root(root)
            if target_root is None:
                raise PathResolutionError(
                    f'Workspace root "{root}" not found. Available: {self.available()}',
                    details={"root": root},
                )
            return self._join(target_root, value)

        if len(self.roots) == 1:
            return self._join(self.roots[0], value)

        prefix, sep, remainder = value.partition(":")
        if sep and prefix:
            target_root = self._find_root(prefix)
            if target_root is not None:
                return self._join(target_root, remainder)

        raise PathResolutionError(
            f'Ambiguous workspace path "{value}". Provide a root attribute or use '
            '"<rootName>:<relative/path>" format.',
            details={"path": value, "roots": self.available()},
        )


def build_resolver(roots: Sequence[WorkspaceRoot] | None = None) -> WorkspacePathResolver:
    """Return a resolver for ``roots``, defaulting to the current directory."""
    if not roots:
        return WorkspacePathResolver.single(Path.cwd())
    return WorkspacePathResolver(roots)


__all__ = [
    "PathResolver",
    "WorkspacePathResolver",
    "WorkspaceRoot",
    "build_resolver",
]
