"""Exception hierarchy shared by the OPX parser, executor and CLI."""

from __future__ import annotations

from typing import Any, Mapping


class OPXError(RuntimeError):
    """Base error raised by OPX components."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigError(OPXError):
    """Raised when the OPX configuration file cannot be loaded or validated."""


class PathResolutionError(OPXError):
    """Raised when an edit path cannot be mapped onto a workspace root."""


class DocumentError(OPXError):
    """Raised when a workspace edit cannot be validated or applied."""


class MatchError(OPXError):
    """Raised when a search block cannot be located unambiguously."""


__all__ = [
    "ConfigError",
    "DocumentError",
    "MatchError",
    "OPXError",
    "PathResolutionError",
]
