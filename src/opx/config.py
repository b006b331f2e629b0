"""Load and validate ``opx.yaml`` configuration."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator

from .errors import ConfigError
from .tools.paths import WorkspaceRoot

DEFAULT_CONFIG_NAME = "opx.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "workspace": {
        "roots": [],
    },
    "apply": {
        "ambiguous_match": "fail",
        "encoding": "utf-8",
        "preprocess": True,
    },
    "logging": {
        "level": "WARNING",
    },
}

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class _ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RootConfig(_ConfigModel):
    name: str = Field(min_length=1)
    path: str = Field(min_length=1)


class WorkspaceConfig(_ConfigModel):
    roots: List[RootConfig] = Field(default_factory=list)


class ApplyConfig(_ConfigModel):
    ambiguous_match: Literal["fail", "first"] = "fail"
    encoding: str = "utf-8"
    preprocess: bool = True


class LoggingConfig(_ConfigModel):
    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level


class OPXConfig(_ConfigModel):
    """Validated configuration; every section falls back to its defaults."""

    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    apply: ApplyConfig = Field(default_factory=ApplyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    _source: Path | None = PrivateAttr(default=None)

    @property
    def source(self) -> Path | None:
        """Resolved path of the file this configuration was loaded from."""
        return self._source

    def workspace_roots(self, base: Path | None = None) -> List[WorkspaceRoot]:
        """Materialise configured roots, resolving relative paths against ``base``."""
        anchor = base or (self.source.parent if self.source else Path.cwd())
        roots: List[WorkspaceRoot] = []
        for entry in self.workspace.roots:
            candidate = Path(entry.path).expanduser()
            if not candidate.is_absolute():
                candidate = anchor / candidate
            roots.append(WorkspaceRoot.from_path(candidate, entry.name))
        return roots


def default_config_data() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def parse_config(data: Mapping[str, Any], *, source: Path | None = None) -> OPXConfig:
    """Validate an already-loaded mapping."""
    try:
        config = OPXConfig.model_validate(dict(data))
    except ValidationError as error:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()
        )
        label = source or "<config>"
        raise ConfigError(f"Invalid configuration in {label}: {problems}", details={"path": str(label)}) from error
    config._source = source
    return config


def load_config(config_path: Path | str | None = None) -> OPXConfig:
    """Load YAML configuration from disk; a missing file yields the defaults."""
    path = Path(config_path or DEFAULT_CONFIG_NAME)
    if not path.exists():
        return OPXConfig()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}", details={"path": str(path)}) from error
    except OSError as error:
        raise ConfigError(f"Failed to read config {path}: {error}", details={"path": str(path)}) from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.", details={"path": str(path)})

    return parse_config(data, source=path.resolve())


def write_default_config(config_path: Path) -> None:
    """Persist the default configuration template with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(default_config_data(), handle, sort_keys=False)


__all__ = [
    "ApplyConfig",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "LoggingConfig",
    "OPXConfig",
    "RootConfig",
    "WorkspaceConfig",
    "default_config_data",
    "load_config",
    "parse_config",
    "write_default_config",
]
