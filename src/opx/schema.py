"""Typed records exchanged between the OPX parser and the execution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Occurrence = Union[Literal["first", "last"], int]


class RecordModel(BaseModel):
    """Base Pydantic model for immutable value records."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ActionKind(str, Enum):
    """File mutation kinds understood by the execution engine."""

    CREATE = "create"
    REWRITE = "rewrite"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"


@dataclass(slots=True)
class RawEdit:
    """One ``<edit>`` element located in the sanitized response."""

    offset: int
    end: int
    attributes: Dict[str, str] = field(default_factory=dict)
    body: str | None = None

    @property
    def self_closing(self) -> bool:
        return self.body is None


class ChangeBlock(RecordModel):
    """Single replacement unit inside a file action."""

    description: str
    content: str
    search: Optional[str] = None
    occurrence: Optional[Occurrence] = None


class FileAction(RecordModel):
    """Validated request to mutate one file."""

    path: str
    action: ActionKind
    root: Optional[str] = None
    new_path: Optional[str] = None
    changes: Tuple[ChangeBlock, ...] = ()

    @model_validator(mode="after")
    def _check_shape(self) -> "FileAction":
        if not self.path.strip():
            raise ValueError("path must not be empty")
        if self.action is ActionKind.RENAME and not (self.new_path or "").strip():
            raise ValueError("rename actions require new_path")
        if self.action in (ActionKind.CREATE, ActionKind.REWRITE, ActionKind.MODIFY) and not self.changes:
            raise ValueError(f"{self.action.value} actions require at least one change block")
        if self.action is ActionKind.MODIFY:
            for change in self.changes:
                if not (change.search or "").strip():
                    raise ValueError("modify change blocks require a non-empty search block")
        return self


class ActionResult(RecordModel):
    """Outcome of executing one file action."""

    path: str
    action: ActionKind
    success: bool
    message: str
    new_path: Optional[str] = None


class ParseOutcome(RecordModel):
    """File actions recovered from a response plus per-element errors."""

    actions: Tuple[FileAction, ...] = ()
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


class ChangeSummary(RecordModel):
    """Estimated line delta for a previewed action."""

    added: int = 0
    removed: int = 0


class PreviewRow(RecordModel):
    """Preview of a single file action prior to execution."""

    path: str
    action: ActionKind
    description: str
    changes: ChangeSummary = Field(default_factory=ChangeSummary)
    new_path: Optional[str] = None
    has_error: bool = False
    error_message: Optional[str] = None
    change_blocks: Tuple[ChangeBlock, ...] = ()


class PreviewData(RecordModel):
    """Preview rows for a batch of file actions."""

    rows: Tuple[PreviewRow, ...] = ()
    errors: Tuple[str, ...] = ()


def summarise_results(results: List[ActionResult]) -> Dict[str, int]:
    """Count successful and failed results."""
    succeeded = sum(1 for result in results if result.success)
    return {"total": len(results), "succeeded": succeeded, "failed": len(results) - succeeded}


__all__ = [
    "ActionKind",
    "ActionResult",
    "ChangeBlock",
    "ChangeSummary",
    "FileAction",
    "Occurrence",
    "ParseOutcome",
    "PreviewData",
    "PreviewRow",
    "RawEdit",
    "RecordModel",
    "summarise_results",
]
