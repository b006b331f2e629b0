"""Estimate per-file line deltas for parsed actions before applying them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from .errors import OPXError, PathResolutionError
from .schema import ActionKind, ChangeSummary, FileAction, PreviewData, PreviewRow
from .tools.paths import PathResolver, build_resolver

LOGGER = logging.getLogger(__name__)

UNREADABLE_DELETE_ESTIMATE = 50
DESCRIPTION_SEPARATOR = " • "


def count_lines(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split("\n"))


def _current_line_count(target: Path | None, encoding: str) -> int | None:
    if target is None:
        return None
    try:
        return count_lines(target.read_text(encoding=encoding)) or 1
    except (OSError, UnicodeDecodeError):
        return None


def _change_summary(action: FileAction, target: Path | None, encoding: str) -> ChangeSummary:
    kind = action.action
    if kind is ActionKind.CREATE:
        return ChangeSummary(added=sum(count_lines(change.content) for change in action.changes))
    if kind is ActionKind.REWRITE:
        added = sum(count_lines(change.content) for change in action.changes)
        return ChangeSummary(added=added, removed=_current_line_count(target, encoding) or 0)
    if kind is ActionKind.MODIFY:
        added = removed = 0
        for change in action.changes:
            removed += count_lines(change.search) if change.search else 1
            added += count_lines(change.content)
        return ChangeSummary(added=added, removed=removed)
    if kind is ActionKind.DELETE:
        current = _current_line_count(target, encoding)
        return ChangeSummary(removed=UNREADABLE_DELETE_ESTIMATE if current is None else current)
    return ChangeSummary()


def describe_action(action: FileAction) -> str:
    """One-line human description of ``action``."""
    kind = action.action
    changes = action.changes
    if kind is ActionKind.CREATE:
        return (changes[0].description if changes else "") or "Create file"
    if kind is ActionKind.REWRITE:
        return (changes[0].description if changes else "") or "Rewrite file"
    if kind is ActionKind.DELETE:
        return "Delete file"
    if kind is ActionKind.RENAME:
        return f"Rename to {action.new_path or 'new location'}"
    if not changes:
        return "Modify file"
    if len(changes) <= 3:
        return DESCRIPTION_SEPARATOR.join(change.description for change in changes)
    first_two = DESCRIPTION_SEPARATOR.join(change.description for change in changes[:2])
    return f"{first_two}{DESCRIPTION_SEPARATOR}(+{len(changes) - 2} more)"


def analyze_file_action(action: FileAction, resolver: PathResolver, *, encoding: str = "utf-8") -> PreviewRow:
    """Build the preview row for one action; resolution failures mark the row as errored."""
    try:
        target = resolver.resolve(action.path, action.root)
    except PathResolutionError as error:
        return PreviewRow(
            path=action.path,
            action=action.action,
            description=f"Error: {error}",
            new_path=action.new_path,
            has_error=True,
            error_message=str(error),
        )
    return PreviewRow(
        path=action.path,
        action=action.action,
        description=describe_action(action),
        changes=_change_summary(action, target, encoding),
        new_path=action.new_path,
        change_blocks=action.changes,
    )


def analyze_file_actions(
    actions: Sequence[FileAction],
    resolver: PathResolver | None = None,
    *,
    encoding: str = "utf-8",
) -> PreviewData:
    """Preview every action; nothing on disk is modified."""
    resolver = resolver or build_resolver()
    rows: List[PreviewRow] = []
    errors: List[str] = []
    for action in actions:
        try:
            rows.append(analyze_file_action(action, resolver, encoding=encoding))
        except OPXError as error:
            LOGGER.debug("Preview failed for %s", action.path, exc_info=True)
            errors.append(f"Error analyzing {action.path}: {error}")
    return PreviewData(rows=tuple(rows), errors=tuple(errors))


def format_preview(preview: PreviewData) -> List[str]:
    """Render preview rows as plain text lines for terminal output."""
    lines: List[str] = []
    for row in preview.rows:
        target = f"{row.path} -> {row.new_path}" if row.new_path else row.path
        delta = f"+{row.changes.added} -{row.changes.removed}"
        marker = "!" if row.has_error else "-"
        lines.append(f"{marker} [{row.action.value}] {target} ({delta}): {row.description}")
    lines.extend(f"! {error}" for error in preview.errors)
    return lines


__all__ = [
    "UNREADABLE_DELETE_ESTIMATE",
    "analyze_file_action",
    "analyze_file_actions",
    "count_lines",
    "describe_action",
    "format_preview",
]
