"""Apply parsed OPX file actions to the workspace with per-action reporting."""

from __future__ import annotations

import errno
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, assert_never

from ..errors import DocumentError, MatchError, OPXError
from ..occurrence import AmbiguousPolicy, locate_search
from ..schema import ActionKind, ActionResult, FileAction
from ..telemetry import emit_event
from .documents import DocumentStore, TextRange, WorkspaceEdit, clear_document_cache, normalise_eol
from .paths import PathResolver, build_resolver

LOGGER = logging.getLogger(__name__)

_ERRNO_MESSAGES = {
    errno.ENOSPC: "Disk full",
    errno.EACCES: "Permission denied",
    errno.EPERM: "Permission denied",
    errno.EBUSY: "File is locked by another process",
    errno.ETXTBSY: "File is locked by another process",
    errno.EROFS: "Read-only file system",
    errno.EEXIST: "File already exists",
    errno.ENOENT: "File or directory not found",
    errno.EISDIR: "Path is a directory",
    errno.ENOTDIR: "Parent path is not a directory",
}


@dataclass(slots=True)
class ExecutionOptions:
    """Tunables for :func:`apply_file_actions`."""

    ambiguous_match: AmbiguousPolicy = "fail"


def describe_os_error(error: OSError, path: str | None = None) -> str:
    """Translate an ``OSError`` into a user-facing message."""
    label = _ERRNO_MESSAGES.get(error.errno or -1)
    target = path or (str(error.filename) if error.filename else None)
    if label is None:
        reason = error.strerror or error.__class__.__name__
        label = f"File system error ({reason})"
    return f"{label}: {target}" if target else label


def _result(action: FileAction, success: bool, message: str) -> ActionResult:
    return ActionResult(
        path=action.path,
        action=action.action,
        success=success,
        message=message,
        new_path=action.new_path if action.action is ActionKind.RENAME else None,
    )


def _payload(action: FileAction) -> str:
    if not action.changes:
        raise OPXError(f"No content provided for {action.action.value} action")
    return action.changes[0].content


def _handle_create(action: FileAction, target: Path, store: DocumentStore) -> ActionResult:
    content = _payload(action)
    for parent in (target.parent, *target.parent.parents):
        if parent.exists():
            if not parent.is_dir():
                return _result(action, False, f"Parent path is not a directory: {parent}")
            break
    store.ensure_directory(target.parent)
    if store.exists(target):
        return _result(action, True, "File already exists (skipped create)")

    edit = WorkspaceEdit()
    edit.create_file(target, overwrite=False, ignore_if_exists=False)
    edit.insert(target, 0, content)
    store.apply_edit(edit)
    store.save_if_dirty(target)
    return _result(action, True, "File created successfully")


def _handle_rewrite(action: FileAction, target: Path, store: DocumentStore) -> ActionResult:
    content = _payload(action)
    if not store.exists(target):
        return _result(action, False, "File does not exist, cannot rewrite")

    document = store.open_document(target)
    edit = WorkspaceEdit()
    edit.replace(target, document.full_range(), content)
    store.apply_edit(edit)
    store.save_if_dirty(target)
    return _result(action, True, "File rewritten successfully")


def _handle_delete(action: FileAction, target: Path, store: DocumentStore) -> ActionResult:
    if not store.exists(target):
        return _result(action, False, "File does not exist, cannot delete")

    edit = WorkspaceEdit()
    edit.delete_file(target, recursive=True, ignore_if_missing=False)
    store.apply_edit(edit)
    return _result(action, True, "File deleted successfully")


def _handle_modify(action: FileAction, target: Path, store: DocumentStore, options: ExecutionOptions) -> ActionResult:
    if not action.changes:
        return _result(action, False, "No changes provided for modify action")
    if not store.exists(target):
        return _result(action, False, "File does not exist, cannot modify")

    document = store.open_document(target)
    full_text = document.text
    edit = WorkspaceEdit()
    notes: List[str] = []
    applied = 0

    for change in action.changes:
        if not change.search:
            notes.append("Error: Search block missing in a change")
            continue
        needle = normalise_eol(change.search, document.eol)
        try:
            position = locate_search(full_text, needle, change.occurrence, ambiguous=options.ambiguous_match)
        except MatchError as error:
            notes.append(f"Error: {error}")
            continue
        edit.replace(target, TextRange(position, position + len(needle)), change.content)
        applied += 1
        notes.append(f'Success: Applied change: "{change.description}"')

    summary = "; ".join(notes)
    if applied == 0:
        return _result(action, False, f"Failed to apply any modifications. {summary}")

    try:
        store.apply_edit(edit)
    except DocumentError as error:
        return _result(action, False, f"Failed to apply modifications: {error}. {summary}")
    store.save_if_dirty(target)
    return _result(action, True, f"Applied {applied}/{len(action.changes)} modifications. {summary}")


def _handle_rename(action: FileAction, target: Path, store: DocumentStore, resolver: PathResolver) -> ActionResult:
    if not action.new_path:
        return _result(action, False, "Missing new path for rename operation.")
    destination = resolver.resolve(action.new_path, action.root)
    if not store.exists(target):
        return _result(action, False, f"Original file '{action.path}' does not exist, cannot rename.")
    if store.exists(destination):
        return _result(action, False, f"Destination '{action.new_path}' already exists, cannot rename.")

    store.ensure_directory(destination.parent)
    edit = WorkspaceEdit()
    edit.rename_file(target, destination, overwrite=False)
    try:
        store.apply_edit(edit)
    except DocumentError as error:
        return _result(action, False, f"Failed to rename to '{action.new_path}': {error}")
    return _result(action, True, f"File renamed successfully to '{action.new_path}'")


def apply_file_action(
    action: FileAction,
    *,
    resolver: PathResolver,
    store: DocumentStore,
    options: ExecutionOptions | None = None,
) -> ActionResult:
    """Resolve and apply one action, converting failures into a result."""
    options = options or ExecutionOptions()
    try:
        target = resolver.resolve(action.path, action.root)
        kind = action.action
        if kind is ActionKind.CREATE:
            result = _handle_create(action, target, store)
        elif kind is ActionKind.REWRITE:
            result = _handle_rewrite(action, target, store)
        elif kind is ActionKind.MODIFY:
            result = _handle_modify(action, target, store, options)
        elif kind is ActionKind.DELETE:
            result = _handle_delete(action, target, store)
        elif kind is ActionKind.RENAME:
            result = _handle_rename(action, target, store, resolver)
        else:
            assert_never(kind)
    except OPXError as error:
        result = _result(action, False, str(error))
    except OSError as error:
        LOGGER.debug("File system error while applying %s to %s", action.action.value, action.path, exc_info=True)
        result = _result(action, False, describe_os_error(error))

    emit_event(
        "action_applied" if result.success else "action_failed",
        path=result.path,
        action=result.action,
        message=result.message,
        new_path=result.new_path,
    )
    return result


def apply_file_actions(
    actions: Sequence[FileAction],
    *,
    resolver: PathResolver | None = None,
    store: DocumentStore | None = None,
    options: ExecutionOptions | None = None,
) -> List[ActionResult]:
    """Apply ``actions`` one at a time, in order, returning one result per action.

    Later actions observe the effects of earlier ones (create then patch the
    same path). A failing action is reported and the batch continues; nothing
    is rolled back. The shared document cache is cleared once the batch ends.
    """
    resolver = resolver or build_resolver()
    store = store or DocumentStore()
    options = options or ExecutionOptions()
    results: List[ActionResult] = []
    try:
        for action in actions:
            results.append(apply_file_action(action, resolver=resolver, store=store, options=options))
    finally:
        clear_document_cache()

    succeeded = sum(1 for result in results if result.success)
    LOGGER.info("Applied %d/%d file action(s)", succeeded, len(results))
    emit_event("batch_completed", total=len(results), succeeded=succeeded, failed=len(results) - succeeded)
    return results


__all__ = [
    "ExecutionOptions",
    "apply_file_action",
    "apply_file_actions",
    "describe_os_error",
]
