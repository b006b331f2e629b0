"""Workspace primitives and the execution engine for parsed OPX actions."""

from .documents import (
    DOCUMENT_CACHE,
    DocumentCache,
    DocumentStore,
    TextDocument,
    TextRange,
    WorkspaceEdit,
    clear_document_cache,
)
from .executor import ExecutionOptions, apply_file_action, apply_file_actions, describe_os_error
from .paths import PathResolver, WorkspacePathResolver, WorkspaceRoot, build_resolver

__all__ = [
    "DOCUMENT_CACHE",
    "DocumentCache",
    "DocumentStore",
    "ExecutionOptions",
    "PathResolver",
    "TextDocument",
    "TextRange",
    "WorkspaceEdit",
    "WorkspacePathResolver",
    "WorkspaceRoot",
    "apply_file_action",
    "apply_file_actions",
    "build_resolver",
    "clear_document_cache",
    "describe_os_error",
]
