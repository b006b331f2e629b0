"""Text documents, batched workspace edits and the shared snapshot cache.

Edits are collected into a :class:`WorkspaceEdit` and handed to
:meth:`DocumentStore.apply_edit`, which validates every entry before touching
anything. Text edits land in in-memory :class:`TextDocument` buffers (marking
them dirty); callers persist them with :meth:`DocumentStore.save_if_dirty`.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Tuple, Union

from ..errors import DocumentError

LOGGER = logging.getLogger(__name__)

EOL_LF = "\n"
EOL_CRLF = "\r\n"


def detect_eol(text: str, default: str = EOL_LF) -> str:
    """Return the line ending used by the first line break in ``text``."""
    index = text.find("\n")
    if index == -1:
        return default
    return EOL_CRLF if index > 0 and text[index - 1] == "\r" else EOL_LF


def normalise_eol(text: str, eol: str) -> str:
    """Convert every line break in ``text`` to ``eol``."""
    lf = text.replace("\r\n", "\n")
    return lf.replace("\n", EOL_CRLF) if eol == EOL_CRLF else lf


@dataclass(slots=True, frozen=True)
class TextRange:
    """Half-open character range ``[start, end)`` within a document."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise DocumentError(f"Invalid text range: {self.start}..{self.end}")


@dataclass(slots=True)
class TextDocument:
    """Editable in-memory buffer backed by a file on disk."""

    path: Path
    text: str
    eol: str = EOL_LF
    encoding: str = "utf-8"
    dirty: bool = False
    version: int = 0

    @property
    def line_count(self) -> int:
        return self.text.count("\n") + 1

    def full_range(self) -> TextRange:
        return TextRange(0, len(self.text))


@dataclass(slots=True)
class _Snapshot:
    text: str
    mtime_ns: int
    size: int


class DocumentCache:
    """Process-wide memo of file contents keyed by resolved path.

    Entries are validated against the file's mtime and size on every lookup,
    populated lazily by :class:`DocumentStore` and dropped on demand.
    """

    def __init__(self) -> None:
        self._entries: Dict[Path, _Snapshot] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get(self, path: Path) -> str | None:
        entry = self._entries.get(path)
        if entry is None:
            self.misses += 1
            return None
        try:
            stat = path.stat()
        except OSError:
            self._entries.pop(path, None)
            self.misses += 1
            return None
        if stat.st_mtime_ns != entry.mtime_ns or stat.st_size != entry.size:
            self._entries.pop(path, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry.text

    def put(self, path: Path, text: str) -> None:
        try:
            stat = path.stat()
        except OSError:
            return
        self._entries[path] = _Snapshot(text=text, mtime_ns=stat.st_mtime_ns, size=stat.st_size)

    def invalidate(self, path: Path) -> None:
        """Drop ``path`` and anything cached beneath it."""
        for key in [key for key in self._entries if key == path or key.is_relative_to(path)]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, object]:
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "paths": sorted(key.as_posix() for key in self._entries),
        }


DOCUMENT_CACHE = DocumentCache()


def clear_document_cache() -> None:
    """Invalidate every cached document snapshot."""
    DOCUMENT_CACHE.clear()


@dataclass(slots=True, frozen=True)
class _CreateFile:
    path: Path
    overwrite: bool = False
    ignore_if_exists: bool = False


@dataclass(slots=True, frozen=True)
class _DeleteFile:
    path: Path
    recursive: bool = True
    ignore_if_missing: bool = False


@dataclass(slots=True, frozen=True)
class _RenameFile:
    source: Path
    target: Path
    overwrite: bool = False


@dataclass(slots=True, frozen=True)
class _TextEdit:
    path: Path
    range: TextRange
    text: str


EditEntry = Union[_CreateFile, _DeleteFile, _RenameFile, _TextEdit]


@dataclass(slots=True)
class WorkspaceEdit:
    """Ordered batch of file and text operations applied as one unit."""

    entries: List[EditEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[EditEntry]:
        return iter(self.entries)

    def create_file(self, path: Path, *, overwrite: bool = False, ignore_if_exists: bool = False) -> None:
        self.entries.append(_CreateFile(Path(path), overwrite, ignore_if_exists))

    def delete_file(self, path: Path, *, recursive: bool = True, ignore_if_missing: bool = False) -> None:
        self.entries.append(_DeleteFile(Path(path), recursive, ignore_if_missing))

    def rename_file(self, source: Path, target: Path, *, overwrite: bool = False) -> None:
        self.entries.append(_RenameFile(Path(source), Path(target), overwrite))

    def replace(self, path: Path, text_range: TextRange, text: str) -> None:
        self.entries.append(_TextEdit(Path(path), text_range, text))

    def insert(self, path: Path, offset: int, text: str) -> None:
        self.entries.append(_TextEdit(Path(path), TextRange(offset, offset), text))

    def text_edits(self, path: Path) -> List[_TextEdit]:
        return [entry for entry in self.entries if isinstance(entry, _TextEdit) and entry.path == path]


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temporary file in the same directory.

    A symlinked ``path`` is written through to its target; new files get the
    default mode for the current umask.
    """
    if path.is_symlink():
        path = Path(os.path.realpath(path))
    with tempfile.NamedTemporaryFile("wb", dir=path.parent, prefix=f".{path.name}.", delete=False) as handle:
        handle.write(data)
        handle.flush()
        temp_path = Path(handle.name)
    try:
        if path.exists():
            shutil.copymode(path, temp_path)
        else:
            os.chmod(temp_path, 0o666 & ~_current_umask())
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def _splice(text: str, edits: List[_TextEdit], eol: str) -> str:
    for edit in sorted(edits, key=lambda item: (item.range.start, item.range.end), reverse=True):
        text = text[: edit.range.start] + normalise_eol(edit.text, eol) + text[edit.range.end :]
    return text


class DocumentStore:
    """Open documents plus the primitives used to mutate the workspace."""

    def __init__(
        self,
        *,
        encoding: str = "utf-8",
        default_eol: str = EOL_LF,
        cache: DocumentCache | None = None,
    ) -> None:
        self.encoding = encoding
        self.default_eol = default_eol
        self.cache = cache if cache is not None else DOCUMENT_CACHE
        self._documents: Dict[Path, TextDocument] = {}

    @staticmethod
    def exists(path: Path) -> bool:
        return Path(path).exists()

    @staticmethod
    def ensure_directory(path: Path) -> None:
        """Create ``path`` and its parents; existing directories are fine."""
        Path(path).mkdir(parents=True, exist_ok=True)

    def get_open_document(self, path: Path) -> TextDocument | None:
        return self._documents.get(Path(path))

    def open_document(self, path: Path) -> TextDocument:
        """Return the open buffer for ``path``, loading it from disk if needed."""
        path = Path(path)
        document = self._documents.get(path)
        if document is not None:
            if document.dirty or self.cache.get(path) is not None:
                return document
            self._documents.pop(path, None)

        text = self.cache.get(path)
        if text is None:
            data = path.read_bytes()
            try:
                text = data.decode(self.encoding)
            except UnicodeDecodeError as error:
                raise DocumentError(
                    f"File is not valid {self.encoding} text: {path}",
                    details={"path": str(path)},
                ) from error
            self.cache.put(path, text)
        document = TextDocument(path=path, text=text, eol=detect_eol(text, self.default_eol), encoding=self.encoding)
        self._documents[path] = document
        return document

    def close(self, path: Path) -> None:
        path = Path(path)
        for key in [key for key in self._documents if key == path or key.is_relative_to(path)]:
            del self._documents[key]

    def save(self, document: TextDocument) -> None:
        _atomic_write(document.path, document.text.encode(document.encoding))
        document.dirty = False
        self.cache.put(document.path, document.text)

    def save_if_dirty(self, path: Path) -> bool:
        """Persist the open document for ``path`` when it has unsaved changes."""
        document = self._documents.get(Path(path))
        if document is None or not document.dirty:
            return False
        self.save(document)
        return True

    def _validate(self, edit: WorkspaceEdit) -> Dict[Path, Tuple[str, List[_TextEdit]]]:
        """Check every entry against the planned workspace state."""
        planned: Dict[Path, bool] = {}
        created: set[Path] = set()
        texts: Dict[Path, Tuple[str, List[_TextEdit]]] = {}

        def exists(path: Path) -> bool:
            return planned[path] if path in planned else path.exists()

        for entry in edit:
            if isinstance(entry, _CreateFile):
                if exists(entry.path) and not entry.overwrite and not entry.ignore_if_exists:
                    raise DocumentError(f"File already exists: {entry.path}", details={"path": str(entry.path)})
                if not exists(entry.path) or entry.overwrite:
                    created.add(entry.path)
                planned[entry.path] = True
            elif isinstance(entry, _DeleteFile):
                if not exists(entry.path) and not entry.ignore_if_missing:
                    raise DocumentError(f"File does not exist: {entry.path}", details={"path": str(entry.path)})
                if _is_real_dir(entry.path) and not entry.recursive and any(entry.path.iterdir()):
                    raise DocumentError(f"Directory is not empty: {entry.path}", details={"path": str(entry.path)})
                planned[entry.path] = False
            elif isinstance(entry, _RenameFile):
                if not exists(entry.source):
                    raise DocumentError(f"File does not exist: {entry.source}", details={"path": str(entry.source)})
                if exists(entry.target) and not entry.overwrite:
                    raise DocumentError(
                        f"Destination already exists: {entry.target}",
                        details={"path": str(entry.target)},
                    )
                planned[entry.source] = False
                planned[entry.target] = True
            else:
                if entry.path in texts:
                    continue
                if not exists(entry.path):
                    raise DocumentError(f"File does not exist: {entry.path}", details={"path": str(entry.path)})
                base = "" if entry.path in created else self.open_document(entry.path).text
                edits = edit.text_edits(entry.path)
                ordered = sorted(edits, key=lambda item: (item.range.start, item.range.end))
                for item in ordered:
                    if item.range.end > len(base):
                        raise DocumentError(
                            f"Edit range {item.range.start}..{item.range.end} exceeds document length {len(base)}",
                            details={"path": str(entry.path)},
                        )
                for previous, current in zip(ordered, ordered[1:]):
                    if previous.range.end > current.range.start:
                        raise DocumentError(
                            "Overlapping edits are not allowed "
                            f"({previous.range.start}..{previous.range.end} and "
                            f"{current.range.start}..{current.range.end})",
                            details={"path": str(entry.path)},
                        )
                texts[entry.path] = (base, edits)
        return texts

    def apply_edit(self, edit: WorkspaceEdit) -> None:
        """Validate and apply ``edit``; raises :class:`DocumentError` before any change on rejection."""
        texts = self._validate(edit)
        applied: set[Path] = set()
        for entry in edit:
            if isinstance(entry, _CreateFile):
                if entry.path.exists() and not entry.overwrite:
                    continue
                self.ensure_directory(entry.path.parent)
                _atomic_write(entry.path, b"")
                self.cache.invalidate(entry.path)
                self._documents[entry.path] = TextDocument(
                    path=entry.path,
                    text="",
                    eol=self.default_eol,
                    encoding=self.encoding,
                )
            elif isinstance(entry, _DeleteFile):
                if _is_real_dir(entry.path):
                    if entry.recursive:
                        shutil.rmtree(entry.path)
                    else:
                        entry.path.rmdir()
                elif entry.path.exists() or entry.path.is_symlink():
                    entry.path.unlink()
                self.cache.invalidate(entry.path)
                self.close(entry.path)
            elif isinstance(entry, _RenameFile):
                if entry.target.exists() and entry.overwrite:
                    if entry.target.is_dir():
                        shutil.rmtree(entry.target)
                    else:
                        entry.target.unlink()
                shutil.move(str(entry.source), str(entry.target))
                self.cache.invalidate(entry.source)
                self.cache.invalidate(entry.target)
                document = self._documents.pop(entry.source, None)
                self.close(entry.source)
                if document is not None:
                    document.path = entry.target
                    self._documents[entry.target] = document
            elif entry.path not in applied:
                applied.add(entry.path)
                base, edits = texts[entry.path]
                document = self._documents.get(entry.path) or self.open_document(entry.path)
                document.text = _splice(base, edits, document.eol)
                document.dirty = True
                document.version += 1
        LOGGER.debug("Applied workspace edit with %d entr(ies)", len(edit))


__all__ = [
    "DOCUMENT_CACHE",
    "DocumentCache",
    "DocumentStore",
    "EOL_CRLF",
    "EOL_LF",
    "TextDocument",
    "TextRange",
    "WorkspaceEdit",
    "clear_document_cache",
    "detect_eol",
    "normalise_eol",
]
