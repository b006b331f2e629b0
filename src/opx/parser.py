"""Tolerant parser that recovers file actions from OPX edit markup."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Pattern

from pydantic import ValidationError

from .occurrence import normalise_occurrence
from .preprocess import preprocess_opx_text
from .schema import ActionKind, ChangeBlock, FileAction, ParseOutcome, RawEdit
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)

OPEN_MARKER = "<<<"
CLOSE_MARKER = ">>>"

OP_ACTION_KINDS: Dict[str, ActionKind] = {
    "new": ActionKind.CREATE,
    "patch": ActionKind.MODIFY,
    "replace": ActionKind.REWRITE,
    "remove": ActionKind.DELETE,
    "move": ActionKind.RENAME,
}

DEFAULT_DESCRIPTIONS: Dict[ActionKind, str] = {
    ActionKind.CREATE: "Create file",
    ActionKind.REWRITE: "Replace file",
    ActionKind.MODIFY: "Patch file",
}

_FLAGS = re.IGNORECASE | re.DOTALL

_FENCE_OPEN: Pattern[str] = re.compile(r"^```[\w-]*[ \t]*\r?\n?")
_FENCE_CLOSE: Pattern[str] = re.compile(r"\r?\n?```\s*$")
_SPAN_START: Pattern[str] = re.compile(r"<\s*(?:opx|edit)\b", re.IGNORECASE)
_WRAPPER_CLOSE: Pattern[str] = re.compile(r"<\s*/\s*opx\s*>", re.IGNORECASE)
_EDIT_CLOSE: Pattern[str] = re.compile(r"<\s*/\s*edit\s*>", re.IGNORECASE)
_SELF_CLOSING_EDIT: Pattern[str] = re.compile(r"<\s*edit\b([^>]*?)/\s*>", re.IGNORECASE)
_PAIRED_EDIT: Pattern[str] = re.compile(r"<\s*edit\b((?:[^>/]|/(?!\s*>))*)>(.*?)<\s*/\s*edit\s*>", _FLAGS)
_ATTRIBUTE: Pattern[str] = re.compile(r"""([A-Za-z_][\w.:-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")

_WHY: Pattern[str] = re.compile(r"<\s*why\s*>(.*?)<\s*/\s*why\s*>", _FLAGS)
_FIND: Pattern[str] = re.compile(r"<\s*find\b([^>]*)>(.*?)<\s*/\s*find\s*>", _FLAGS)
_PUT: Pattern[str] = re.compile(r"<\s*put\b([^>]*)>(.*?)<\s*/\s*put\s*>", _FLAGS)
_TO: Pattern[str] = re.compile(r"<\s*to\b([^>]*?)/\s*>", re.IGNORECASE)

_TRUNCATED_OPEN: Pattern[str] = re.compile(r"^[ \t]*<{1,2}[ \t]*(\r?)$", re.MULTILINE)
_TRUNCATED_CLOSE: Pattern[str] = re.compile(r"^[ \t]*>{1,2}[ \t]*(\r?)$", re.MULTILINE)
_PAYLOAD_LEAD: Pattern[str] = re.compile(r"[ \t]*\r?\n?")
_PAYLOAD_TAIL: Pattern[str] = re.compile(r"\r?\n?[ \t]*\Z")


class EditParseError(ValueError):
    """Structural problem with a single ``<edit>`` element."""


def sanitize_response(raw: str | None) -> str:
    """Strip code fences and chat chatter around the OPX edit markup."""
    text = (raw or "").strip()
    if not text:
        return ""
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
    if text.endswith("```"):
        text = _FENCE_CLOSE.sub("", text, count=1)

    start = _SPAN_START.search(text)
    if start is not None:
        text = text[start.start():]

    end = -1
    for pattern in (_WRAPPER_CLOSE, _EDIT_CLOSE, _SELF_CLOSING_EDIT):
        for match in pattern.finditer(text):
            end = max(end, match.end())
    if end > -1:
        text = text[:end]
    return text.strip()


def parse_attributes(raw: str | None) -> Dict[str, str]:
    """Extract ``key="value"`` / ``key='value'`` pairs with case-folded keys."""
    attributes: Dict[str, str] = {}
    for match in _ATTRIBUTE.finditer(raw or ""):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attributes[match.group(1).lower()] = value
    return attributes


def collect_edits(text: str) -> List[RawEdit]:
    """Return every ``<edit>`` element in ``text`` ordered by source offset."""
    paired = [
        RawEdit(
            offset=match.start(),
            end=match.end(),
            attributes=parse_attributes(match.group(1)),
            body=match.group(2),
        )
        for match in _PAIRED_EDIT.finditer(text)
    ]
    spans = [(edit.offset, edit.end) for edit in paired]
    single = [
        RawEdit(offset=match.start(), end=match.end(), attributes=parse_attributes(match.group(1)))
        for match in _SELF_CLOSING_EDIT.finditer(text)
        if not any(start <= match.start() < stop for start, stop in spans)
    ]
    return sorted(paired + single, key=lambda edit: edit.offset)


def _has_marker_line(text: str, marker: str) -> bool:
    return any(line.strip() == marker for line in text.splitlines())


def heal_markers(text: str) -> str:
    """Rewrite marker lines truncated to one or two characters.

    Healing only happens for a marker that has no intact standalone line, so
    payload lines such as a lone ``>`` survive when the block is well formed.
    """
    if not _has_marker_line(text, OPEN_MARKER):
        text = _TRUNCATED_OPEN.sub(lambda match: OPEN_MARKER + match.group(1), text)
    if not _has_marker_line(text, CLOSE_MARKER):
        text = _TRUNCATED_CLOSE.sub(lambda match: CLOSE_MARKER + match.group(1), text)
    return text


def extract_marker_block(text: str | None) -> str | None:
    """Return the literal payload between ``<<<`` and ``>>>``, or ``None``."""
    source = heal_markers((text or "").strip())
    first = source.find(OPEN_MARKER)
    if first == -1:
        return None
    last = source.rfind(CLOSE_MARKER)
    start = first + len(OPEN_MARKER)
    if last == -1 or last < start:
        return None
    lead = _PAYLOAD_LEAD.match(source, start)
    if lead is not None:
        start = min(lead.end(), last)
    return _PAYLOAD_TAIL.sub("", source[start:last], count=1)


def _description(body: str, kind: ActionKind) -> str:
    match = _WHY.search(body)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return DEFAULT_DESCRIPTIONS.get(kind, kind.value.capitalize())


def _payload(body: str) -> str:
    put = _PUT.search(body)
    if put is None:
        raise EditParseError("Missing <put> payload")
    content = extract_marker_block(put.group(2))
    if content is None:
        raise EditParseError("Empty or missing marker block in <put>")
    return content


def build_file_action(edit: RawEdit) -> FileAction:
    """Validate one raw edit element and convert it into a :class:`FileAction`."""
    attrs = edit.attributes
    path = attrs.get("file", "").strip()
    token = attrs.get("op", "").strip().lower()
    missing = [name for name, value in (("file", path), ("op", token)) if not value]
    if missing:
        raise EditParseError(f"Missing required attribute(s): {' and '.join(missing)}")

    kind = OP_ACTION_KINDS.get(token)
    if kind is None:
        expected = ", ".join(OP_ACTION_KINDS)
        raise EditParseError(f'unknown op "{token}" (expected one of: {expected})')

    root = attrs.get("root", "").strip() or None
    body = edit.body or ""

    if kind in (ActionKind.CREATE, ActionKind.REWRITE):
        change = ChangeBlock(description=_description(body, kind), content=_payload(body))
        return FileAction(path=path, action=kind, root=root, changes=(change,))

    if kind is ActionKind.MODIFY:
        find = _FIND.search(body)
        if find is None or _PUT.search(body) is None:
            raise EditParseError("Missing <find> or <put>")
        search = extract_marker_block(find.group(2))
        if search is None or not search.strip():
            raise EditParseError("Empty or missing marker block in <find>")
        occurrence = normalise_occurrence(parse_attributes(find.group(1)).get("occurrence"))
        change = ChangeBlock(
            description=_description(body, kind),
            search=search,
            content=_payload(body),
            occurrence=occurrence,
        )
        return FileAction(path=path, action=kind, root=root, changes=(change,))

    if kind is ActionKind.RENAME:
        destination = _TO.search(body)
        new_path = parse_attributes(destination.group(1)).get("file", "").strip() if destination else ""
        if not new_path:
            raise EditParseError('Missing <to file="..."/> destination file specification')
        return FileAction(path=path, action=kind, root=root, new_path=new_path)

    return FileAction(path=path, action=kind, root=root)


def _format_error(index: int, path: str | None, message: str) -> str:
    if path:
        return f"Edit #{index} ({path}): {message}"
    return f"Edit #{index}: {message}"


def parse_opx_response(text: str | None, *, preprocess: bool = False) -> ParseOutcome:
    """Parse an LLM response into ordered file actions plus per-edit errors."""
    source = text or ""
    if preprocess:
        source = preprocess_opx_text(source).text

    cleaned = sanitize_response(source)
    if not cleaned:
        return ParseOutcome(errors=("Empty input",))

    edits = collect_edits(cleaned)
    if not edits:
        return ParseOutcome(errors=("No <edit> elements found",))

    actions: List[FileAction] = []
    errors: List[str] = []
    for index, edit in enumerate(edits, start=1):
        path = edit.attributes.get("file", "").strip() or None
        try:
            actions.append(build_file_action(edit))
        except EditParseError as error:
            errors.append(_format_error(index, path, str(error)))
        except ValidationError as error:
            details = "; ".join(item.get("msg", "") for item in error.errors())
            errors.append(_format_error(index, path, f"Invalid edit: {details}"))

    LOGGER.debug("Parsed %d edit(s): %d action(s), %d error(s)", len(edits), len(actions), len(errors))
    emit_event(
        "parse_completed",
        edits=len(edits),
        actions=len(actions),
        errors=errors,
    )
    return ParseOutcome(actions=tuple(actions), errors=tuple(errors))


__all__ = [
    "CLOSE_MARKER",
    "DEFAULT_DESCRIPTIONS",
    "EditParseError",
    "OPEN_MARKER",
    "OP_ACTION_KINDS",
    "build_file_action",
    "collect_edits",
    "extract_marker_block",
    "heal_markers",
    "parse_attributes",
    "parse_opx_response",
    "sanitize_response",
]
