"""Pre-parse normalisation and linting for pasted OPX responses.

Only tag attribute zones are rewritten: curly quotes become ASCII quotes,
single-quoted attribute values become double-quoted, and attribute keys on
``<edit>`` and ``<to/>`` tags are lower-cased. Literal payloads inside
``<put>``, ``<find>`` and ``<content>`` are masked first and restored verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Pattern, Tuple

_BLOCK: Pattern[str] = re.compile(
    r"<\s*(put|find|content)(\s*[^>]*)>(.*?)<\s*/\s*(?:put|find|content)\s*>",
    re.IGNORECASE | re.DOTALL,
)
_PLACEHOLDER: Pattern[str] = re.compile(r"__OPX_BLOCK_(\d+)__")
_EDIT_TAG: Pattern[str] = re.compile(r"<\s*edit\b[^>]*>", re.IGNORECASE)
_TO_TAG: Pattern[str] = re.compile(r"<\s*to\b[^>]*/>", re.IGNORECASE)
_EDIT_ATTRS: Pattern[str] = re.compile(r"<\s*edit\b([^>]*)>", re.IGNORECASE)
_SINGLE_QUOTED: Pattern[str] = re.compile(r"(\w+)\s*=\s*'([^']*)'")
_DOUBLE_QUOTED_KEY: Pattern[str] = re.compile(r"(\b\w+)(\s*=\s*\"[^\"]*\")")
_ANY_ATTR: Pattern[str] = re.compile(r"""(\w+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_CURLY_DOUBLE: Pattern[str] = re.compile("[“”]")
_CURLY_SINGLE: Pattern[str] = re.compile("[‘’]")


@dataclass(slots=True)
class PreprocessResult:
    """Normalised text plus informational notes and lint issues."""

    text: str
    changes: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


def _mask_blocks(text: str) -> Tuple[str, List[Tuple[str, str, str]]]:
    blocks: List[Tuple[str, str, str]] = []

    def replace(match: re.Match[str]) -> str:
        blocks.append((match.group(1), match.group(2), match.group(3)))
        return f"__OPX_BLOCK_{len(blocks) - 1}__"

    return _BLOCK.sub(replace, text), blocks


def _restore_blocks(text: str, blocks: List[Tuple[str, str, str]]) -> str:
    def replace(match: re.Match[str]) -> str:
        index = int(match.group(1))
        if index >= len(blocks):
            return match.group(0)
        tag, attrs, inner = blocks[index]
        return f"<{tag}{attrs}>{inner}</{tag}>"

    return _PLACEHOLDER.sub(replace, text)


def _normalise_tag(tag: str) -> str:
    out = _SINGLE_QUOTED.sub(lambda match: f'{match.group(1)}="{match.group(2)}"', tag)
    return _DOUBLE_QUOTED_KEY.sub(lambda match: match.group(1).lower() + match.group(2), out)


def _normalise_attribute_zones(text: str) -> Tuple[str, List[str]]:
    notes: List[str] = []
    for pattern, label in ((_EDIT_TAG, "<edit>"), (_TO_TAG, "<to/>")):
        changed = False

        def replace(match: re.Match[str]) -> str:
            nonlocal changed
            fixed = _normalise_tag(match.group(0))
            if fixed != match.group(0):
                changed = True
            return fixed

        text = pattern.sub(replace, text)
        if changed:
            notes.append(f"Normalized {label} attributes: single -> double quotes, lowercased keys")
    return text, notes


def _lint_edit_tags(text: str) -> List[str]:
    issues: List[str] = []
    for index, match in enumerate(_EDIT_ATTRS.finditer(text), start=1):
        raw = match.group(1) or ""
        attrs = {}
        for attr in _ANY_ATTR.finditer(raw):
            value = attr.group(2) if attr.group(2) is not None else attr.group(3)
            attrs[attr.group(1).lower()] = value
        missing = [name for name in ("file", "op") if not attrs.get(name)]
        if missing:
            trimmed = raw.strip().rstrip("/").strip()[:120]
            issues.append(f'Edit #{index}: missing {" and ".join(missing)} (attrs="{trimmed}")')
    return issues


def preprocess_opx_text(text: str) -> PreprocessResult:
    """Normalise attribute quoting/casing without touching literal payloads."""
    masked, blocks = _mask_blocks(text or "")
    changes: List[str] = []

    straightened = _CURLY_SINGLE.sub("'", _CURLY_DOUBLE.sub('"', masked))
    if straightened != masked:
        changes.append("Replaced curly quotes with ASCII quotes")

    normalised, notes = _normalise_attribute_zones(straightened)
    changes.extend(notes)
    issues = _lint_edit_tags(normalised)
    return PreprocessResult(text=_restore_blocks(normalised, blocks), changes=changes, issues=issues)


def lint_opx_text(text: str) -> List[str]:
    """Report lint issues without returning the rewritten text."""
    return preprocess_opx_text(text).issues


__all__ = ["PreprocessResult", "lint_opx_text", "preprocess_opx_text"]
