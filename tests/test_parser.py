from __future__ import annotations

import logging
import textwrap

import pytest

from opx.parser import (
    collect_edits,
    extract_marker_block,
    heal_markers,
    parse_attributes,
    parse_opx_response,
    sanitize_response,
)
from opx.schema import ActionKind


def _opx(text: str) -> str:
    return textwrap.dedent(text).strip("\n")


def test_parses_new_edit_with_put_payload() -> None:
    outcome = parse_opx_response(
        _opx(
            """
            <edit file="src/utils/strings.py" op="new">
              <why>Create strings util</why>
              <put>
            <<<
            A = 1
            >>>
              </put>
            </edit>
            """
        )
    )

    assert outcome.errors == ()
    assert len(outcome.actions) == 1
    action = outcome.actions[0]
    assert action.action is ActionKind.CREATE
    assert action.path == "src/utils/strings.py"
    assert action.changes[0].content == "A = 1"
    assert action.changes[0].description == "Create strings util"


def test_parses_patch_with_numeric_occurrence() -> None:
    outcome = parse_opx_response(
        _opx(
            """
            <edit file="src/a.py" op="patch">
              <find occurrence="2">
            <<<
            x = 1
            >>>
              </find>
              <put>
            <<<
            x = 2
            >>>
              </put>
            </edit>
            """
        )
    )

    assert outcome.errors == ()
    change = outcome.actions[0].changes[0]
    assert outcome.actions[0].action is ActionKind.MODIFY
    assert change.occurrence == 2
    assert change.search == "x = 1"
    assert change.content == "x = 2"
    assert change.description == "Patch file"


def test_replace_maps_to_rewrite_with_default_description() -> None:
    outcome = parse_opx_response('<edit file="cfg.py" op="replace"><put><<<\nVALUE = 1\n>>></put></edit>')

    action = outcome.actions[0]
    assert action.action is ActionKind.REWRITE
    assert action.changes[0].content == "VALUE = 1"
    assert action.changes[0].description == "Replace file"


def test_self_closing_remove_edit() -> None:
    outcome = parse_opx_response('<edit file="tests/legacy/test_auth.py" op="remove" />')

    assert outcome.errors == ()
    assert outcome.actions[0].action is ActionKind.DELETE
    assert outcome.actions[0].path == "tests/legacy/test_auth.py"
    assert outcome.actions[0].changes == ()


def test_self_closing_edit_with_space_before_close_does_not_swallow_next_edit() -> None:
    outcome = parse_opx_response(
        _opx(
            """
            <opx>
            <edit file="old.py" op="remove" / >
            <edit file="a.py" op="new">
              <put>
            <<<
            hello
            >>>
              </put>
            </edit>
            </opx>
            """
        )
    )

    assert outcome.errors == ()
    assert [(action.path, action.action) for action in outcome.actions] == [
        ("old.py", ActionKind.DELETE),
        ("a.py", ActionKind.CREATE),
    ]
    assert outcome.actions[1].changes[0].content == "hello"


def test_move_reads_destination_from_to_element() -> None:
    outcome = parse_opx_response(
        '<edit file="src/lib/flags.py" op="move">\n  <to file="src/lib/feature_flags.py" />\n</edit>'
    )

    assert outcome.errors == ()
    assert outcome.actions[0].action is ActionKind.RENAME
    assert outcome.actions[0].new_path == "src/lib/feature_flags.py"


@pytest.mark.parametrize(
    "markup",
    [
        '<edit file="a.py" op="move"></edit>',
        '<edit file="a.py" op="move"><to path="b.py" /></edit>',
        '<edit file="a.py" op="move"><to file="b.py"></to></edit>',
    ],
)
def test_move_without_self_closing_destination_is_rejected(markup: str) -> None:
    outcome = parse_opx_response(markup)

    assert outcome.actions == ()
    assert "Missing <to file" in outcome.errors[0]


def test_missing_file_attribute_is_reported() -> None:
    outcome = parse_opx_response('<edit op="new"><put><<<\nA\n>>> </put></edit>')

    assert outcome.actions == ()
    assert outcome.errors == ("Edit #1: Missing required attribute(s): file",)


@pytest.mark.parametrize(
    "markup",
    [
        '<edit file="a.py" op="patch"><put><<<\nA\n>>> </put></edit>',
        '<edit file="a.py" op="patch"><find><<<\nA\n>>> </find></edit>',
    ],
)
def test_patch_requires_find_and_put(markup: str) -> None:
    outcome = parse_opx_response(markup)

    assert outcome.actions == ()
    assert outcome.errors == ("Edit #1 (a.py): Missing <find> or <put>",)


def test_unknown_op_is_rejected() -> None:
    outcome = parse_opx_response('<edit file="x.py" op="frobnicate" />')

    assert outcome.actions == ()
    assert "unknown op" in outcome.errors[0]
    assert outcome.errors[0].startswith("Edit #1 (x.py):")


def test_op_token_is_case_insensitive() -> None:
    outcome = parse_opx_response('<EDIT FILE="x.py" OP="Remove"/>')

    assert outcome.errors == ()
    assert outcome.actions[0].action is ActionKind.DELETE


def test_whitespace_only_find_block_is_rejected() -> None:
    outcome = parse_opx_response(
        '<edit file="a.py" op="patch">\n  <find>\n<<<\n   \n  \n\t\n>>>\n  </find>\n'
        "  <put>\n<<<\nOK\n>>>\n  </put>\n</edit>"
    )

    assert outcome.actions == ()
    assert "Empty or missing marker block" in outcome.errors[0]


def test_put_without_markers_is_rejected() -> None:
    outcome = parse_opx_response('<edit file="a.py" op="new"><put>plain text</put></edit>')

    assert outcome.actions == ()
    assert "Empty or missing marker block" in outcome.errors[0]


def test_truncated_markers_are_healed() -> None:
    outcome = parse_opx_response(
        _opx(
            """
            <edit file="src/app/layout.py" op="patch">
              <find>
            <
            metadata = {"title": "A", "description": "B"}
            >>>
              </find>
              <put>
            <<
            metadata = {"title": "X", "description": "Y"}
            >
              </put>
            </edit>
            """
        )
    )

    assert outcome.errors == ()
    change = outcome.actions[0].changes[0]
    assert change.search == 'metadata = {"title": "A", "description": "B"}'
    assert change.content == 'metadata = {"title": "X", "description": "Y"}'


def test_invalid_occurrence_is_ignored() -> None:
    outcome = parse_opx_response(
        '<edit file="a.py" op="patch"><find occurrence="second">\n<<<\nAAA\n>>>\n</find>'
        "<put>\n<<<\nBBB\n>>>\n</put></edit>"
    )

    assert outcome.errors == ()
    assert outcome.actions[0].changes[0].occurrence is None


def test_wrapper_with_several_edits_keeps_document_order() -> None:
    outcome = parse_opx_response(
        _opx(
            """
            <opx>
              <edit file="a.py" op="new"><put><<<
            A
            >>> </put></edit>
              <edit file="b.py" op="remove" />
              <edit file="c.py" op="move"><to file="d.py"/></edit>
            </opx>
            """
        )
    )

    assert outcome.errors == ()
    assert [action.action for action in outcome.actions] == [
        ActionKind.CREATE,
        ActionKind.DELETE,
        ActionKind.RENAME,
    ]
    assert [action.path for action in outcome.actions] == ["a.py", "b.py", "c.py"]


def test_valid_edits_survive_a_broken_sibling() -> None:
    outcome = parse_opx_response(
        '<opx><edit file="a.py" op="frobnicate"/><edit file="b.py" op="remove"/></opx>'
    )

    assert [action.path for action in outcome.actions] == ["b.py"]
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith("Edit #1 (a.py):")


def test_code_fences_and_chatter_are_ignored() -> None:
    response = (
        "Sure, here are the edits:\n"
        '```xml\n<edit file="x.py" op="new"><put><<<\nA\n>>> </put></edit>\n```\n'
        "Let me know if you need anything else."
    )

    outcome = parse_opx_response(response)

    assert outcome.errors == ()
    assert outcome.actions[0].action is ActionKind.CREATE
    assert outcome.actions[0].changes[0].content == "A"


def test_root_attribute_is_carried() -> None:
    outcome = parse_opx_response('<edit file="a.py" op="remove" root="backend"/>')

    assert outcome.actions[0].root == "backend"


def test_empty_input_short_circuits() -> None:
    assert parse_opx_response("   \n").errors == ("Empty input",)
    assert parse_opx_response(None).errors == ("Empty input",)


def test_missing_edit_elements_are_reported() -> None:
    outcome = parse_opx_response("<noop />")

    assert outcome.actions == ()
    assert "No <edit>" in outcome.errors[0]


def test_legacy_file_format_is_rejected() -> None:
    outcome = parse_opx_response('<file path="a.py" action="create"><content>===\nA\n===</content></file>')

    assert outcome.actions == ()
    assert outcome.errors


def test_payload_indentation_and_inner_blank_lines_are_preserved() -> None:
    block = "<<<\n    def run(self):\n\n        return 1\n>>>"

    assert extract_marker_block(block) == "    def run(self):\n\n        return 1"


def test_marker_block_uses_outermost_markers() -> None:
    block = "<<<\nprint('>>> prompt')\n>>>"

    assert extract_marker_block(block) == "print('>>> prompt')"


def test_lone_angle_lines_inside_intact_block_are_kept() -> None:
    text = "<<<\n<\nbody\n>\n>>>"

    assert heal_markers(text) == text
    assert extract_marker_block(text) == "<\nbody\n>"


def test_missing_close_marker_yields_none() -> None:
    assert extract_marker_block("<<<\nonly open") is None
    assert extract_marker_block("no markers") is None


def test_parse_attributes_accepts_either_quote_style() -> None:
    assert parse_attributes(""" FILE='a.py' op="new" root = 'r' """) == {
        "file": "a.py",
        "op": "new",
        "root": "r",
    }


def test_sanitize_is_idempotent() -> None:
    raw = 'chatter\n```xml\n<opx><edit file="a.py" op="remove"/></opx>\n```\ntrailing'

    once = sanitize_response(raw)

    assert once == '<opx><edit file="a.py" op="remove"/></opx>'
    assert sanitize_response(once) == once


def test_sanitize_keeps_trailing_self_closing_edit() -> None:
    raw = '<edit file="a.py" op="move"><to file="b.py"/></edit>\n<edit file="c.py" op="remove"/> done'

    assert sanitize_response(raw).endswith('<edit file="c.py" op="remove"/>')


def test_self_closing_tag_inside_paired_edit_is_not_a_separate_edit() -> None:
    edits = collect_edits('<edit file="a.py" op="new"><put><<<\n<edit file="x" op="remove"/>\n>>></put></edit>')

    assert len(edits) == 1
    assert not edits[0].self_closing


def test_preprocess_normalises_single_quoted_attributes() -> None:
    outcome = parse_opx_response("<edit FILE=‘a.py’ op='remove'/>", preprocess=True)

    assert outcome.errors == ()
    assert outcome.actions[0].path == "a.py"


def test_parse_emits_telemetry_event(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="opx.telemetry"):
        parse_opx_response('<edit file="a.py" op="remove"/>')

    events = [record.getMessage() for record in caplog.records if record.name == "opx.telemetry"]
    assert any('"event":"parse_completed"' in message for message in events)
