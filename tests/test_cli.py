from __future__ import annotations

import json
import textwrap

from conftest import Workspace

PATCH = textwrap.dedent(
    """
    <opx>
      <edit file="app.py" op="patch">
        <why>Bump value</why>
        <find>
    <<<
    value = 1
    >>>
        </find>
        <put>
    <<<
    value = 2
    >>>
        </put>
      </edit>
      <edit file="old.py" op="remove"/>
    </opx>
    """
)


def _config_args(workspace: Workspace) -> list[str]:
    return ["--config", str(workspace.root / "opx.yaml"), "--root", f"main={workspace.root}"]


def test_parse_prints_actions_as_json(workspace: Workspace) -> None:
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("parse", str(source))

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["errors"] == []
    assert [action["action"] for action in payload["actions"]] == ["modify", "delete"]
    assert payload["actions"][0]["changes"][0]["search"] == "value = 1"


def test_parse_reads_stdin_and_fails_on_errors(workspace: Workspace) -> None:
    result = workspace.run_cli("parse", "-", input='<edit file="x.py" op="frobnicate"/>')

    assert result.exit_code == 1
    assert "unknown op" in result.output


def test_missing_input_file_is_a_usage_error(workspace: Workspace) -> None:
    result = workspace.run_cli("parse", str(workspace.root / "absent.xml"))

    assert result.exit_code == 2
    assert "Input file not found" in result.output


def test_lint_reports_issues(workspace: Workspace) -> None:
    source = workspace.write("response.xml", "<edit op='new'/>")

    result = workspace.run_cli("lint", str(source))

    assert result.exit_code == 1
    assert "Normalized <edit> attributes" in result.output
    assert "Edit #1: missing file" in result.output


def test_lint_clean_input(workspace: Workspace) -> None:
    source = workspace.write("response.xml", '<edit file="a.py" op="remove"/>')

    result = workspace.run_cli("lint", str(source))

    assert result.exit_code == 0
    assert "No issues found." in result.output


def test_preview_shows_line_estimates(workspace: Workspace) -> None:
    workspace.write("old.py", "a\nb\nc")
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("preview", str(source), *_config_args(workspace))

    assert result.exit_code == 0, result.output
    assert "- [modify] app.py (+1 -1): Bump value" in result.output
    assert "- [delete] old.py (+0 -3): Delete file" in result.output


def test_preview_exits_non_zero_when_a_path_cannot_be_resolved(workspace: Workspace) -> None:
    source = workspace.write("response.xml", '<edit file="../escape.py" op="remove"/>')

    result = workspace.run_cli("preview", str(source), *_config_args(workspace))

    assert result.exit_code == 1
    assert "! [delete] ../escape.py" in result.output
    assert "outside the current workspace" in result.output


def test_apply_updates_workspace_and_reports_results(workspace: Workspace) -> None:
    workspace.write("app.py", "value = 1\n")
    workspace.write("old.py", "gone\n")
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("apply", str(source), *_config_args(workspace))

    assert result.exit_code == 0, result.output
    assert workspace.read("app.py") == "value = 2\n"
    assert not workspace.exists("old.py")
    assert "[ok] modify app.py: Applied 1/1 modifications." in result.output
    assert "Applied 2/2 action(s)." in result.output


def test_apply_exits_non_zero_on_failed_action(workspace: Workspace) -> None:
    workspace.write("app.py", "value = 1\n")
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("apply", str(source), "--json", *_config_args(workspace))

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["summary"] == {"total": 2, "succeeded": 1, "failed": 1}
    assert payload["results"][1]["message"] == "File does not exist, cannot delete"


def test_apply_ambiguous_option_overrides_config(workspace: Workspace) -> None:
    workspace.write("app.py", "value = 1\nvalue = 1\n")
    workspace.write("opx.yaml", "apply:\n  ambiguous_match: fail\n")
    source = workspace.write("response.xml", PATCH.replace('<edit file="old.py" op="remove"/>', ""))

    failed = workspace.run_cli("apply", str(source), *_config_args(workspace))
    assert failed.exit_code == 1
    assert "Ambiguous search text" in failed.output

    result = workspace.run_cli("apply", str(source), "--ambiguous", "first", *_config_args(workspace))
    assert result.exit_code == 0, result.output
    assert workspace.read("app.py") == "value = 2\nvalue = 1\n"


def test_apply_uses_roots_from_config(workspace: Workspace) -> None:
    (workspace.root / "svc").mkdir()
    workspace.write("svc/app.py", "value = 1\n")
    workspace.write("opx.yaml", "workspace:\n  roots:\n    - name: svc\n      path: svc\n")
    source = workspace.write("response.xml", '<edit file="app.py" op="remove" root="svc"/>')

    result = workspace.run_cli("apply", str(source), "--config", str(workspace.root / "opx.yaml"))

    assert result.exit_code == 0, result.output
    assert not workspace.exists("svc/app.py")


def test_invalid_config_exits_with_message(workspace: Workspace) -> None:
    workspace.write("opx.yaml", "apply:\n  ambiguous_match: sometimes\n")
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("apply", str(source), *_config_args(workspace))

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_bad_root_option_is_rejected(workspace: Workspace) -> None:
    source = workspace.write("response.xml", PATCH)

    result = workspace.run_cli("apply", str(source), "--root", "=nowhere")

    assert result.exit_code == 2
    assert "NAME=PATH" in result.output


def test_instructions_list_configured_roots(workspace: Workspace) -> None:
    workspace.write("opx.yaml", "workspace:\n  roots:\n    - name: app\n      path: .\n    - name: lib\n      path: .\n")

    result = workspace.run_cli("instructions", "--config", str(workspace.root / "opx.yaml"))

    assert result.exit_code == 0
    assert "<opx_instructions>" in result.output
    assert "- app\n- lib" in result.output


def test_init_writes_config_once(workspace: Workspace) -> None:
    target = workspace.root / "conf" / "opx.yaml"

    first = workspace.run_cli("init", "--config", str(target))
    second = workspace.run_cli("init", "--config", str(target))

    assert first.exit_code == 0
    assert target.exists()
    assert second.exit_code == 1
    assert "already exists" in second.output
