from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from typer.testing import CliRunner, Result

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from opx.cli import app  # noqa: E402
from opx.tools.documents import clear_document_cache  # noqa: E402
from opx.tools.paths import WorkspacePathResolver  # noqa: E402


@dataclass(slots=True)
class Workspace:
    """Fixture payload representing a scratch workspace root."""

    root: Path

    @property
    def resolver(self) -> WorkspacePathResolver:
        return WorkspacePathResolver.single(self.root)

    def write(self, relative: str, text: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.encode("utf-8"))
        return path

    def read(self, relative: str) -> str:
        return (self.root / relative).read_bytes().decode("utf-8")

    def exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def run_cli(self, *args: str, input: str | None = None) -> Result:
        """Invoke the ``opx`` CLI in-process with the provided arguments."""
        return CliRunner().invoke(app, list(args), input=input)


@pytest.fixture()
def workspace(tmp_path: Path) -> Workspace:
    root = tmp_path / "workspace"
    root.mkdir()
    return Workspace(root=root)


@pytest.fixture(autouse=True)
def _fresh_document_cache() -> None:
    clear_document_cache()
