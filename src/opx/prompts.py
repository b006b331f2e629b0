"""Authoring instructions handed to models that should answer with OPX edits."""

from __future__ import annotations

from typing import Sequence

OPX_INSTRUCTIONS = """<opx_instructions>

# Role
You produce OPX (Overwrite Patch XML) that precisely describes file edits to apply to the current workspace.

# What you can do
- Create files
- Patch specific regions of files (search-and-replace)
- Replace entire files
- Remove files
- Move/rename files

# OPX at a glance
- One <edit> per file operation. Optionally wrap multiple edits in a single <opx>...</opx> container.
- Attributes on <edit>:
  - file="path/to/file" (required)
  - op="new|patch|replace|remove|move" (required)
  - root="workspaceRootName" (optional for multi-root workspaces)
- Optional <why> per edit to briefly explain intent.
- For literal payloads, wrap code between lines containing only <<< and >>>.

# Operations
1) op="new"  (Create file)
   - Children: <put> <<< ... >>> </put>

2) op="patch"  (Search-and-replace a region)
   - Children: <find [occurrence="first|last|N"]> <<< ... >>> </find>
               <put> <<< ... >>> </put>

3) op="replace"  (Replace entire file)
   - Children: <put> <<< ... >>> </put>

4) op="remove"  (Delete file)
   - Self-closing <edit .../> is allowed, or an empty body.

5) op="move"  (Rename/move file)
   - Children: <to file="new/path.ext" />

# Path rules
- Prefer workspace-relative paths (e.g., src/app/logging.py).
- file:// URIs and absolute paths are tolerated.
- Do not reference paths outside the workspace.

# Examples

<!-- Create file -->
<edit file="src/app/strings.py" op="new">
  <why>Create a string utilities module</why>
  <put>
<<<
def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split())
>>>
  </put>
</edit>

<!-- Patch a region -->
<edit file="src/app/users.py" op="patch">
  <why>Add a request timeout</why>
  <find occurrence="first">
<<<
    response = session.get(url)
>>>
  </find>
  <put>
<<<
    response = session.get(url, timeout=10)
>>>
  </put>
</edit>

<!-- Remove file -->
<edit file="tests/legacy/test_auth.py" op="remove" />

<!-- Move / rename file -->
<edit file="src/app/flags.py" op="move">
  <to file="src/app/feature_flags.py" />
</edit>

# Guidance for reliable patches
- Make <find> unique: include enough surrounding lines so it matches exactly once.
- The entire <find> region is replaced by the entire <put> payload.
- If a match may occur multiple times, set occurrence="first|last|N" on <find>.
- Preserve indentation to fit the surrounding code.

# Validity
- Emit syntactically correct code for each file type.
- Avoid CDATA; write raw XML as shown.
- Do not mix move with other operations for the same file in one edit.

</opx_instructions>"""


def render_opx_instructions(roots: Sequence[str] = ()) -> str:
    """Return the OPX instructions, listing workspace roots when there are several."""
    names = [name.strip() for name in roots if name.strip()]
    if len(names) < 2:
        return OPX_INSTRUCTIONS
    listing = "\n".join(f"- {name}" for name in names)
    return f'{OPX_INSTRUCTIONS}\n\n## Workspace Roots\nSet root="<name>" on every <edit>:\n{listing}'


__all__ = ["OPX_INSTRUCTIONS", "render_opx_instructions"]
