"""Prompt documents fed to agent processes on stdin.

Task text is opaque payload: it is embedded verbatim and never run through
a shell, a template engine or ``str.format``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_TASK = "No task specified"

# Extra guidance per --type; unknown types get none
TYPE_FOCUS: dict[str, str] = {
    "general": "",
    "frontend": "Focus on user-facing code: components, styling and client-side behaviour.",
    "backend": "Focus on server-side code: APIs, data access and business logic.",
    "test": "Focus on tests: add or repair coverage for the code involved and keep the suite passing.",
    "review": "Review only: read the relevant code and report findings without modifying files.",
    "docs": "Focus on documentation: READMEs, docstrings and usage examples.",
}

_INDEX_TOKEN = re.compile(r"\{[nN]\}")


def substitute_index(template: str, index: int) -> str:
    """Replace every ``{n}`` and ``{N}`` in ``template`` with ``index``.

    Single pass: text produced by a replacement is never scanned again.
    """
    value = str(index)
    return _INDEX_TOKEN.sub(lambda _m: value, template)


def render_prompt(
    name: str,
    task: str,
    agent_type: str = "general",
    workdir: Path | None = None,
) -> str:
    lines = [
        f"# Task: {task}",
        "",
        f"You are an independent coding agent named '{name}'.",
        f"Agent type: {agent_type}",
        f"Work directory: {workdir or Path.cwd()}",
        "",
    ]
    focus = TYPE_FOCUS.get(agent_type)
    if focus:
        lines += [focus, ""]
    lines.append("Complete the task above. When done, summarize what you accomplished.")
    return "\n".join(lines) + "\n"


def write_prompt(path: Path, text: str) -> None:
    """Write the prompt file owner-only, replacing any stale copy.

    Undecodable bytes smuggled in as lone surrogates (e.g. from argv) are
    written back out as the original bytes. Text that cannot be encoded at
    all raises before the file is touched.
    """
    data = text.encode("utf-8", errors="surrogateescape")
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
