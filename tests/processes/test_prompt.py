"""Tests for prompt rendering and task-template substitution."""

import os
import stat

import pytest

from aku.processes.prompt import TYPE_FOCUS, render_prompt, substitute_index, write_prompt


# ── substitute_index ─────────────────────────────────────────────

def test_substitutes_lower_and_upper_tokens():
    assert substitute_index("Process module {n}", 3) == "Process module 3"
    assert substitute_index("Shard {N} of many", 12) == "Shard 12 of many"
    assert substitute_index("{n}/{N}/{n}", 2) == "2/2/2"


def test_template_without_tokens_is_unchanged():
    assert substitute_index("no placeholders {x} {nn} {}", 5) == "no placeholders {x} {nn} {}"


def test_substitution_is_single_pass():
    # "{{n}}" becomes "{1}" — the produced text is not scanned again
    assert substitute_index("{{n}}", 1) == "{1}"
    assert substitute_index("{{N}}x", 7) == "{7}x"


def test_substitution_does_not_interpret_shell_syntax():
    template = "run $(echo {n}) and `id` for item {n}"
    assert substitute_index(template, 4) == "run $(echo 4) and `id` for item 4"


# ── render_prompt ────────────────────────────────────────────────

def test_prompt_embeds_task_verbatim(tmp_path):
    task = "Fix {bug} in $(whoami) and ${HOME} — don't touch `rm -rf /`"
    text = render_prompt("fixer", task, workdir=tmp_path)

    assert text.startswith(f"# Task: {task}\n")
    assert "named 'fixer'" in text
    assert f"Work directory: {tmp_path}" in text
    assert text.rstrip().endswith("summarize what you accomplished.")


def test_prompt_records_agent_type(tmp_path):
    text = render_prompt("ui", "Build dashboard", agent_type="frontend", workdir=tmp_path)
    assert "Agent type: frontend" in text
    assert TYPE_FOCUS["frontend"] in text


def test_unknown_type_has_no_focus_line(tmp_path):
    text = render_prompt("x", "task", agent_type="custom", workdir=tmp_path)
    assert "Agent type: custom" in text
    assert not any(focus and focus in text for focus in TYPE_FOCUS.values())


# ── write_prompt ─────────────────────────────────────────────────

def test_write_prompt_is_byte_exact(tmp_path):
    path = tmp_path / "nested" / "a.prompt.md"
    text = "# Task: ünïcode $(date) {n}\n"
    write_prompt(path, text)
    assert path.read_bytes() == text.encode("utf-8")


def test_write_prompt_replaces_stale_content(tmp_path):
    path = tmp_path / "a.prompt.md"
    path.write_text("old content that is much longer than the new one")
    write_prompt(path, "new")
    assert path.read_text() == "new"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_write_prompt_is_owner_only(tmp_path):
    path = tmp_path / "a.prompt.md"
    write_prompt(path, "x")
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_write_prompt_restores_escaped_bytes(tmp_path):
    path = tmp_path / "a.prompt.md"
    write_prompt(path, "# Task: caf\udce9\n")
    assert path.read_bytes() == b"# Task: caf\xe9\n"


def test_write_prompt_unencodable_text_touches_nothing(tmp_path):
    path = tmp_path / "nested" / "a.prompt.md"
    with pytest.raises(UnicodeEncodeError):
        write_prompt(path, "# Task: \ud800\n")
    assert not path.exists()
    assert not path.parent.exists()
