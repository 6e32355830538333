"""Tests for the agentic-engines command line."""

from __future__ import annotations

import sys
from unittest.mock import patch

import pytest

from agentic_engines.__main__ import main
from agentic_engines.config import DEFAULT_ENGINE_ENV

WORKFLOW = """\
---
engine: claude
tools:
  github:
---

Summarize open issues.
"""


@pytest.fixture(autouse=True)
def _no_engine_override(monkeypatch):
    monkeypatch.delenv(DEFAULT_ENGINE_ENV, raising=False)


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "summary.md"
    path.write_text(WORKFLOW)
    return path


def run_cli(*args: str) -> None:
    with patch.object(sys, "argv", ["agentic-engines", *args]):
        main()


class TestEnginesCommand:
    def test_lists_engines(self, capsys):
        run_cli("engines")
        out = capsys.readouterr().out
        assert "GitHub Copilot CLI (default)" in out
        assert "Google Gemini CLI [experimental]" in out
        assert "gateway:10000" in out
        assert "allowlist, http, max-turns, web-fetch, web-search, firewall, gateway:10000" in out


class TestCompileCommand:
    def test_compile(self, capsys, workflow_file):
        run_cli("compile", str(workflow_file))
        out = capsys.readouterr().out
        lines = out.splitlines()
        assert lines[0] == "# engine: claude"
        assert lines[1] == "# installation steps"
        assert "# execution steps" in lines
        assert "      - name: Execute Claude Code CLI" in lines
        assert "# mcp config" not in out

    def test_engine_override_and_mcp_config(self, capsys, workflow_file):
        run_cli("--log-level", "ERROR", "compile", str(workflow_file), "--engine", "codex", "--mcp-config")
        out = capsys.readouterr().out
        assert out.startswith("# engine: codex\n")
        assert "# mcp config" in out
        assert "[mcp_servers.github]" in out

    def test_log_file_option(self, capsys, workflow_file):
        run_cli("compile", str(workflow_file), "--log-file", "/tmp/other.log")
        assert "tee -a /tmp/other.log" in capsys.readouterr().out

    def test_missing_workflow(self, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            run_cli("compile", str(tmp_path / "missing.md"))
        assert exc_info.value.code == 1
        assert "Error: Workflow not found" in capsys.readouterr().err

    def test_unknown_engine(self, capsys, workflow_file):
        with pytest.raises(SystemExit) as exc_info:
            run_cli("compile", str(workflow_file), "--engine", "gpt")
        assert exc_info.value.code == 1
        assert "Error: no engine found matching prefix: gpt" in capsys.readouterr().err

    def test_invalid_frontmatter(self, capsys, tmp_path):
        path = tmp_path / "bad.md"
        path.write_text("---\n- not a mapping\n---\n")
        with pytest.raises(SystemExit):
            run_cli("compile", str(path))
        assert "Error: Frontmatter must be a YAML mapping" in capsys.readouterr().err


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc_info:
        run_cli()
    assert exc_info.value.code == 1
    assert "usage: agentic-engines" in capsys.readouterr().out
