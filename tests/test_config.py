"""Tests for workflow loading and frontmatter validation."""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from agentic_engines.config import (
    DEFAULT_ENGINE_ENV,
    EngineConfig,
    SafeOutputsConfig,
    load_workflow,
    parse_workflow,
)
from agentic_engines.errors import WorkflowCompileError, WorkflowConfigError

WORKFLOW = """\
---
engine: claude
network: defaults
tools:
  github:
    allowed: [get_issue]
  bash: ["git status"]
  timeout: 45
  startup-timeout: 90
safe-outputs:
timeout-minutes: 15
---

# Triage

Label new issues.
"""


@pytest.fixture(autouse=True)
def _no_engine_override(monkeypatch):
    monkeypatch.delenv(DEFAULT_ENGINE_ENV, raising=False)


# -- Parsing ----------------------------------------------------------------


class TestParseWorkflow:
    def test_full_frontmatter(self):
        spec = parse_workflow(WORKFLOW, name="triage")
        assert spec.name == "triage"
        assert spec.engine_id == "claude"
        assert spec.network.allowed == ["defaults"]
        assert spec.tools == {"github": {"allowed": ["get_issue"]}, "bash": ["git status"]}
        assert spec.tools_timeout == 45
        assert spec.tools_startup_timeout == 90
        assert spec.safe_outputs is not None
        assert not spec.is_detection_job
        assert spec.timeout_minutes == 15
        assert spec.markdown.startswith("# Triage")

    def test_no_frontmatter(self):
        spec = parse_workflow("# Just a prompt\n", name="plain")
        assert spec.name == "plain"
        assert spec.engine is None
        assert spec.engine_id == ""
        assert spec.markdown == "# Just a prompt\n"
        assert spec.is_detection_job

    def test_text_before_fence_is_not_frontmatter(self):
        spec = parse_workflow("intro\n---\nengine: claude\n---\n")
        assert spec.engine is None

    def test_name_from_frontmatter(self):
        assert parse_workflow("---\nname: custom-name\n---\nbody", name="file").name == "custom-name"

    def test_invalid_yaml(self):
        with pytest.raises(WorkflowConfigError, match="Invalid YAML frontmatter"):
            parse_workflow("---\nengine: [claude\n---\n")

    def test_frontmatter_not_mapping(self):
        with pytest.raises(WorkflowConfigError, match="must be a YAML mapping"):
            parse_workflow("---\n- claude\n---\n")

    def test_validation_failure(self):
        with pytest.raises(WorkflowConfigError, match="Invalid workflow 'bad'") as exc_info:
            parse_workflow("---\ntimeout-minutes: soon\n---\n", name="bad")
        assert isinstance(exc_info.value, ValueError)
        assert isinstance(exc_info.value, WorkflowCompileError)

    def test_sandbox_and_firewall_shorthands(self):
        spec = parse_workflow("---\nsandbox:\n  agent: false\nnetwork:\n  allowed: [python]\n  firewall: true\n---\n")
        assert spec.sandbox.agent_disabled
        assert spec.network.firewall.enabled


class TestDefaultEngineEnv:
    def test_env_supplies_engine(self):
        with patch.dict(os.environ, {DEFAULT_ENGINE_ENV: "codex"}):
            assert parse_workflow("# prompt").engine_id == "codex"

    def test_frontmatter_wins(self):
        with patch.dict(os.environ, {DEFAULT_ENGINE_ENV: "codex"}):
            assert parse_workflow(WORKFLOW).engine_id == "claude"


# -- Models -----------------------------------------------------------------


class TestEngineConfig:
    def test_shorthand(self):
        assert EngineConfig.model_validate("gemini").id == "gemini"

    def test_coercion(self):
        config = EngineConfig.model_validate({"id": "claude", "max-turns": 5, "version": 1.2, "env": {"N": 3}})
        assert config.max_turns == "5"
        assert config.version == "1.2"
        assert config.env == {"N": "3"}

    def test_field_names_accepted(self):
        assert EngineConfig(id="claude", max_turns="7").max_turns == "7"


class TestSafeOutputsConfig:
    def test_output_types_collected(self):
        config = SafeOutputsConfig.model_validate({"staged": True, "create-issue": {"max": 1}, "add-comment": None})
        assert config.staged
        assert config.outputs == {"create-issue": {"max": 1}, "add-comment": None}
        assert config.upload_assets is None

    def test_upload_assets_defaults(self):
        config = SafeOutputsConfig.model_validate({"upload-assets": None})
        assert config.upload_assets.branch_name == "assets/${{ github.workflow }}"
        assert config.upload_assets.max_size_kb == 10240


# -- Loading ----------------------------------------------------------------


class TestLoadWorkflow:
    def test_load(self, tmp_path, caplog):
        path = tmp_path / "triage.md"
        path.write_text(WORKFLOW)
        with caplog.at_level(logging.INFO, logger="agentic_engines.config"):
            spec = load_workflow(path)
        assert spec.name == "triage"
        assert "Loaded workflow triage (engine=claude)" in caplog.text

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Workflow not found"):
            load_workflow(tmp_path / "missing.md")
