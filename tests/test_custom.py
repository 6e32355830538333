"""Tests for the custom-steps engine."""

from __future__ import annotations

import json

import yaml

from agentic_engines.engines.custom import MCP_CONFIG_FILE, CustomEngine

LOG = "/tmp/gh-aw/agent-stdio.log"


class TestCustomEngineBasics:
    def test_secrets(self, make_spec):
        engine = CustomEngine()
        assert engine.required_secret_names(make_spec(engine="custom")) == []
        assert engine.required_secret_names(make_spec(engine="custom", safe_outputs=None)) == ["MCP_GATEWAY_API_KEY"]

    def test_nothing_installed(self, make_spec):
        assert CustomEngine().installation_steps(make_spec(engine="custom")) == []

    def test_injected_env(self, make_spec):
        spec = make_spec(
            engine={"id": "custom", "max-turns": 3, "args": ["--fast", "--quiet"], "env": {"MODE": "ci"}},
            safe_outputs=None,
        )
        assert CustomEngine().injected_env(spec) == {
            "GH_AW_PROMPT": "/tmp/gh-aw/aw-prompts/prompt.txt",
            "GH_AW_MCP_CONFIG": MCP_CONFIG_FILE,
            "GH_AW_SAFE_OUTPUTS": "${{ env.GH_AW_SAFE_OUTPUTS }}",
            "GH_AW_MAX_TURNS": "3",
            "GH_AW_ARGS": "--fast --quiet",
            "MODE": "ci",
        }


class TestCustomExecutionSteps:
    def test_user_steps_get_env(self, make_spec):
        spec = make_spec(
            engine={
                "id": "custom",
                "steps": [
                    {"name": "Run agent", "run": "./agent.sh", "env": {"GH_AW_PROMPT": "mine", "KEEP": "yes"}},
                    {"name": "Checkout", "uses": "actions/checkout@v5"},
                ],
            }
        )
        steps = CustomEngine().execution_steps(spec, LOG)
        assert [s.name for s in steps] == ["Run agent", "Checkout", "Ensure log file exists"]

        first = yaml.safe_load("\n".join(steps[0].lines()))[0]
        assert first["run"] == "./agent.sh"
        assert first["env"]["KEEP"] == "yes"
        assert first["env"]["GH_AW_PROMPT"] == "/tmp/gh-aw/aw-prompts/prompt.txt"

        second = yaml.safe_load("\n".join(steps[1].lines()))[0]
        assert second["env"]["GH_AW_MCP_CONFIG"] == MCP_CONFIG_FILE

    def test_log_file_step(self, make_spec):
        steps = CustomEngine().execution_steps(make_spec(engine="custom"), LOG)
        assert len(steps) == 1
        assert steps[0].lines() == [
            "      - name: Ensure log file exists",
            "        run: |",
            f'          echo "Custom steps execution completed" >> {LOG}',
            f"          touch {LOG}",
        ]


class TestCustomMcpAndLogs:
    def test_render_mcp_config(self, make_spec):
        spec = make_spec(engine="custom", safe_outputs=None)
        fragment = CustomEngine().render_mcp_config(spec.tools, ["safe-outputs"], spec)
        document = json.loads("\n".join(fragment.split("\n")[2:-1]))
        assert "safeoutputs" in document["mcpServers"]

    def test_claude_log(self):
        metrics = CustomEngine().parse_log_metrics('{"type": "result", "num_turns": 2, "total_cost_usd": 0.1}')
        assert metrics.turns == 2

    def test_codex_log(self):
        metrics = CustomEngine().parse_log_metrics("[2025-01-01T00:00:00] thinking\n")
        assert metrics.turns == 1

    def test_unknown_log(self):
        assert CustomEngine().parse_log_metrics("plain output").is_empty
        assert CustomEngine().log_parser_script_id() == "parse_custom_log"
