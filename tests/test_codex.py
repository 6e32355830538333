"""Tests for the Codex engine."""

from __future__ import annotations

import tomllib

from agentic_engines.engines.codex import CODEX_LOGS_DIR, CONFIG_TOML, CodexEngine
from agentic_engines.engines.mcp import HEREDOC_DELIMITER

LOG = "/tmp/gh-aw/agent-stdio.log"
TAIL = '--dangerously-bypass-approvals-and-sandbox --skip-git-repo-check "$INSTRUCTION"'


class TestCodexSecrets:
    def test_plain(self, make_spec):
        assert CodexEngine().required_secret_names(make_spec()) == ["CODEX_API_KEY", "OPENAI_API_KEY"]

    def test_github_tool_allows_token(self, make_spec):
        assert CodexEngine().required_secret_names(make_spec(tools={"github": None})) == [
            "CODEX_API_KEY",
            "OPENAI_API_KEY",
            "MCP_GATEWAY_API_KEY",
            "GH_AW_GITHUB_TOKEN",
        ]

    def test_output_files(self):
        assert CodexEngine().declared_output_files() == [CODEX_LOGS_DIR]


class TestCodexInstallation:
    def test_steps(self, make_spec):
        steps = CodexEngine().installation_steps(make_spec(engine="codex"))
        assert [s.name for s in steps] == [
            "Validate CODEX_API_KEY or OPENAI_API_KEY secret",
            "Setup Node.js",
            "Install Codex",
        ]
        assert "npm install -g --silent @openai/codex@0.101.0" in str(steps[-1])


# -- Execution --------------------------------------------------------------


class TestCodexCommand:
    def test_model_fallback(self, make_spec):
        command = CodexEngine().build_command(make_spec(engine="codex"))
        assert command == (
            'codex ${GH_AW_MODEL_DETECTION_CODEX:+-c model="$GH_AW_MODEL_DETECTION_CODEX" }exec ' + TAIL
        )

    def test_configured_model_and_search(self, make_spec):
        spec = make_spec(engine={"id": "codex", "model": "gpt-5"}, tools={"web-search": None})
        assert CodexEngine().build_command(spec) == "codex -c model=gpt-5 exec --search " + TAIL

    def test_custom_args_before_prompt(self, make_spec):
        spec = make_spec(engine={"id": "codex", "model": "gpt-5", "args": ["--full-auto"]})
        assert CodexEngine().build_command(spec).endswith('--full-auto "$INSTRUCTION"')


class TestCodexRunScript:
    def test_direct(self, make_spec):
        engine = CodexEngine()
        spec = make_spec(engine={"id": "codex", "model": "gpt-5"})
        assert engine.build_run_script(spec, LOG).split("\n") == [
            "set -o pipefail",
            'INSTRUCTION="$(cat "$GH_AW_PROMPT")"',
            'mkdir -p "$CODEX_HOME/logs"',
            f"{engine.build_command(spec)} 2>&1 | tee {LOG}",
        ]

    def test_direct_log_path_quoted(self, make_spec):
        script = CodexEngine().build_run_script(make_spec(engine="codex"), "/tmp/my logs/agent.log")
        assert script.endswith("2>&1 | tee '/tmp/my logs/agent.log'")

    def test_agent_file(self, make_spec):
        spec = make_spec(engine="codex", agent_file=".github/agents/fixer.md")
        script = CodexEngine().build_run_script(spec, LOG)
        assert "AGENT_CONTENT=" in script
        assert 'INSTRUCTION="$(printf' in script

    def test_firewall(self, make_spec):
        spec = make_spec(engine="codex", network={"allowed": ["example.com"], "firewall": True})
        lines = CodexEngine().build_run_script(spec, LOG).split("\n")
        assert lines[0] == "set -o pipefail"
        assert lines[1] == 'mkdir -p "$CODEX_HOME/logs"'
        assert lines[2].startswith("sudo -E awf --env-all")
        assert "api.openai.com" in lines[2]
        assert "--enable-api-proxy" in lines[2]
        assert "INSTRUCTION=" in lines[3]
        assert lines[4] == f"  2>&1 | tee {LOG}"


class TestCodexEnv:
    def test_without_github_tool(self, make_spec):
        env = CodexEngine().build_env(make_spec(engine="codex"))
        assert env["CODEX_API_KEY"] == "${{ secrets.CODEX_API_KEY || secrets.OPENAI_API_KEY }}"
        assert env["OPENAI_API_KEY"] == env["CODEX_API_KEY"]
        assert env["CODEX_HOME"] == "/tmp/gh-aw/mcp-config"
        assert env["GH_AW_MCP_CONFIG"] == CONFIG_TOML
        assert "GH_AW_GITHUB_TOKEN" not in env
        assert "GITHUB_PERSONAL_ACCESS_TOKEN" not in env

    def test_with_github_tool(self, make_spec):
        env = CodexEngine().build_env(make_spec(engine="codex", tools={"github": None}))
        assert env["GH_AW_GITHUB_TOKEN"] == "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
        assert env["GITHUB_PERSONAL_ACCESS_TOKEN"] == env["GH_AW_GITHUB_TOKEN"]

    def test_workflow_token(self, make_spec):
        spec = make_spec(engine="codex", tools={"github": None}, github_token="${{ secrets.GH_AW_GITHUB_TOKEN }}")
        assert CodexEngine().build_env(spec)["GH_AW_GITHUB_TOKEN"] == "${{ secrets.GH_AW_GITHUB_TOKEN }}"


class TestCodexExecutionSteps:
    def test_run_codex_step(self, make_spec):
        steps = CodexEngine().execution_steps(make_spec(engine="codex"), LOG)
        assert [s.name for s in steps] == ["Run Codex"]
        assert steps[0].lines()[1] == "        run: |"


# -- MCP / logs -------------------------------------------------------------


class TestCodexMcpConfig:
    def test_toml_with_codex_token(self, make_spec):
        spec = make_spec(engine="codex", tools={"github": None}, safe_outputs=None)
        fragment = CodexEngine().render_mcp_config(spec.tools, ["github", "safe-outputs"], spec)
        lines = fragment.split("\n")
        assert lines[1] == f'cat > "{CONFIG_TOML}" << {HEREDOC_DELIMITER}'
        document = tomllib.loads("\n".join(lines[2:-1]))
        github = document["mcp_servers"]["github"]
        assert github["env"]["GITHUB_PERSONAL_ACCESS_TOKEN"] == "$GH_AW_GITHUB_TOKEN"
        assert document["mcp_servers"]["safeoutputs"]["url"] == "http://localhost:$GH_AW_SAFE_OUTPUTS_PORT"

    def test_log_parser(self):
        engine = CodexEngine()
        assert engine.log_parser_script_id() == "parse_codex_log"
        assert engine.parse_log_metrics("[2025-01-01T00:00:00] thinking\n").turns == 1
