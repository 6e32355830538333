"""Tests for the Claude Code engine."""

from __future__ import annotations

import yaml

from agentic_engines.engines.claude import DEFAULT_CLAUDE_TOOLS, MCP_CONFIG_FILE, ClaudeEngine, compute_allowed_tools

LOG = "/tmp/gh-aw/agent-stdio.log"


# -- Allowed tools ----------------------------------------------------------


class TestComputeAllowedTools:
    def test_defaults_only(self, make_spec):
        assert compute_allowed_tools(make_spec()) == sorted(DEFAULT_CLAUDE_TOOLS)

    def test_bash_commands(self, make_spec):
        allowed = compute_allowed_tools(make_spec(tools={"bash": ["git status", "ls"]}))
        assert {"Bash(git status)", "Bash(ls)", "KillBash", "BashOutput"} <= set(allowed)
        assert "Bash" not in allowed

    def test_unrestricted_bash(self, make_spec):
        for value in (None, [":*"], ["*"]):
            allowed = compute_allowed_tools(make_spec(tools={"bash": value}))
            assert "Bash" in allowed
            assert not any(t.startswith("Bash(") for t in allowed)

    def test_edit_web_and_safe_outputs(self, make_spec):
        allowed = compute_allowed_tools(
            make_spec(tools={"edit": None, "web-fetch": None, "web-search": None}, safe_outputs=None)
        )
        assert {"Edit", "MultiEdit", "NotebookEdit", "Write", "WebFetch", "WebSearch"} <= set(allowed)

    def test_safe_outputs_adds_write(self, make_spec):
        assert "Write" in compute_allowed_tools(make_spec(safe_outputs={"create-issue": None}))

    def test_mcp_tools(self, make_spec):
        allowed = compute_allowed_tools(
            make_spec(
                tools={
                    "github": {"allowed": ["get_issue"]},
                    "my-api": {"url": "https://mcp.example.com", "allowed": ["search"]},
                    "other": {"command": "node", "allowed": ["*"]},
                }
            )
        )
        assert {"mcp__github__get_issue", "mcp__my-api__search", "mcp__other"} <= set(allowed)

    def test_sorted(self, make_spec):
        allowed = compute_allowed_tools(make_spec(tools={"github": None, "playwright": None, "bash": None}))
        assert allowed == sorted(allowed)
        assert len(allowed) == len(set(allowed))


# -- Secrets and installation -----------------------------------------------


class TestClaudeSecrets:
    def test_plain(self, make_spec):
        assert ClaudeEngine().required_secret_names(make_spec()) == ["ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN"]

    def test_with_mcp_and_safe_inputs(self, make_spec):
        spec = make_spec(
            tools={"github": None},
            safe_inputs={"lookup": {"env": {"LOOKUP_TOKEN": "${{ secrets.LOOKUP }}"}}},
        )
        assert ClaudeEngine().required_secret_names(spec) == [
            "ANTHROPIC_API_KEY",
            "CLAUDE_CODE_OAUTH_TOKEN",
            "MCP_GATEWAY_API_KEY",
            "LOOKUP_TOKEN",
        ]


class TestClaudeInstallation:
    def test_default(self, make_spec):
        steps = ClaudeEngine().installation_steps(make_spec(engine="claude"))
        assert [s.name for s in steps] == [
            "Validate CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY secret",
            "Setup Node.js",
            "Install Claude Code CLI",
        ]
        assert "@anthropic-ai/claude-code@2.1.39" in str(steps[-1])

    def test_firewall_runner_before_cli(self, make_spec):
        spec = make_spec(engine="claude", network={"allowed": ["example.com"], "firewall": True})
        names = [s.name for s in ClaudeEngine().installation_steps(spec)]
        assert names.index("Setup Node.js") < names.index("Install awf binary") < names.index("Install Claude Code CLI")

    def test_pinned_version(self, make_spec):
        steps = ClaudeEngine().installation_steps(make_spec(engine={"id": "claude", "version": "1.0.0"}))
        assert "@anthropic-ai/claude-code@1.0.0" in str(steps[-1])

    def test_custom_command_skips_install(self, make_spec):
        assert ClaudeEngine().installation_steps(make_spec(engine={"id": "claude", "command": "/opt/claude"})) == []


# -- Execution --------------------------------------------------------------


class TestClaudeCommand:
    def test_model_fallback_for_detection_job(self, make_spec):
        command = ClaudeEngine().build_command(make_spec(engine="claude"), LOG)
        assert command.startswith("claude --print --disable-slash-commands --no-chrome ")
        assert command.endswith('${GH_AW_MODEL_DETECTION_CLAUDE:+ --model "$GH_AW_MODEL_DETECTION_CLAUDE"}')
        assert '"$(cat /tmp/gh-aw/aw-prompts/prompt.txt)"' in command

    def test_model_fallback_for_agent_job(self, make_spec):
        command = ClaudeEngine().build_command(make_spec(engine="claude", safe_outputs=None), LOG)
        assert "GH_AW_MODEL_AGENT_CLAUDE" in command

    def test_configured_model_and_turns(self, make_spec):
        spec = make_spec(engine={"id": "claude", "model": "claude-sonnet-4", "max-turns": 5})
        command = ClaudeEngine().build_command(spec, LOG)
        assert "--model claude-sonnet-4" in command
        assert "--max-turns 5" in command
        assert "${GH_AW_MODEL" not in command

    def test_mcp_config_flag(self, make_spec):
        args = ClaudeEngine().build_args(make_spec(tools={"github": None}), LOG)
        assert args[args.index("--mcp-config") + 1] == MCP_CONFIG_FILE

    def test_custom_command_and_args(self, make_spec):
        spec = make_spec(engine={"id": "claude", "command": "/opt/claude", "args": ["--add-dir", "/tmp"]})
        command = ClaudeEngine().build_command(spec, LOG)
        assert command.startswith("/opt/claude --print")
        assert "--add-dir /tmp" in command


class TestClaudeRunScript:
    def test_direct(self, make_spec):
        script = ClaudeEngine().build_run_script(make_spec(engine="claude"), LOG)
        lines = script.split("\n")
        assert lines[0] == "set -o pipefail"
        assert lines[-1].startswith("claude --print")
        assert lines[-1].endswith(f"2>&1 | tee -a {LOG}")

    def test_direct_log_path_quoted(self, make_spec):
        script = ClaudeEngine().build_run_script(make_spec(engine="claude"), "/tmp/my logs/agent.log")
        assert script.split("\n")[-1].endswith("2>&1 | tee -a '/tmp/my logs/agent.log'")

    def test_agent_file(self, make_spec):
        script = ClaudeEngine().build_run_script(
            make_spec(engine="claude", agent_file=".github/agents/reviewer.agent.md"), LOG
        )
        assert 'AGENT_CONTENT="$(awk' in script
        assert '"${GITHUB_WORKSPACE}/.github/agents/reviewer.agent.md"' in script
        assert "PROMPT_TEXT=" in script
        assert '"$PROMPT_TEXT"' in script

    def test_firewall(self, make_spec):
        spec = make_spec(engine="claude", network={"allowed": ["example.com"], "firewall": True})
        script = ClaudeEngine().build_run_script(spec, LOG)
        lines = script.split("\n")
        assert lines[1].startswith("sudo -E awf --tty --env-all")
        assert "--enable-api-proxy" in lines[1]
        assert "api.anthropic.com" in lines[1]
        assert "example.com" in lines[1]
        assert lines[-1] == f"  2>&1 | tee -a {LOG}"

    def test_firewall_agent_file_inside_sandbox(self, make_spec):
        spec = make_spec(
            engine="claude",
            network={"allowed": ["example.com"], "firewall": True},
            agent_file=".github/agents/reviewer.md",
        )
        inner = ClaudeEngine().build_run_script(spec, LOG).split("\n")[2]
        assert inner.startswith("  -- /bin/bash -c ")
        assert "AGENT_CONTENT=" in inner


class TestClaudeEnv:
    def test_base_env(self, make_spec):
        env = ClaudeEngine().build_env(make_spec(engine="claude"))
        assert env["ANTHROPIC_API_KEY"] == "${{ secrets.ANTHROPIC_API_KEY }}"
        assert env["MCP_TIMEOUT"] == "120000"
        assert env["MCP_TOOL_TIMEOUT"] == "60000"
        assert env["GH_AW_MODEL_DETECTION_CLAUDE"] == "${{ vars.GH_AW_MODEL_DETECTION_CLAUDE || '' }}"
        assert "GH_AW_MCP_CONFIG" not in env

    def test_timeouts_and_turns(self, make_spec):
        spec = make_spec(engine={"id": "claude", "max-turns": 3}, tools={"timeout": 30, "startup-timeout": 90})
        env = ClaudeEngine().build_env(spec)
        assert env["MCP_TIMEOUT"] == "90000"
        assert env["BASH_MAX_TIMEOUT_MS"] == "30000"
        assert env["GH_AW_TOOL_TIMEOUT"] == "30"
        assert env["GH_AW_STARTUP_TIMEOUT"] == "90"
        assert env["GH_AW_MAX_TURNS"] == "3"

    def test_safe_outputs(self, make_spec):
        env = ClaudeEngine().build_env(make_spec(safe_outputs={"staged": True, "upload-assets": None}))
        assert env["GH_AW_SAFE_OUTPUTS"] == "${{ env.GH_AW_SAFE_OUTPUTS }}"
        assert env["GH_AW_SAFE_OUTPUTS_STAGED"] == '"true"'
        assert env["GH_AW_ASSETS_MAX_SIZE_KB"] == "10240"
        assert env["GH_AW_ASSETS_ALLOWED_EXTS"] == '".png,.jpg,.jpeg"'

    def test_unrequired_secrets_filtered(self, make_spec):
        spec = make_spec(engine={"id": "claude", "env": {"EXTRA": "${{ secrets.OTHER }}", "DEBUG": "1"}})
        env = ClaudeEngine().build_env(spec)
        assert "EXTRA" not in env
        assert env["DEBUG"] == "1"

    def test_agent_env_overrides_engine_env(self, make_spec):
        spec = make_spec(
            engine={"id": "claude", "env": {"MODE": "engine"}},
            sandbox={"agent": {"env": {"MODE": "agent"}}},
        )
        assert ClaudeEngine().build_env(spec)["MODE"] == "agent"


class TestClaudeExecutionSteps:
    def test_step_layout(self, make_spec):
        steps = ClaudeEngine().execution_steps(make_spec(engine="claude", tools={"github": None}), LOG)
        assert len(steps) == 1
        lines = steps[0].lines()
        assert lines[0] == "      - name: Execute Claude Code CLI"
        assert lines[1] == "        id: agentic_execution"
        assert lines[2] == "        # Allowed tools (sorted):"
        assert "        timeout-minutes: 20" in lines

        parsed = yaml.safe_load("steps:\n" + str(steps[0]))["steps"][0]
        assert parsed["env"]["GH_AW_MCP_CONFIG"] == MCP_CONFIG_FILE
        assert parsed["run"].startswith("set -o pipefail\n")

    def test_custom_steps_first(self, make_spec):
        spec = make_spec(engine={"id": "claude", "steps": [{"name": "Prepare", "run": "echo prep"}]}, timeout_minutes=5)
        steps = ClaudeEngine().execution_steps(spec, LOG)
        assert [s.name for s in steps] == ["Prepare", "Execute Claude Code CLI"]
        assert "        timeout-minutes: 5" in steps[-1].lines()


class TestClaudeMcpAndLogs:
    def test_render_mcp_config(self, make_spec):
        spec = make_spec(tools={"github": None})
        fragment = ClaudeEngine().render_mcp_config(spec.tools, ["github"], spec)
        assert f'cat > "{MCP_CONFIG_FILE}"' in fragment
        assert '"mcpServers"' in fragment

    def test_log_parser(self):
        engine = ClaudeEngine()
        assert engine.log_parser_script_id() == "parse_claude_log"
        assert engine.log_file_for_parsing() == LOG
        assert engine.parse_log_metrics('{"type": "result", "num_turns": 2}').turns == 2
