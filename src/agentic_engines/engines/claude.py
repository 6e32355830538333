"""Claude Code engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    DEFAULT_CLAUDE_CODE_VERSION,
    DEFAULT_GITHUB_TOOLS,
    DEFAULT_MCP_STARTUP_TIMEOUT_SECONDS,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
    ENV_MODEL_AGENT_CLAUDE,
    ENV_MODEL_DETECTION_CLAUDE,
    MCP_CONFIG_DIR,
    MCP_GATEWAY_API_KEY,
    PLAYWRIGHT_TOOLS,
    PROMPT_FILE,
)
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.logs import LogMetrics, parse_claude_log
from agentic_engines.engines.mcp import build_mcp_servers, render_json_mcp_config
from agentic_engines.sandbox.domains import CLAUDE_DEFAULT_DOMAINS, format_allowed_domains
from agentic_engines.sandbox.firewall import (
    NPM_BIN_PATH_SETUP,
    AWFCommandConfig,
    build_awf_command,
    is_firewall_enabled,
)
from agentic_engines.sandbox.secrets import filter_env_for_secrets
from agentic_engines.shell import shell_escape_arg, shell_join_args
from agentic_engines.steps import PipelineStep, StepBuilder

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

MCP_CONFIG_FILE = f"{MCP_CONFIG_DIR}/mcp-servers.json"

# Read-only built-ins every Claude run may use.
DEFAULT_CLAUDE_TOOLS = ("Task", "Glob", "Grep", "ExitPlanMode", "TodoWrite", "LS", "Read", "NotebookRead")
EDIT_TOOLS = ("Edit", "MultiEdit", "NotebookEdit", "Write")


def _mcp_tool_names(server: str, allowed: Any) -> list[str]:
    if not isinstance(allowed, list):
        return []
    if "*" in allowed:
        return [f"mcp__{server}"]
    return [f"mcp__{server}__{tool}" for tool in allowed]


def compute_allowed_tools(spec: WorkflowSpec) -> list[str]:
    """Sorted ``--allowed-tools`` entries for the workflow's tool map."""
    tools = spec.tools
    allowed: set[str] = set(DEFAULT_CLAUDE_TOOLS)

    if tool_queries.is_tool_enabled(tools, "bash"):
        commands = tools["bash"]
        if isinstance(commands, list) and not any(c in (":*", "*") for c in commands):
            allowed.update(f"Bash({c})" for c in commands)
        else:
            allowed.add("Bash")
    if any(t == "Bash" or t.startswith("Bash(") for t in allowed):
        allowed.update({"KillBash", "BashOutput"})

    if tool_queries.is_tool_enabled(tools, "web-fetch"):
        allowed.add("WebFetch")
    if tool_queries.is_tool_enabled(tools, "web-search"):
        allowed.add("WebSearch")
    if tool_queries.is_tool_enabled(tools, "edit"):
        allowed.update(EDIT_TOOLS)

    if tool_queries.is_tool_enabled(tools, "playwright"):
        allowed.update(f"mcp__playwright__{t}" for t in PLAYWRIGHT_TOOLS)

    if tool_queries.has_github_tool(tools):
        github_allowed = tool_queries.github_allowed_tools(tools)
        if github_allowed is None:
            allowed.update(f"mcp__github__{t}" for t in DEFAULT_GITHUB_TOOLS)
        else:
            allowed.update(_mcp_tool_names("github", github_allowed))

    for name, cfg in tool_queries.custom_mcp_tools(tools).items():
        allowed.update(_mcp_tool_names(name, cfg.get("allowed")))

    if spec.safe_outputs is not None:
        allowed.add("Write")

    return sorted(allowed)


class ClaudeEngine(BaseEngine):
    SPEC = EngineSpec(
        id="claude",
        display_name="Claude Code",
        description="Uses Claude Code with full MCP tool support and allow-listing",
        supports_tools_allowlist=True,
        supports_http_transport=True,
        supports_max_turns=True,
        supports_web_fetch=True,
        supports_web_search=True,
        supports_firewall=True,
        llm_gateway_port=10000,
    )

    DOCS_URL = "https://github.github.com/gh-aw/reference/engines/#anthropic-claude-code"

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        names = ["ANTHROPIC_API_KEY", "CLAUDE_CODE_OAUTH_TOKEN"]
        if tool_queries.has_mcp_servers(spec):
            names.append(MCP_GATEWAY_API_KEY)
        names.extend(common.required_tool_secrets(spec, include_headers=False))
        return names

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        logger.debug("Generating installation steps for Claude engine: workflow=%s", spec.name)
        return common.npm_engine_installation_steps(
            spec,
            secrets=["CLAUDE_CODE_OAUTH_TOKEN", "ANTHROPIC_API_KEY"],
            engine_name="Claude Code",
            docs_url=self.DOCS_URL,
            package="@anthropic-ai/claude-code",
            default_version=DEFAULT_CLAUDE_CODE_VERSION,
            step_name="Install Claude Code CLI",
            cli_name="claude",
        )

    # ── Execution ─────────────────────────────────────────────────────────

    def build_args(self, spec: WorkflowSpec, log_file: str) -> list[str]:
        args = ["--print", "--disable-slash-commands", "--no-chrome"]
        if spec.model_configured:
            args += ["--model", spec.engine.model]  # type: ignore[union-attr]
        if spec.engine is not None and spec.engine.max_turns:
            args += ["--max-turns", spec.engine.max_turns]
        if tool_queries.has_mcp_servers(spec):
            args += ["--mcp-config", MCP_CONFIG_FILE]
        allowed_tools = compute_allowed_tools(spec)
        if allowed_tools:
            args += ["--allowed-tools", ",".join(allowed_tools)]
        args += [
            "--debug-file",
            log_file,
            "--verbose",
            "--permission-mode",
            "bypassPermissions",
            "--output-format",
            "stream-json",
        ]
        args += common.custom_args(spec)
        return args

    def build_command(self, spec: WorkflowSpec, log_file: str) -> str:
        """The bare ``claude ...`` invocation, prompt included."""
        prompt = '"$PROMPT_TEXT"' if spec.agent_file else f'"$(cat {PROMPT_FILE})"'
        command = common.custom_command(spec) or "claude"
        command = f"{command} {shell_join_args([*self.build_args(spec, log_file), prompt])}"
        if not spec.model_configured:
            var = common.model_env_var(spec, ENV_MODEL_AGENT_CLAUDE, ENV_MODEL_DETECTION_CLAUDE)
            command += common.model_flag_fallback(var)
        return command

    def _prompt_setup(self, spec: WorkflowSpec) -> list[str]:
        if not spec.agent_file:
            return []
        logger.debug("Using custom agent file: %s", spec.agent_file)
        return [
            "# Extract markdown body from custom agent file (skip frontmatter)",
            common.agent_content_command(spec.agent_file),
            "# Combine agent content with prompt",
            common.combined_prompt_command("PROMPT_TEXT"),
        ]

    def build_run_script(self, spec: WorkflowSpec, log_file: str) -> str:
        claude_command = self.build_command(spec, log_file)
        setup = self._prompt_setup(spec)

        if is_firewall_enabled(spec):
            # The prompt variables must be set inside the sandboxed shell.
            inner = " && ".join([NPM_BIN_PATH_SETUP, *[s for s in setup if not s.startswith("#")], claude_command])
            return build_awf_command(
                AWFCommandConfig(
                    engine_name=self.id,
                    engine_command=inner,
                    log_file=log_file,
                    spec=spec,
                    allowed_domains=format_allowed_domains(
                        CLAUDE_DEFAULT_DOMAINS, spec.network, spec.tools, spec.runtimes
                    ),
                    uses_tty=True,
                    uses_api_proxy=self.spec.supports_llm_gateway,
                )
            )

        lines = ["set -o pipefail", *setup]
        lines.append("# Execute Claude Code CLI with prompt from file")
        lines.append(f"{claude_command} 2>&1 | tee -a {shell_escape_arg(log_file)}")
        return "\n".join(lines)

    def build_env(self, spec: WorkflowSpec) -> dict[str, str]:
        startup_ms = (spec.tools_startup_timeout or DEFAULT_MCP_STARTUP_TIMEOUT_SECONDS) * 1000
        tool_ms = (spec.tools_timeout or DEFAULT_TOOL_TIMEOUT_SECONDS) * 1000
        env = {
            "ANTHROPIC_API_KEY": "${{ secrets.ANTHROPIC_API_KEY }}",
            "CLAUDE_CODE_OAUTH_TOKEN": "${{ secrets.CLAUDE_CODE_OAUTH_TOKEN }}",
            "DISABLE_TELEMETRY": "1",
            "DISABLE_ERROR_REPORTING": "1",
            "DISABLE_BUG_COMMAND": "1",
            "GH_AW_PROMPT": PROMPT_FILE,
            "GITHUB_WORKSPACE": "${{ github.workspace }}",
            "MCP_TIMEOUT": str(startup_ms),
            "MCP_TOOL_TIMEOUT": str(tool_ms),
            "BASH_DEFAULT_TIMEOUT_MS": str(tool_ms),
            "BASH_MAX_TIMEOUT_MS": str(tool_ms),
        }
        if tool_queries.has_mcp_servers(spec):
            env["GH_AW_MCP_CONFIG"] = MCP_CONFIG_FILE
        env.update(common.safe_output_env(spec))
        env.update(common.timeout_env(spec))
        env.update(common.max_turns_env(spec))
        env.update(common.model_env(spec, ENV_MODEL_AGENT_CLAUDE, ENV_MODEL_DETECTION_CLAUDE))
        common.apply_custom_env(env, spec)
        common.add_tool_secrets(env, spec, include_headers=False)
        return filter_env_for_secrets(env, self.required_secret_names(spec))

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        logger.debug(
            "Building Claude execution steps: workflow=%s, firewall=%s",
            spec.name,
            is_firewall_enabled(spec),
        )
        steps = common.inject_custom_engine_steps(spec)

        builder = StepBuilder("Execute Claude Code CLI", step_id=common.AGENT_EXECUTION_STEP_ID)
        allowed_tools = compute_allowed_tools(spec)
        if allowed_tools:
            builder.with_comments(["Allowed tools (sorted):", *[f"- {t}" for t in allowed_tools]])
        builder.with_field("timeout-minutes", common.timeout_minutes(spec))
        builder.with_run(self.build_run_script(spec, log_file))
        builder.with_env(self.build_env(spec))
        steps.append(builder.build())
        return steps

    # ── MCP / Logs ────────────────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        return render_json_mcp_config(build_mcp_servers(tools, mcp_tools), MCP_CONFIG_FILE)

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        return parse_claude_log(text, verbose)

    def log_parser_script_id(self) -> str:
        return "parse_claude_log"
