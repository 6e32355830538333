"""OpenAI Codex engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    DEFAULT_CODEX_VERSION,
    ENV_MODEL_AGENT_CODEX,
    ENV_MODEL_DETECTION_CODEX,
    MCP_CONFIG_DIR,
    MCP_GATEWAY_API_KEY,
    PROMPT_FILE,
)
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.logs import LogMetrics, parse_codex_log
from agentic_engines.engines.mcp import MCPRenderOptions, build_mcp_servers, render_toml_mcp_config
from agentic_engines.sandbox.domains import CODEX_DEFAULT_DOMAINS, format_allowed_domains
from agentic_engines.sandbox.firewall import (
    NPM_BIN_PATH_SETUP,
    AWFCommandConfig,
    build_awf_command,
    is_firewall_enabled,
)
from agentic_engines.sandbox.secrets import filter_env_for_secrets
from agentic_engines.shell import shell_escape_arg
from agentic_engines.steps import PipelineStep, StepBuilder

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

CONFIG_TOML = f"{MCP_CONFIG_DIR}/config.toml"
CODEX_LOGS_DIR = f"{MCP_CONFIG_DIR}/logs/"

# Codex internals are very chatty at trace level.
RUST_LOG = (
    "trace,hyper_util=info,mio=info,reqwest=info,os_info=info,"
    "codex_otel=warn,codex_core=debug,ocodex_exec=debug"
)

_MKDIR_LOGS = 'mkdir -p "$CODEX_HOME/logs"'


class CodexEngine(BaseEngine):
    SPEC = EngineSpec(
        id="codex",
        display_name="Codex",
        description="Uses OpenAI Codex CLI with MCP server support",
        supports_tools_allowlist=True,
        supports_http_transport=True,
        supports_web_search=True,
        supports_firewall=True,
        llm_gateway_port=10001,
    )

    DOCS_URL = "https://github.github.com/gh-aw/reference/engines/#openai-codex"

    def declared_output_files(self) -> list[str]:
        return [CODEX_LOGS_DIR]

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        names = ["CODEX_API_KEY", "OPENAI_API_KEY"]
        if tool_queries.has_mcp_servers(spec):
            names.append(MCP_GATEWAY_API_KEY)
        if tool_queries.has_github_tool(spec.tools):
            # config.toml hands $GH_AW_GITHUB_TOKEN to the GitHub MCP server
            names.append("GH_AW_GITHUB_TOKEN")
        names.extend(common.required_tool_secrets(spec, include_headers=False))
        return names

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        logger.debug("Generating installation steps for Codex engine: workflow=%s", spec.name)
        return common.npm_engine_installation_steps(
            spec,
            secrets=["CODEX_API_KEY", "OPENAI_API_KEY"],
            engine_name="Codex",
            docs_url=self.DOCS_URL,
            package="@openai/codex",
            default_version=DEFAULT_CODEX_VERSION,
            step_name="Install Codex",
            cli_name="codex",
        )

    # ── Execution ─────────────────────────────────────────────────────────

    def build_command(self, spec: WorkflowSpec) -> str:
        """``codex [model] exec ... "$INSTRUCTION"``; the prompt is read into $INSTRUCTION first."""
        if spec.model_configured:
            model_param = f"-c model={spec.engine.model} "  # type: ignore[union-attr]
        else:
            var = common.model_env_var(spec, ENV_MODEL_AGENT_CODEX, ENV_MODEL_DETECTION_CODEX)
            model_param = f'${{{var}:+-c model="${var}" }}'

        parts = [f"{common.custom_command(spec) or 'codex'} {model_param}exec"]
        if tool_queries.is_tool_enabled(spec.tools, "web-search"):
            parts.append("--search")
        parts += ["--dangerously-bypass-approvals-and-sandbox", "--skip-git-repo-check"]
        parts += common.custom_args(spec)
        parts.append('"$INSTRUCTION"')
        return " ".join(parts)

    def _instruction_setup(self, spec: WorkflowSpec, prompt_source: str) -> list[str]:
        if spec.agent_file:
            return [
                common.agent_content_command(spec.agent_file),
                common.combined_prompt_command("INSTRUCTION", prompt_source),
            ]
        return [f'INSTRUCTION="{prompt_source}"']

    def build_run_script(self, spec: WorkflowSpec, log_file: str) -> str:
        codex_command = self.build_command(spec)

        if is_firewall_enabled(spec):
            setup = self._instruction_setup(spec, f"$(cat {PROMPT_FILE})")
            return build_awf_command(
                AWFCommandConfig(
                    engine_name=self.id,
                    engine_command=" && ".join([NPM_BIN_PATH_SETUP, *setup, codex_command]),
                    log_file=log_file,
                    spec=spec,
                    allowed_domains=format_allowed_domains(
                        CODEX_DEFAULT_DOMAINS, spec.network, spec.tools, spec.runtimes
                    ),
                    uses_api_proxy=self.spec.supports_llm_gateway,
                    path_setup=_MKDIR_LOGS,
                    append_log=False,
                )
            )

        setup = self._instruction_setup(spec, '$(cat "$GH_AW_PROMPT")')
        return "\n".join(
            [
                "set -o pipefail",
                *setup,
                _MKDIR_LOGS,
                f"{codex_command} 2>&1 | tee {shell_escape_arg(log_file)}",
            ]
        )

    def build_env(self, spec: WorkflowSpec) -> dict[str, str]:
        github_token = tool_queries.effective_github_token("", spec.github_token)
        api_key = "${{ secrets.CODEX_API_KEY || secrets.OPENAI_API_KEY }}"
        env = {
            "CODEX_API_KEY": api_key,
            "OPENAI_API_KEY": api_key,
            "GITHUB_STEP_SUMMARY": "${{ env.GITHUB_STEP_SUMMARY }}",
            "GH_AW_PROMPT": PROMPT_FILE,
            "GH_AW_MCP_CONFIG": CONFIG_TOML,
            "CODEX_HOME": MCP_CONFIG_DIR,
            "RUST_LOG": RUST_LOG,
            "GH_AW_GITHUB_TOKEN": github_token,
            "GITHUB_PERSONAL_ACCESS_TOKEN": github_token,
        }
        env.update(common.safe_output_env(spec))
        env.update(common.timeout_env(spec))
        env.update(common.model_env(spec, ENV_MODEL_AGENT_CODEX, ENV_MODEL_DETECTION_CODEX))
        common.apply_custom_env(env, spec)
        common.add_tool_secrets(env, spec, include_headers=False)
        return filter_env_for_secrets(env, self.required_secret_names(spec))

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        logger.debug(
            "Building Codex execution steps: workflow=%s, agent_file=%s, firewall=%s",
            spec.name,
            bool(spec.agent_file),
            is_firewall_enabled(spec),
        )
        steps = common.inject_custom_engine_steps(spec)
        steps.append(
            StepBuilder("Run Codex")
            .with_run(self.build_run_script(spec, log_file))
            .with_env(self.build_env(spec))
            .build()
        )
        return steps

    # ── MCP / Logs ────────────────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        servers = build_mcp_servers(tools, mcp_tools, MCPRenderOptions(github_token_ref="$GH_AW_GITHUB_TOKEN"))
        return render_toml_mcp_config(servers, tools, mcp_tools, spec, CONFIG_TOML)

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        return parse_codex_log(text, verbose)

    def log_parser_script_id(self) -> str:
        return "parse_codex_log"
