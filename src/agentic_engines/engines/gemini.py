"""Google Gemini CLI engine (experimental)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    DEFAULT_GEMINI_VERSION,
    ENV_MODEL_AGENT_GEMINI,
    ENV_MODEL_DETECTION_GEMINI,
    GITHUB_MCP_SERVER_TOKEN,
    MCP_GATEWAY_API_KEY,
    PROMPT_FILE,
)
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.logs import LogMetrics, parse_gemini_log
from agentic_engines.engines.mcp import build_mcp_servers, render_json_mcp_config
from agentic_engines.sandbox.domains import GEMINI_DEFAULT_DOMAINS, format_allowed_domains
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

SETTINGS_FILE = "${GITHUB_WORKSPACE}/.gemini/settings.json"


class GeminiEngine(BaseEngine):
    SPEC = EngineSpec(
        id="gemini",
        display_name="Google Gemini CLI",
        description="Google Gemini CLI with headless mode and LLM gateway support",
        experimental=True,
        supports_tools_allowlist=True,
        supports_firewall=True,
        llm_gateway_port=10003,
    )

    DOCS_URL = "https://geminicli.com/docs/get-started/authentication/"

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        names = ["GEMINI_API_KEY"]
        if tool_queries.has_mcp_servers(spec):
            names.append(MCP_GATEWAY_API_KEY)
        if tool_queries.has_github_tool(spec.tools):
            names.append(GITHUB_MCP_SERVER_TOKEN)
        names.extend(common.required_tool_secrets(spec))
        return names

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        logger.debug("Generating installation steps for Gemini engine: workflow=%s", spec.name)
        return common.npm_engine_installation_steps(
            spec,
            secrets=["GEMINI_API_KEY"],
            engine_name="Gemini CLI",
            docs_url=self.DOCS_URL,
            package="@google/gemini-cli",
            default_version=DEFAULT_GEMINI_VERSION,
            step_name="Install Gemini CLI",
            cli_name="gemini",
        )

    # ── Execution ─────────────────────────────────────────────────────────

    def build_args(self, spec: WorkflowSpec) -> list[str]:
        args: list[str] = []
        if spec.model_configured:
            args += ["--model", spec.engine.model]  # type: ignore[union-attr]
        args += ["--yolo", "--output-format", "json"]
        args += common.custom_args(spec)
        args += ["--prompt", f'"$(cat {PROMPT_FILE})"']
        return args

    def build_command(self, spec: WorkflowSpec) -> str:
        command = f"{common.custom_command(spec) or 'gemini'} {shell_join_args(self.build_args(spec))}"
        if not spec.model_configured:
            var = common.model_env_var(spec, ENV_MODEL_AGENT_GEMINI, ENV_MODEL_DETECTION_GEMINI)
            command += common.model_flag_fallback(var)
        return command

    def build_run_script(self, spec: WorkflowSpec, log_file: str) -> str:
        gemini_command = self.build_command(spec)
        if is_firewall_enabled(spec):
            return build_awf_command(
                AWFCommandConfig(
                    engine_name=self.id,
                    engine_command=f"{NPM_BIN_PATH_SETUP} && {gemini_command}",
                    log_file=log_file,
                    spec=spec,
                    allowed_domains=format_allowed_domains(
                        GEMINI_DEFAULT_DOMAINS, spec.network, spec.tools, spec.runtimes
                    ),
                    uses_api_proxy=self.spec.supports_llm_gateway,
                )
            )
        return f"set -o pipefail\n{gemini_command} 2>&1 | tee {shell_escape_arg(log_file)}"

    def build_env(self, spec: WorkflowSpec) -> dict[str, str]:
        env = {
            "GEMINI_API_KEY": "${{ secrets.GEMINI_API_KEY }}",
            "GH_AW_PROMPT": PROMPT_FILE,
            "GITHUB_WORKSPACE": "${{ github.workspace }}",
        }
        if tool_queries.has_mcp_servers(spec):
            env["GH_AW_MCP_CONFIG"] = "${{ github.workspace }}/.gemini/settings.json"
        if tool_queries.has_github_tool(spec.tools):
            env[GITHUB_MCP_SERVER_TOKEN] = tool_queries.effective_github_token(
                tool_queries.github_tool_token(spec.tools), spec.github_token
            )
        env.update(common.safe_output_env(spec))
        env.update(common.timeout_env(spec))
        env.update(common.model_env(spec, ENV_MODEL_AGENT_GEMINI, ENV_MODEL_DETECTION_GEMINI))
        common.apply_custom_env(env, spec)
        common.add_tool_secrets(env, spec)
        return filter_env_for_secrets(env, self.required_secret_names(spec))

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        logger.debug("Building Gemini execution steps: workflow=%s, firewall=%s", spec.name, is_firewall_enabled(spec))
        steps = common.inject_custom_engine_steps(spec)
        steps.append(
            StepBuilder("Run Gemini", step_id=common.AGENT_EXECUTION_STEP_ID)
            .with_run(self.build_run_script(spec, log_file))
            .with_env(self.build_env(spec))
            .build()
        )
        return steps

    # ── MCP / Logs ────────────────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        return render_json_mcp_config(build_mcp_servers(tools, mcp_tools), SETTINGS_FILE)

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        return parse_gemini_log(text, verbose)

    def log_parser_script_id(self) -> str:
        return "parse_gemini_log"
