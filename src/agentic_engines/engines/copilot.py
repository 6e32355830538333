"""GitHub Copilot CLI engine.

Copilot is the default engine.  It differs from the npm-installed engines in
three ways:

- the CLI is installed by a runner script rather than ``npm install -g``
- permissions are granted per tool with ``--allow-tool`` instead of a single
  allow-list flag
- under the firewall it runs in chroot mode, so the command is passed to the
  runner directly instead of through ``bash -c``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    ACTIONS_DIR,
    COPILOT_LOGS_FOLDER,
    DEFAULT_COPILOT_DETECTION_MODEL,
    DEFAULT_COPILOT_VERSION,
    ENV_MODEL_AGENT_COPILOT,
    ENV_MODEL_DETECTION_COPILOT,
    GITHUB_MCP_SERVER_TOKEN,
    MCP_GATEWAY_API_KEY,
    PROMPT_FILE,
)
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.logs import LogMetrics, parse_copilot_log
from agentic_engines.engines.mcp import MCPRenderOptions, build_mcp_servers, render_json_mcp_config
from agentic_engines.sandbox.domains import COPILOT_DEFAULT_DOMAINS, format_allowed_domains, merge_allowed_domains
from agentic_engines.sandbox.firewall import AWFCommandConfig, build_awf_command, is_firewall_enabled
from agentic_engines.sandbox.secrets import filter_env_for_secrets
from agentic_engines.sandbox.srt import build_srt_command, generate_srt_installation_step, is_srt_enabled
from agentic_engines.shell import shell_escape_arg, shell_join_args
from agentic_engines.steps import (
    PipelineStep,
    StepBuilder,
    generate_multi_secret_validation_step,
    generate_npm_install_steps,
)

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

COPILOT_HOME = "/home/runner/.copilot/"
MCP_CONFIG_FILE = f"{COPILOT_HOME}mcp-config.json"
COPILOT_BINARY = "/usr/local/bin/copilot"
SRT_COPILOT_BINARY = "node ./node_modules/.bin/copilot"
COPILOT_PACKAGE = "@github/copilot"

_SECRET_NAME = "COPILOT_GITHUB_TOKEN"


# ── Tool Permissions ──────────────────────────────────────────────────────────


def _mcp_permissions(server: str, allowed: Any) -> list[str]:
    """``server`` grants every tool; ``server(tool)`` grants one."""
    if not isinstance(allowed, list):
        return [server]
    perms: list[str] = []
    if "*" in allowed:
        perms.append(server)
    perms += [f"{server}({tool})" for tool in allowed if tool != "*"]
    return perms


def compute_tool_arguments(spec: WorkflowSpec) -> list[str]:
    """``--allow-tool`` pairs, sorted and de-duplicated.

    Unrestricted bash (``:*`` or ``*``) collapses everything into
    ``--allow-all-tools``.
    """
    tools = spec.tools
    if tool_queries.is_tool_enabled(tools, "bash"):
        commands = tools["bash"]
        if isinstance(commands, list) and any(c in (":*", "*") for c in commands):
            logger.debug("Unrestricted bash configured; allowing all tools")
            return ["--allow-all-tools"]

    perms: set[str] = set()
    if tool_queries.is_tool_enabled(tools, "bash"):
        commands = tools["bash"]
        if isinstance(commands, list):
            perms.update(f"shell({c})" for c in commands)
        else:
            perms.add("shell")
    if tool_queries.is_tool_enabled(tools, "edit"):
        perms.add("write")
    if spec.safe_outputs is not None:
        perms.add("safeoutputs")
    if tool_queries.is_safe_inputs_enabled(spec.safe_inputs):
        perms.add("safeinputs")
    if tool_queries.has_github_tool(tools):
        perms.update(_mcp_permissions("github", tool_queries.github_allowed_tools(tools)))
    if tool_queries.is_tool_enabled(tools, "playwright"):
        perms.add("playwright")
    for name, cfg in tool_queries.custom_mcp_tools(tools).items():
        perms.update(_mcp_permissions(name, cfg.get("allowed")))

    args: list[str] = []
    for perm in sorted(perms):
        args += ["--allow-tool", perm]
    return args


def tool_arguments_comment(args: list[str]) -> list[str]:
    if not args:
        return []
    lines = ["Copilot CLI tool arguments (sorted):"]
    i = 0
    while i < len(args):
        if args[i] == "--allow-tool" and i + 1 < len(args):
            lines.append(f"--allow-tool {args[i + 1]}")
            i += 2
        else:
            lines.append(args[i])
            i += 1
    return lines


def _add_dir_paths(args: list[str]) -> list[str]:
    return [args[i + 1] for i, arg in enumerate(args[:-1]) if arg == "--add-dir"]


class CopilotEngine(BaseEngine):
    SPEC = EngineSpec(
        id="copilot",
        display_name="GitHub Copilot CLI",
        description="GitHub Copilot CLI with agent support",
        supports_tools_allowlist=True,
        supports_http_transport=True,
        supports_web_fetch=True,
        supports_firewall=True,
        supports_plugins=True,
    )

    DOCS_URL = "https://github.github.com/gh-aw/reference/engines/#github-copilot-default"

    def declared_output_files(self) -> list[str]:
        return [COPILOT_LOGS_FOLDER]

    def default_detection_model(self) -> str:
        return DEFAULT_COPILOT_DETECTION_MODEL

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        names = [_SECRET_NAME]
        if tool_queries.has_mcp_servers(spec):
            names.append(MCP_GATEWAY_API_KEY)
        if tool_queries.has_github_tool(spec.tools):
            names.append(GITHUB_MCP_SERVER_TOKEN)
        names.extend(common.required_tool_secrets(spec))
        return names

    # ── Installation ──────────────────────────────────────────────────────

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        """Validation, sandbox runner, CLI, then plugins.

        Under the sandbox runtime the CLI is installed into the local
        ``node_modules`` next to the runtime, since the wrapper launches it
        with ``node``.
        """
        if common.custom_command(spec):
            logger.debug("Skipping installation steps: custom command %s", common.custom_command(spec))
            return []

        version = common.engine_version(spec, DEFAULT_COPILOT_VERSION)
        steps: list[PipelineStep] = []
        validation = generate_multi_secret_validation_step([_SECRET_NAME], self.display_name, self.DOCS_URL)
        if validation:
            steps.append(validation)

        if is_srt_enabled(spec):
            logger.debug("Installing Copilot for the sandbox runtime: version=%s", version)
            steps.append(generate_npm_install_steps(COPILOT_PACKAGE, version, "", "copilot")[0])
            steps.append(generate_srt_installation_step())
            steps.append(
                StepBuilder("Install GitHub Copilot CLI")
                .with_run(f"npm install --silent {COPILOT_PACKAGE}@{version}\n{SRT_COPILOT_BINARY} --version")
                .build()
            )
        else:
            steps.append(
                StepBuilder("Install GitHub Copilot CLI")
                .with_run(f"bash {ACTIONS_DIR}/install_copilot_cli.sh {version}", inline=True)
                .build()
            )
            steps.extend(common.awf_installation_steps(spec))

        if spec.plugins:
            steps.append(self._plugin_installation_step(spec))
        return steps

    def _plugin_installation_step(self, spec: WorkflowSpec) -> PipelineStep:
        logger.debug("Installing %d Copilot plugins", len(spec.plugins))
        run = "\n".join(f"copilot plugin install {shell_join_args([p])}" for p in spec.plugins)
        token = spec.github_token or f"${{{{ secrets.{_SECRET_NAME} }}}}"
        return (
            StepBuilder("Install Copilot plugins")
            .with_run(run)
            .with_env({"GITHUB_TOKEN": token, "XDG_CONFIG_HOME": "/home/runner"})
            .build()
        )

    # ── Execution ─────────────────────────────────────────────────────────

    def _sandboxed(self, spec: WorkflowSpec) -> bool:
        return is_firewall_enabled(spec) or is_srt_enabled(spec)

    def build_args(self, spec: WorkflowSpec) -> list[str]:
        if self._sandboxed(spec):
            args = [
                "--add-dir", "/tmp/gh-aw/",
                "--log-level", "all",
                "--log-dir", COPILOT_LOGS_FOLDER,
                "--add-dir", '"${GITHUB_WORKSPACE}"',
            ]  # fmt: skip
            if spec.plugins:
                args += ["--add-dir", COPILOT_HOME]
        else:
            args = [
                "--add-dir", "/tmp/",
                "--add-dir", "/tmp/gh-aw/",
                "--add-dir", "/tmp/gh-aw/agent/",
                "--log-level", "all",
                "--log-dir", COPILOT_LOGS_FOLDER,
            ]  # fmt: skip

        args.append("--disable-builtin-mcps")
        if spec.model_configured:
            args += ["--model", spec.engine.model]  # type: ignore[union-attr]
        agent = spec.engine.agent if spec.engine is not None else ""
        if not agent and spec.agent_file:
            agent = common.extract_agent_identifier(spec.agent_file)
        if agent:
            args += ["--agent", agent]

        args += compute_tool_arguments(spec)
        if tool_queries.is_tool_enabled(spec.tools, "edit"):
            args.append("--allow-all-paths")
        args += common.custom_args(spec)
        args += ["--share", f"{COPILOT_LOGS_FOLDER}conversation.md"]

        if self._sandboxed(spec):
            args += ["--prompt", f'"$(cat {PROMPT_FILE})"']
        else:
            args += ["--prompt", '"$COPILOT_CLI_INSTRUCTION"']
        return args

    def command_name(self, spec: WorkflowSpec) -> str:
        custom = common.custom_command(spec)
        if custom:
            return custom
        if is_srt_enabled(spec):
            return SRT_COPILOT_BINARY
        if is_firewall_enabled(spec):
            return COPILOT_BINARY
        return "copilot"

    def build_command(self, spec: WorkflowSpec) -> str:
        command = f"{self.command_name(spec)} {shell_join_args(self.build_args(spec))}"
        if not spec.model_configured:
            var = common.model_env_var(spec, ENV_MODEL_AGENT_COPILOT, ENV_MODEL_DETECTION_COPILOT)
            command += common.model_flag_fallback(var)
        return command

    def build_run_script(self, spec: WorkflowSpec, log_file: str) -> str:
        copilot_command = self.build_command(spec)

        if is_srt_enabled(spec):
            domains = merge_allowed_domains(COPILOT_DEFAULT_DOMAINS, spec.network, spec.tools, spec.runtimes)
            return build_srt_command(spec, copilot_command, domains, log_file, COPILOT_LOGS_FOLDER)

        if is_firewall_enabled(spec):
            return build_awf_command(
                AWFCommandConfig(
                    engine_name=self.id,
                    engine_command=copilot_command,
                    log_file=log_file,
                    spec=spec,
                    allowed_domains=format_allowed_domains(
                        COPILOT_DEFAULT_DOMAINS, spec.network, spec.tools, spec.runtimes
                    ),
                    enable_chroot=True,
                    uses_api_proxy=self.spec.supports_llm_gateway,
                    wrap_in_shell=False,
                    append_log=False,
                )
            )

        lines = ["set -o pipefail", f'COPILOT_CLI_INSTRUCTION="$(cat {PROMPT_FILE})"']
        dirs = dict.fromkeys([*_add_dir_paths(self.build_args(spec)), COPILOT_LOGS_FOLDER])
        lines += [f"mkdir -p {d}" for d in dirs]
        lines.append(f"{copilot_command} 2>&1 | tee {shell_escape_arg(log_file)}")
        return "\n".join(lines)

    def build_env(self, spec: WorkflowSpec) -> dict[str, str]:
        env = {
            "XDG_CONFIG_HOME": "/home/runner",
            "COPILOT_AGENT_RUNNER_TYPE": "STANDALONE",
            _SECRET_NAME: spec.github_token or f"${{{{ secrets.{_SECRET_NAME} }}}}",
            "GITHUB_STEP_SUMMARY": "${{ env.GITHUB_STEP_SUMMARY }}",
            "GITHUB_HEAD_REF": "${{ github.head_ref }}",
            "GITHUB_REF_NAME": "${{ github.ref_name }}",
            "GITHUB_WORKSPACE": "${{ github.workspace }}",
            "GH_AW_PROMPT": PROMPT_FILE,
        }
        if tool_queries.has_mcp_servers(spec):
            env["GH_AW_MCP_CONFIG"] = MCP_CONFIG_FILE
        if tool_queries.has_github_tool(spec.tools):
            env[GITHUB_MCP_SERVER_TOKEN] = tool_queries.effective_github_token(
                tool_queries.github_tool_token(spec.tools), spec.github_token
            )
        env.update(common.safe_output_env(spec))
        env.update(common.timeout_env(spec))
        env.update(common.max_turns_env(spec))
        env.update(common.model_env(spec, ENV_MODEL_AGENT_COPILOT, ENV_MODEL_DETECTION_COPILOT))
        common.apply_custom_env(env, spec)
        common.add_tool_secrets(env, spec)
        return filter_env_for_secrets(env, self.required_secret_names(spec))

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        logger.debug(
            "Building Copilot execution steps: workflow=%s, firewall=%s, srt=%s",
            spec.name,
            is_firewall_enabled(spec),
            is_srt_enabled(spec),
        )
        steps = common.inject_custom_engine_steps(spec)

        builder = StepBuilder("Execute GitHub Copilot CLI", step_id=common.AGENT_EXECUTION_STEP_ID)
        comment = tool_arguments_comment(compute_tool_arguments(spec))
        if comment:
            builder.with_comments(comment)
        builder.with_field("timeout-minutes", common.timeout_minutes(spec))
        builder.with_run(self.build_run_script(spec, log_file))
        builder.with_env(self.build_env(spec))
        steps.append(builder.build())
        return steps

    # ── MCP / Logs ────────────────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        servers = build_mcp_servers(tools, mcp_tools, MCPRenderOptions(copilot_fields=True))
        return render_json_mcp_config(servers, MCP_CONFIG_FILE)

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        return parse_copilot_log(text, verbose)

    def log_parser_script_id(self) -> str:
        return "parse_copilot_log"

    def log_file_for_parsing(self) -> str:
        return COPILOT_LOGS_FOLDER
