"""Helpers shared by the engine implementations.

Everything here reads the :class:`~agentic_engines.config.WorkflowSpec` and
returns new values; nothing writes back into the WorkflowSpec.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agentic_engines import tools
from agentic_engines.constants import (
    DEFAULT_AGENTIC_WORKFLOW_TIMEOUT_MINUTES,
    PROMPT_FILE,
)
from agentic_engines.sandbox.firewall import (
    agent_config,
    firewall_config,
    generate_awf_installation_step,
    is_firewall_enabled,
)
from agentic_engines.steps import (
    PipelineStep,
    convert_step_to_lines,
    generate_multi_secret_validation_step,
    generate_npm_install_steps,
)

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

AGENT_EXECUTION_STEP_ID = "agentic_execution"

# Prints the markdown body of an agent file, dropping its YAML frontmatter.
_STRIP_FRONTMATTER_AWK = (
    "awk 'BEGIN{skip=1} /^---$/{if(skip){skip=0;next}else{skip=1;next}} !skip'"
)


# ── Agent Files ───────────────────────────────────────────────────────────────


def resolve_agent_file_path(agent_file: str) -> str:
    """Workspace-relative agent file as a quoted shell word."""
    return f'"${{GITHUB_WORKSPACE}}/{agent_file}"'


def extract_agent_identifier(agent_file: str) -> str:
    """``.github/agents/reviewer.agent.md`` → ``reviewer``."""
    name = agent_file.rsplit("/", 1)[-1]
    for suffix in (".agent.md", ".md", ".agent"):
        name = name.removesuffix(suffix)
    return name


def agent_content_command(agent_file: str) -> str:
    return f'AGENT_CONTENT="$({_STRIP_FRONTMATTER_AWK} {resolve_agent_file_path(agent_file)})"'


def combined_prompt_command(var: str, prompt_source: str = f"$(cat {PROMPT_FILE})") -> str:
    """Assign ``$AGENT_CONTENT``, a blank line and the prompt to *var*."""
    return f"{var}=\"$(printf '%s\\n\\n%s' \"$AGENT_CONTENT\" \"{prompt_source}\")\""


# ── Environment ───────────────────────────────────────────────────────────────


def safe_output_env(spec: WorkflowSpec) -> dict[str, str]:
    """Variables the safe-outputs tooling reads inside the agent step."""
    if spec.safe_outputs is None:
        return {}
    env = {"GH_AW_SAFE_OUTPUTS": "${{ env.GH_AW_SAFE_OUTPUTS }}"}
    if spec.trial_mode or spec.safe_outputs.staged:
        env["GH_AW_SAFE_OUTPUTS_STAGED"] = '"true"'
    if spec.trial_mode and spec.trial_logical_repo:
        env["GH_AW_TARGET_REPO_SLUG"] = spec.trial_logical_repo
    assets = spec.safe_outputs.upload_assets
    if assets is not None:
        env["GH_AW_ASSETS_BRANCH"] = f'"{assets.branch_name}"'
        env["GH_AW_ASSETS_MAX_SIZE_KB"] = str(assets.max_size_kb)
        env["GH_AW_ASSETS_ALLOWED_EXTS"] = f'"{",".join(assets.allowed_exts)}"'
    return env


def timeout_env(spec: WorkflowSpec) -> dict[str, str]:
    env: dict[str, str] = {}
    if spec.tools_startup_timeout > 0:
        env["GH_AW_STARTUP_TIMEOUT"] = str(spec.tools_startup_timeout)
    if spec.tools_timeout > 0:
        env["GH_AW_TOOL_TIMEOUT"] = str(spec.tools_timeout)
    return env


def max_turns_env(spec: WorkflowSpec) -> dict[str, str]:
    if spec.engine is not None and spec.engine.max_turns:
        return {"GH_AW_MAX_TURNS": spec.engine.max_turns}
    return {}


def model_env_var(spec: WorkflowSpec, agent_var: str, detection_var: str) -> str:
    """The repository variable consulted for the model of this job."""
    return detection_var if spec.is_detection_job else agent_var


def model_env(spec: WorkflowSpec, agent_var: str, detection_var: str) -> dict[str, str]:
    """Model selection variable, only when no model is configured explicitly."""
    if spec.model_configured:
        return {}
    var = model_env_var(spec, agent_var, detection_var)
    return {var: f"${{{{ vars.{var} || '' }}}}"}


def model_flag_fallback(var: str) -> str:
    """Shell suffix adding ``--model "$VAR"`` only when *var* is non-empty."""
    return f'${{{var}:+ --model "${var}"}}'


def apply_custom_env(env: dict[str, str], spec: WorkflowSpec) -> None:
    """Overlay ``engine.env`` then ``sandbox.agent.env``; last write wins."""
    if spec.engine is not None and spec.engine.env:
        env.update(spec.engine.env)
    agent = agent_config(spec)
    if agent is not None and agent.env:
        env.update(agent.env)
        logger.debug("Added %d custom env vars from agent config", len(agent.env))


def add_tool_secrets(env: dict[str, str], spec: WorkflowSpec, *, include_headers: bool = True) -> None:
    """Expose HTTP MCP header secrets and safe-input secrets not already set."""
    found: dict[str, str] = {}
    if include_headers:
        found.update(tools.collect_http_mcp_header_secrets(spec.tools))
    if tools.is_safe_inputs_enabled(spec.safe_inputs):
        found.update(tools.collect_safe_inputs_secrets(spec.safe_inputs))
    for name, expr in found.items():
        env.setdefault(name, expr)


def required_tool_secrets(spec: WorkflowSpec, *, include_headers: bool = True) -> list[str]:
    """Secret names every MCP-capable engine adds to its own credentials."""
    names: list[str] = []
    if include_headers:
        names.extend(tools.collect_http_mcp_header_secrets(spec.tools))
    if tools.is_safe_inputs_enabled(spec.safe_inputs):
        names.extend(tools.collect_safe_inputs_secrets(spec.safe_inputs))
    return names


# ── Step Fields ───────────────────────────────────────────────────────────────


def timeout_minutes(spec: WorkflowSpec) -> int:
    if spec.timeout_minutes:
        return spec.timeout_minutes
    return DEFAULT_AGENTIC_WORKFLOW_TIMEOUT_MINUTES


def engine_version(spec: WorkflowSpec, default: str) -> str:
    if spec.engine is not None and spec.engine.version:
        return spec.engine.version
    return default


def custom_command(spec: WorkflowSpec) -> str:
    return spec.engine.command if spec.engine is not None else ""


def custom_args(spec: WorkflowSpec) -> list[str]:
    return list(spec.engine.args) if spec.engine is not None else []


def inject_custom_engine_steps(spec: WorkflowSpec) -> list[PipelineStep]:
    """``engine.steps`` rendered as-is, to run before the agent step."""
    if spec.engine is None or not spec.engine.steps:
        return []
    logger.debug("Injecting %d custom engine steps", len(spec.engine.steps))
    return [convert_step_to_lines(step) for step in spec.engine.steps]


# ── Installation ──────────────────────────────────────────────────────────────


def awf_installation_steps(spec: WorkflowSpec) -> list[PipelineStep]:
    """The firewall runner install step, when the firewall is on and not replaced."""
    if not is_firewall_enabled(spec):
        return []
    fw = firewall_config(spec)
    step = generate_awf_installation_step(fw.version if fw is not None else "", agent_config(spec))
    return [step] if step else []


def npm_engine_installation_steps(
    spec: WorkflowSpec,
    *,
    secrets: list[str],
    engine_name: str,
    docs_url: str,
    package: str,
    default_version: str,
    step_name: str,
    cli_name: str,
) -> list[PipelineStep]:
    """Secret validation, Node.js setup, firewall runner, CLI install.

    The firewall runner goes between the Node.js setup and the CLI install
    so the CLI install can be replaced without touching the sandbox.
    A custom ``engine.command`` means the CLI is provided by the workflow
    and nothing is installed.
    """
    if custom_command(spec):
        logger.debug("Skipping installation steps: custom command %s", custom_command(spec))
        return []

    steps: list[PipelineStep] = []
    validation = generate_multi_secret_validation_step(secrets, engine_name, docs_url)
    if validation:
        steps.append(validation)

    npm_steps = generate_npm_install_steps(
        package,
        engine_version(spec, default_version),
        step_name,
        cli_name,
    )
    steps.append(npm_steps[0])
    steps.extend(awf_installation_steps(spec))
    steps.extend(npm_steps[1:])
    return steps
