"""Custom engine: runs the workflow's own ``engine.steps``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import MCP_CONFIG_DIR, MCP_GATEWAY_API_KEY, PROMPT_FILE
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.logs import LogMetrics, parse_claude_log, parse_codex_log
from agentic_engines.engines.mcp import build_mcp_servers, render_json_mcp_config
from agentic_engines.steps import PipelineStep, StepBuilder, convert_step_to_lines

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

MCP_CONFIG_FILE = f"{MCP_CONFIG_DIR}/mcp-servers.json"


class CustomEngine(BaseEngine):
    SPEC = EngineSpec(
        id="custom",
        display_name="Custom Steps",
        description="Executes user-defined GitHub Actions steps",
        supports_max_turns=True,
    )

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        if tool_queries.has_mcp_servers(spec):
            return [MCP_GATEWAY_API_KEY]
        return []

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        return []

    def injected_env(self, spec: WorkflowSpec) -> dict[str, str]:
        """Variables merged into every user step; they override the step's own."""
        env = {"GH_AW_PROMPT": PROMPT_FILE, "GH_AW_MCP_CONFIG": MCP_CONFIG_FILE}
        env.update(common.safe_output_env(spec))
        env.update(common.max_turns_env(spec))
        if spec.engine is not None:
            if spec.engine.args:
                env["GH_AW_ARGS"] = " ".join(spec.engine.args)
            env.update(spec.engine.env)
        return env

    def _user_step(self, step: dict[str, Any], env: dict[str, str]) -> PipelineStep:
        merged = dict(step)
        existing = merged.get("env")
        step_env = dict(existing) if isinstance(existing, dict) else {}
        step_env.update(env)
        merged["env"] = step_env
        return convert_step_to_lines(merged)

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        user_steps = spec.engine.steps if spec.engine is not None else []
        logger.debug("Building custom engine steps: workflow=%s, steps=%d", spec.name, len(user_steps))

        env = self.injected_env(spec)
        steps = [self._user_step(step, env) for step in user_steps]
        steps.append(
            StepBuilder("Ensure log file exists")
            .with_run(f'echo "Custom steps execution completed" >> {log_file}\ntouch {log_file}')
            .build()
        )
        return steps

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        return render_json_mcp_config(build_mcp_servers(tools, mcp_tools), MCP_CONFIG_FILE)

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        """Custom steps usually wrap another agent; try its log formats in turn."""
        metrics = parse_claude_log(text, verbose)
        if metrics.turns > 0 or metrics.token_usage > 0 or metrics.estimated_cost > 0:
            logger.debug("Custom engine log parsed as Claude output")
            return metrics
        metrics = parse_codex_log(text, verbose)
        if metrics.turns > 0 or metrics.token_usage > 0:
            logger.debug("Custom engine log parsed as Codex output")
            return metrics
        return LogMetrics()

    def log_parser_script_id(self) -> str:
        return "parse_custom_log"
