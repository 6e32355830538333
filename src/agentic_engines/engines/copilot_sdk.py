"""GitHub Copilot SDK engine (experimental).

Runs the Copilot CLI as a headless server and drives it from a Node.js
client.  Installation is shared with :class:`CopilotEngine`; the firewall is
not supported since the client reaches the CLI over the Docker host.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    DEFAULT_COPILOT_DETECTION_MODEL,
    DOCKER_HOST_INTERNAL,
    GITHUB_MCP_SERVER_TOKEN,
    MCP_GATEWAY_API_KEY,
    PROMPT_FILE,
)
from agentic_engines.engines import common
from agentic_engines.engines.base import BaseEngine, EngineSpec
from agentic_engines.engines.copilot import CopilotEngine
from agentic_engines.engines.logs import LogMetrics
from agentic_engines.engines.mcp import rewrite_loopback_hosts
from agentic_engines.steps import PipelineStep, StepBuilder

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

SDK_DIR = "/tmp/gh-aw/copilot-sdk/"
EVENT_LOG_FILE = f"{SDK_DIR}event-log.jsonl"
CLIENT_SCRIPT = "/opt/gh-aw/copilot/copilot-client.js"
CONFIG_ENV_VAR = "GH_AW_COPILOT_CONFIG"


class CopilotSDKEngine(BaseEngine):
    SPEC = EngineSpec(
        id="copilot-sdk",
        display_name="GitHub Copilot SDK",
        description="Uses GitHub Copilot SDK with headless mode",
        experimental=True,
        supports_tools_allowlist=True,
        supports_http_transport=True,
        supports_web_fetch=True,
        llm_gateway_port=10002,
    )

    def __init__(self, spec: EngineSpec | None = None) -> None:
        super().__init__(spec)
        self._copilot = CopilotEngine()

    def declared_output_files(self) -> list[str]:
        return [EVENT_LOG_FILE]

    def default_detection_model(self) -> str:
        return DEFAULT_COPILOT_DETECTION_MODEL

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        names = ["COPILOT_GITHUB_TOKEN"]
        if tool_queries.has_mcp_servers(spec):
            names.append(MCP_GATEWAY_API_KEY)
        if tool_queries.has_github_tool(spec.tools):
            names.append(GITHUB_MCP_SERVER_TOKEN)
        names.extend(tool_queries.collect_http_mcp_header_secrets(spec.tools))
        return names

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        logger.debug("Generating installation steps for Copilot SDK: workflow=%s", spec.name)
        return self._copilot.installation_steps(spec)

    # ── Execution ─────────────────────────────────────────────────────────

    @property
    def cli_url(self) -> str:
        return f"http://{DOCKER_HOST_INTERNAL}:{self.llm_gateway_port}"

    def client_config(self, spec: WorkflowSpec) -> dict[str, Any]:
        """Settings handed to the client through ``$GH_AW_COPILOT_CONFIG``."""
        config: dict[str, Any] = {
            "cliUrl": self.cli_url,
            "promptFile": PROMPT_FILE,
            "eventLogFile": EVENT_LOG_FILE,
            "githubToken": spec.github_token or "${{ secrets.COPILOT_GITHUB_TOKEN }}",
            "logLevel": "info",
        }
        if spec.model_configured:
            config["session"] = {"model": spec.engine.model}  # type: ignore[union-attr]
        return config

    def _headless_step(self) -> PipelineStep:
        port = self.llm_gateway_port
        script = "\n".join(
            [
                f"# Start Copilot CLI in headless mode on port {port}",
                f"copilot --headless --port {port} &",
                "COPILOT_PID=$!",
                'echo "COPILOT_PID=${COPILOT_PID}" >> $GITHUB_ENV',
                "",
                "# Wait for Copilot to be ready",
                "sleep 5",
                "",
                "if ! kill -0 ${COPILOT_PID} 2>/dev/null; then",
                '  echo "::error::Copilot CLI failed to start"',
                "  exit 1",
                "fi",
                "",
                f'echo "Copilot CLI started in headless mode on port {port}"',
            ]
        )
        return StepBuilder("Start Copilot CLI in headless mode").with_run(script).build()

    def _configuration_step(self, spec: WorkflowSpec) -> PipelineStep:
        payload = json.dumps(self.client_config(spec), sort_keys=True, separators=(",", ":"))
        # The payload sits inside single quotes.
        payload = payload.replace("'", "'\\''")
        script = "\n".join(
            [
                f"mkdir -p {SDK_DIR}",
                "",
                f"echo '{CONFIG_ENV_VAR}={payload}' >> $GITHUB_ENV",
            ]
        )
        return StepBuilder("Configure Copilot SDK client").with_run(script).build()

    def _client_step(self) -> PipelineStep:
        script = "\n".join(
            [
                f"# Configuration is read from {CONFIG_ENV_VAR}",
                f"node {CLIENT_SCRIPT}",
                "",
                "if [ $? -ne 0 ]; then",
                '  echo "::error::Copilot SDK client execution failed"',
                "  exit 1",
                "fi",
                "",
                'echo "Copilot SDK client execution completed"',
            ]
        )
        return (
            StepBuilder("Execute Copilot SDK client", step_id=common.AGENT_EXECUTION_STEP_ID)
            .with_run(script)
            .with_env({CONFIG_ENV_VAR: f"${{{{ env.{CONFIG_ENV_VAR} }}}}"})
            .build()
        )

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        logger.debug("Generating execution steps for Copilot SDK: workflow=%s", spec.name)
        return [self._headless_step(), self._configuration_step(spec), self._client_step()]

    # ── MCP / Logs ────────────────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        # The client runs in a container, so loopback servers go through the Docker host.
        return rewrite_loopback_hosts(self._copilot.render_mcp_config(tools, mcp_tools, spec))

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        # The event log carries no usage data yet.
        return LogMetrics()

    def log_parser_script_id(self) -> str:
        return "parse-copilot-log"

    def log_file_for_parsing(self) -> str:
        return EVENT_LOG_FILE
