"""Sandbox Runtime (SRT) process isolation.

SRT is the alternative to the AWF network firewall: instead of running the
agent inside a filtering container, a small Node.js wrapper loads a policy
document and re-executes the agent command inside an OS-level sandbox.
The two are mutually exclusive; when both are configured SRT is used and
the firewall is ignored.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from agentic_engines.constants import DEFAULT_SANDBOX_RUNTIME_VERSION
from agentic_engines.sandbox.domains import get_blocked_domains
from agentic_engines.shell import shell_escape_arg, shell_join_args
from agentic_engines.steps import PipelineStep, StepBuilder

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

SRT_PACKAGE = "@anthropic-ai/sandbox-runtime"
SRT_SETTINGS_FILE = "/tmp/gh-aw/sandbox/srt-settings.json"
SRT_WRAPPER_FILE = "/tmp/gh-aw/sandbox/srt-wrapper.js"

_WRAPPER_SCRIPT = """\
const { SandboxManager } = require('@anthropic-ai/sandbox-runtime');
const { spawn } = require('child_process');
const fs = require('fs');

(async () => {
  const config = JSON.parse(fs.readFileSync('%(settings)s', 'utf8'));
  await SandboxManager.initialize(config);
  const wrapped = await SandboxManager.wrapWithSandbox(process.argv[2]);
  const child = spawn(wrapped, { shell: true, stdio: 'inherit', env: process.env });
  child.on('exit', async (code) => {
    await SandboxManager.reset();
    process.exit(code === null ? 1 : code);
  });
})();"""


def is_srt_enabled(spec: WorkflowSpec) -> bool:
    sandbox = spec.sandbox
    if sandbox is None or sandbox.agent_disabled:
        return False
    enabled = sandbox.uses_sandbox_runtime
    if enabled and spec.network is not None and spec.network.firewall is not None:
        if spec.network.firewall.enabled:
            logger.warning(
                "Workflow %s configures both the firewall and the sandbox runtime; using the sandbox runtime",
                spec.name,
            )
    return enabled


def build_srt_config(spec: WorkflowSpec, allowed_domains: list[str]) -> dict[str, Any]:
    """Policy document for the sandbox runtime.

    ``sandbox.agent.config`` entries override the generated sections
    key by key.
    """
    config: dict[str, Any] = {
        "network": {
            "allowedDomains": sorted(set(allowed_domains)),
            "deniedDomains": get_blocked_domains(spec.network),
            "allowLocalBinding": False,
        },
        "filesystem": {
            "denyRead": [],
            "allowWrite": [".", "/tmp", "/home/runner/.copilot"],
            "denyWrite": [],
        },
        "ignoreViolations": {},
        "enableWeakerNestedSandbox": True,
    }
    agent = spec.sandbox.agent if spec.sandbox is not None else None
    if agent is not None and agent.config:
        for key, value in agent.config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value
        logger.debug("Applied %d SRT config overrides", len(agent.config))
    return config


def build_srt_command(
    spec: WorkflowSpec,
    engine_command: str,
    allowed_domains: list[str],
    log_file: str,
    logs_folder: str,
) -> str:
    """``run:`` text executing *engine_command* under the sandbox runtime.

    A custom ``sandbox.agent.command`` replaces the generated wrapper and
    receives the escaped engine command after ``--``.
    """
    agent = spec.sandbox.agent if spec.sandbox is not None else None
    if agent is not None and agent.command:
        logger.debug("Using custom SRT command: %s", agent.command)
        head = agent.command
        if agent.args:
            head += " " + shell_join_args(agent.args)
        return "\n".join(
            [
                "set -o pipefail",
                f"{head} -- {shell_escape_arg(engine_command)} 2>&1 | tee {shell_escape_arg(log_file)}",
            ]
        )

    settings = json.dumps(build_srt_config(spec, allowed_domains), indent=2, sort_keys=True)
    return "\n".join(
        [
            "set -o pipefail",
            f"mkdir -p {logs_folder}",
            f"cat > {SRT_SETTINGS_FILE} << 'SRT_CONFIG_EOF'",
            settings,
            "SRT_CONFIG_EOF",
            f"cat > {SRT_WRAPPER_FILE} << 'SRT_WRAPPER_EOF'",
            _WRAPPER_SCRIPT % {"settings": SRT_SETTINGS_FILE},
            "SRT_WRAPPER_EOF",
            f"node {SRT_WRAPPER_FILE} {shell_escape_arg(engine_command)} 2>&1 | tee {shell_escape_arg(log_file)}",
        ]
    )


def generate_srt_installation_step(version: str = "") -> PipelineStep:
    version = version or DEFAULT_SANDBOX_RUNTIME_VERSION
    return (
        StepBuilder("Install Sandbox Runtime")
        .with_run(
            "sudo apt-get install -y --no-install-recommends bubblewrap socat ripgrep\n"
            f"npm install --silent {SRT_PACKAGE}@{version}"
        )
        .build()
    )
