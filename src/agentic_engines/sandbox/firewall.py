"""Network firewall sandbox (AWF) policy and command wrapping.

Two halves:

1. :func:`decide_firewall_auto_enable` is a pure decision over the declared
   network permissions.  The compiler applies the result once through
   :func:`apply_firewall_decision`, after which engines only ask
   :func:`is_firewall_enabled`.
2. :func:`build_awf_args` / :func:`build_awf_command` turn an engine's native
   command into a firewall-wrapped invocation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from agentic_engines import tools
from agentic_engines.constants import (
    ACTIONS_DIR,
    AWF_DEFAULT_COMMAND,
    AWF_DEFAULT_LOG_LEVEL,
    AWF_PROXY_LOGS_DIR,
    DEFAULT_FIREWALL_VERSION,
)
from agentic_engines.sandbox.config import (
    AgentSandboxConfig,
    FirewallConfig,
    NetworkPermissions,
    SandboxConfig,
)
from agentic_engines.sandbox.domains import format_blocked_domains
from agentic_engines.shell import shell_escape_arg, shell_join_args, wrap_command_in_shell
from agentic_engines.steps import EMPTY_STEP, PipelineStep, StepBuilder

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec
    from agentic_engines.engines.base import EngineSpec

logger = logging.getLogger(__name__)

# Puts hosted-toolcache binaries (node, npm-installed CLIs, go) on PATH inside
# the sandbox container, where the runner's PATH is not inherited.
NPM_BIN_PATH_SETUP = (
    'export PATH="$(find /opt/hostedtoolcache -maxdepth 4 -type d -name bin 2>/dev/null '
    "| tr '\\n' ':')$PATH\"; "
    '[ -n "$GOROOT" ] && export PATH="$GOROOT/bin:$PATH" || true'
)


# ── Auto-enable Decision ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class FirewallDecision:
    enable: bool
    reason: str


def decide_firewall_auto_enable(
    engine: EngineSpec,
    network: NetworkPermissions | None,
    sandbox: SandboxConfig | None,
) -> FirewallDecision:
    """Decide whether the firewall should be switched on for *engine*.

    Never mutates its inputs.  Checks run in order and the first that
    applies determines the reason.
    """
    if not engine.supports_firewall:
        return FirewallDecision(False, f"engine {engine.id} does not support the firewall")
    if network is None:
        return FirewallDecision(False, "no network permissions declared")
    if sandbox is not None and sandbox.agent_disabled:
        return FirewallDecision(False, "sandbox agent is disabled")
    if network.firewall is not None:
        return FirewallDecision(False, "firewall already configured")
    if sandbox is not None and sandbox.uses_sandbox_runtime:
        return FirewallDecision(False, "sandbox runtime selected")
    if network.is_unrestricted:
        return FirewallDecision(False, "wildcard '*' in allowed domains")
    return FirewallDecision(True, f"network restricted for {engine.id}")


def apply_firewall_decision(network: NetworkPermissions | None, decision: FirewallDecision) -> bool:
    """Write an enabled :class:`FirewallConfig` into *network*.

    Returns True when the config was written.  Existing firewall config is
    never replaced, so applying twice leaves the first result in place.
    """
    if network is None or not decision.enable:
        logger.debug("Firewall auto-enable skipped: %s", decision.reason)
        return False
    if network.firewall is not None:
        logger.debug("Firewall already configured, not overwriting")
        return False
    network.firewall = FirewallConfig(enabled=True)
    logger.info("Enabled firewall by default: %s", decision.reason)
    return True


# ── Config Accessors ──────────────────────────────────────────────────────────


def firewall_config(spec: WorkflowSpec) -> FirewallConfig | None:
    if spec.network is None:
        return None
    return spec.network.firewall


def agent_config(spec: WorkflowSpec) -> AgentSandboxConfig | None:
    if spec.sandbox is None:
        return None
    return spec.sandbox.agent


def is_firewall_enabled(spec: WorkflowSpec) -> bool:
    if spec.sandbox is not None and spec.sandbox.agent_disabled:
        logger.debug("Firewall disabled via sandbox.agent: false")
        return False
    fw = firewall_config(spec)
    return fw is not None and fw.enabled


def awf_image_tag(firewall: FirewallConfig | None) -> str:
    """Image tag pinned to the installed binary version, without a leading ``v``."""
    version = firewall.version if firewall is not None and firewall.version else DEFAULT_FIREWALL_VERSION
    return version.removeprefix("v")


def ssl_bump_args(firewall: FirewallConfig | None) -> list[str]:
    if firewall is None or not firewall.ssl_bump:
        return []
    args = ["--ssl-bump"]
    if firewall.allow_urls:
        args += ["--allow-urls", ",".join(firewall.allow_urls)]
    return args


# ── Command Wrapping ──────────────────────────────────────────────────────────


@dataclass
class AWFCommandConfig:
    """Inputs for wrapping one engine command in the firewall runner."""

    engine_name: str
    engine_command: str
    log_file: str
    spec: WorkflowSpec
    allowed_domains: str
    uses_tty: bool = False
    enable_chroot: bool = False
    uses_api_proxy: bool = False
    path_setup: str = ""
    # Chroot mode runs the command directly; otherwise it goes through bash -c.
    wrap_in_shell: bool = True
    append_log: bool = True


def build_awf_args(config: AWFCommandConfig) -> list[str]:
    fw = firewall_config(config.spec)
    agent = agent_config(config.spec)

    args: list[str] = []
    if config.uses_tty:
        args.append("--tty")
    if config.enable_chroot:
        args.append("--enable-chroot")
    args.append("--env-all")
    args += ["--container-workdir", '"${GITHUB_WORKSPACE}"']

    if agent is not None and agent.mounts:
        for mount in sorted(agent.mounts):
            args += ["--mount", mount]
        logger.debug("Added %d custom mounts from agent config", len(agent.mounts))

    args += ["--allow-domains", config.allowed_domains]
    blocked = format_blocked_domains(config.spec.network)
    if blocked:
        args += ["--block-domains", blocked]

    log_level = fw.log_level if fw is not None and fw.log_level else AWF_DEFAULT_LOG_LEVEL
    args += ["--log-level", log_level]
    args += ["--proxy-logs-dir", AWF_PROXY_LOGS_DIR]

    if tools.has_mcp_servers(config.spec):
        args.append("--enable-host-access")

    args += ["--image-tag", awf_image_tag(fw)]
    # Images are pulled by an earlier job step.
    args.append("--skip-pull")

    if config.uses_api_proxy:
        args.append("--enable-api-proxy")

    args += ssl_bump_args(fw)
    if fw is not None and fw.args:
        args += fw.args
    if agent is not None and agent.args:
        args += agent.args

    logger.debug("Built %d AWF arguments for %s", len(args), config.engine_name)
    return args


def awf_command_prefix(spec: WorkflowSpec) -> str:
    agent = agent_config(spec)
    if agent is not None and agent.command:
        logger.debug("Using custom AWF command: %s", agent.command)
        return agent.command
    return AWF_DEFAULT_COMMAND


def build_awf_command(config: AWFCommandConfig) -> str:
    """Full ``run:`` text: pipefail, optional host setup, wrapped command, tee."""
    if config.wrap_in_shell:
        inner = wrap_command_in_shell(config.engine_command)
    else:
        inner = shell_escape_arg(config.engine_command)
    tee = "tee -a" if config.append_log else "tee"
    lines = ["set -o pipefail"]
    if config.path_setup:
        lines.append(config.path_setup)
    lines.append(f"{awf_command_prefix(config.spec)} {shell_join_args(build_awf_args(config))} \\")
    lines.append(f"  -- {inner} \\")
    lines.append(f"  2>&1 | {tee} {shell_escape_arg(config.log_file)}")
    return "\n".join(lines)


def generate_awf_installation_step(version: str, agent: AgentSandboxConfig | None) -> PipelineStep:
    """Step installing the firewall runner; empty when a custom runner is used."""
    if agent is not None and agent.command:
        logger.debug("Skipping AWF installation, custom command configured: %s", agent.command)
        return EMPTY_STEP
    version = version or DEFAULT_FIREWALL_VERSION
    return (
        StepBuilder("Install awf binary")
        .with_run(f"bash {ACTIONS_DIR}/install_awf_binary.sh {version}", inline=True)
        .build()
    )
