"""Security sandbox policy: firewall, domain lists, sandbox runtime, secret filtering."""

from agentic_engines.sandbox.config import (
    AgentSandboxConfig,
    FirewallConfig,
    NetworkPermissions,
    SandboxConfig,
)
from agentic_engines.sandbox.domains import (
    domain_ecosystem,
    ecosystem_domains,
    format_allowed_domains,
    get_allowed_domains,
    get_blocked_domains,
    matches_domain,
    merge_allowed_domains,
)
from agentic_engines.sandbox.firewall import (
    AWFCommandConfig,
    FirewallDecision,
    apply_firewall_decision,
    awf_image_tag,
    build_awf_args,
    build_awf_command,
    decide_firewall_auto_enable,
    is_firewall_enabled,
    ssl_bump_args,
)
from agentic_engines.sandbox.secrets import extract_secret_name, filter_env_for_secrets
from agentic_engines.sandbox.srt import build_srt_command, build_srt_config, is_srt_enabled

__all__ = [
    "AWFCommandConfig",
    "AgentSandboxConfig",
    "FirewallConfig",
    "FirewallDecision",
    "NetworkPermissions",
    "SandboxConfig",
    "apply_firewall_decision",
    "awf_image_tag",
    "build_awf_args",
    "build_awf_command",
    "build_srt_command",
    "build_srt_config",
    "decide_firewall_auto_enable",
    "domain_ecosystem",
    "ecosystem_domains",
    "extract_secret_name",
    "filter_env_for_secrets",
    "format_allowed_domains",
    "get_allowed_domains",
    "get_blocked_domains",
    "is_firewall_enabled",
    "is_srt_enabled",
    "matches_domain",
    "merge_allowed_domains",
    "ssl_bump_args",
]
