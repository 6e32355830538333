"""Domain allow/block list computation for the firewall sandbox.

The allow-list for an engine is the union, in this order, of:

- the engine's built-in default hosts
- ``network.allowed`` with ecosystem identifiers expanded
- hosts of HTTP-transport MCP servers declared under ``tools``
- Playwright download hosts when the ``playwright`` tool is present
- ecosystem hosts implied by declared ``runtimes``

The merged list is deduplicated, sorted, and always carries the loopback
variants in :data:`~agentic_engines.constants.LOOPBACK_DOMAINS` so local MCP
servers stay reachable inside the sandbox.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from agentic_engines.constants import GITHUB_COPILOT_MCP_DOMAIN, LOOPBACK_DOMAINS
from agentic_engines.sandbox.config import NetworkPermissions

logger = logging.getLogger(__name__)

_ECOSYSTEM_FILE = Path(__file__).with_name("ecosystem_domains.yaml")


# ── Engine Defaults ───────────────────────────────────────────────────────────

COPILOT_DEFAULT_DOMAINS: tuple[str, ...] = (
    "api.business.githubcopilot.com",
    "api.enterprise.githubcopilot.com",
    "api.github.com",
    "api.githubcopilot.com",
    "api.individual.githubcopilot.com",
    "github.com",
    "host.docker.internal",
    "raw.githubusercontent.com",
    "registry.npmjs.org",
    "telemetry.enterprise.githubcopilot.com",
)

CODEX_DEFAULT_DOMAINS: tuple[str, ...] = (
    "172.30.0.1",  # sandbox gateway IP; Codex resolves host.docker.internal to it
    "api.openai.com",
    "host.docker.internal",
    "openai.com",
)

CLAUDE_DEFAULT_DOMAINS: tuple[str, ...] = (
    "*.githubusercontent.com",
    "anthropic.com",
    "api.anthropic.com",
    "api.github.com",
    "api.snapcraft.io",
    "archive.ubuntu.com",
    "azure.archive.ubuntu.com",
    "cdn.playwright.dev",
    "codeload.github.com",
    "crl.geotrust.com",
    "crl.globalsign.com",
    "crl.identrust.com",
    "crl.sectigo.com",
    "crl.thawte.com",
    "crl.usertrust.com",
    "crl.verisign.com",
    "crl3.digicert.com",
    "crl4.digicert.com",
    "crls.ssl.com",
    "files.pythonhosted.org",
    "ghcr.io",
    "github-cloud.githubusercontent.com",
    "github-cloud.s3.amazonaws.com",
    "github.com",
    "host.docker.internal",
    "json-schema.org",
    "json.schemastore.org",
    "keyserver.ubuntu.com",
    "lfs.github.com",
    "objects.githubusercontent.com",
    "ocsp.digicert.com",
    "ocsp.geotrust.com",
    "ocsp.globalsign.com",
    "ocsp.identrust.com",
    "ocsp.sectigo.com",
    "ocsp.ssl.com",
    "ocsp.thawte.com",
    "ocsp.usertrust.com",
    "ocsp.verisign.com",
    "packagecloud.io",
    "packages.cloud.google.com",
    "packages.microsoft.com",
    "playwright.download.prss.microsoft.com",
    "ppa.launchpad.net",
    "pypi.org",
    "raw.githubusercontent.com",
    "registry.npmjs.org",
    "s.symcb.com",
    "s.symcd.com",
    "security.ubuntu.com",
    "sentry.io",
    "statsig.anthropic.com",
    "ts-crl.ws.symantec.com",
    "ts-ocsp.ws.symantec.com",
)

GEMINI_DEFAULT_DOMAINS: tuple[str, ...] = (
    "*.googleapis.com",
    "generativelanguage.googleapis.com",
    "github.com",
    "host.docker.internal",
    "raw.githubusercontent.com",
    "registry.npmjs.org",
)

PLAYWRIGHT_DOMAINS: tuple[str, ...] = (
    "cdn.playwright.dev",
    "playwright.download.prss.microsoft.com",
)

RUNTIME_TO_ECOSYSTEM: dict[str, str] = {
    "node": "node",
    "python": "python",
    "go": "go",
    "java": "java",
    "ruby": "ruby",
    "dotnet": "dotnet",
    "haskell": "haskell",
    "bun": "node",
    "deno": "node",
    "uv": "python",
    "clojure": "clojure",
    "dart": "dart",
    "elixir": "elixir",
    "kotlin": "kotlin",
    "php": "php",
    "scala": "scala",
    "swift": "swift",
    "zig": "zig",
}

# More specific ecosystems are checked first when classifying a domain.
_ECOSYSTEM_PRIORITY = (
    "node-cdns",
    "rust",
    "clojure",
    "containers",
    "dart",
    "defaults",
    "dotnet",
    "elixir",
    "fonts",
    "github",
    "github-actions",
    "go",
    "haskell",
    "java",
    "kotlin",
    "linux-distros",
    "node",
    "perl",
    "php",
    "playwright",
    "python",
    "ruby",
    "scala",
    "swift",
    "terraform",
    "zig",
)


# ── Ecosystem Table ───────────────────────────────────────────────────────────


@functools.lru_cache(maxsize=1)
def _load_ecosystems() -> dict[str, tuple[str, ...]]:
    with open(_ECOSYSTEM_FILE) as f:
        raw = yaml.safe_load(f) or {}
    table = {str(name): tuple(str(d) for d in (domains or [])) for name, domains in raw.items()}
    logger.debug("Loaded %d ecosystem categories", len(table))
    return table


def ecosystem_names() -> list[str]:
    return sorted(_load_ecosystems())


def ecosystem_domains(category: str) -> list[str]:
    """Sorted hosts for an ecosystem identifier; empty when unknown."""
    return sorted(_load_ecosystems().get(category, ()))


def expand_domains(entries: Iterable[str]) -> list[str]:
    """Expand ecosystem identifiers in *entries*, dedupe and sort."""
    result: set[str] = set()
    for entry in entries:
        expanded = ecosystem_domains(entry)
        if expanded:
            logger.debug("Expanded ecosystem '%s' to %d domains", entry, len(expanded))
            result.update(expanded)
        else:
            result.add(entry)
    return sorted(result)


def get_allowed_domains(network: NetworkPermissions | None) -> list[str]:
    """Expanded ``network.allowed``.

    No network section means the ``defaults`` ecosystem; an explicit empty
    list means no egress at all.
    """
    if network is None:
        return ecosystem_domains("defaults")
    if not network.allowed:
        return []
    return expand_domains(network.allowed)


def get_blocked_domains(network: NetworkPermissions | None) -> list[str]:
    if network is None or not network.blocked:
        return []
    return expand_domains(network.blocked)


def format_blocked_domains(network: NetworkPermissions | None) -> str:
    return ",".join(get_blocked_domains(network))


def matches_domain(domain: str, pattern: str) -> bool:
    """Exact match, or ``*.suffix`` matching the suffix and its subdomains."""
    if domain == pattern:
        return True
    if pattern.startswith("*."):
        suffix = pattern[2:]
        return domain == suffix or domain.endswith("." + suffix)
    return False


def domain_ecosystem(domain: str) -> str:
    """Name of the ecosystem a domain belongs to, or ``""``."""
    table = _load_ecosystems()
    ordered = [e for e in _ECOSYSTEM_PRIORITY if e in table]
    ordered += sorted(e for e in table if e not in _ECOSYSTEM_PRIORITY)
    for ecosystem in ordered:
        if any(matches_domain(domain, pattern) for pattern in table[ecosystem]):
            return ecosystem
    return ""


# ── Tool / Runtime Extraction ─────────────────────────────────────────────────


def _host_from_url(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def extract_http_mcp_domains(tools: Mapping[str, Any] | None) -> list[str]:
    """Hosts of HTTP MCP servers in *tools*.

    The GitHub tool in ``remote`` mode contributes the hosted MCP endpoint.
    Other tools count as HTTP when ``type: http`` is set, or when a ``url``
    is given without a type.
    """
    if not tools:
        return []
    domains: list[str] = []
    for name, cfg in tools.items():
        if not isinstance(cfg, dict):
            continue
        if name == "github" and cfg.get("mode") == "remote":
            domains.append(GITHUB_COPILOT_MCP_DOMAIN)
            continue
        url = cfg.get("url")
        mcp_type = cfg.get("type")
        is_http = mcp_type == "http" or (mcp_type is None and url is not None)
        if is_http and isinstance(url, str):
            host = _host_from_url(url)
            if host:
                logger.debug("Extracted HTTP MCP domain '%s' from tool '%s'", host, name)
                domains.append(host)
    return domains


def extract_playwright_domains(tools: Mapping[str, Any] | None) -> list[str]:
    if tools and "playwright" in tools:
        return list(PLAYWRIGHT_DOMAINS)
    return []


def domains_from_runtimes(runtimes: Mapping[str, Any] | None) -> list[str]:
    if not runtimes:
        return []
    result: set[str] = set()
    for runtime_id in runtimes:
        ecosystem = RUNTIME_TO_ECOSYSTEM.get(runtime_id)
        if ecosystem is None:
            logger.debug("No ecosystem mapping for runtime '%s'", runtime_id)
            continue
        result.update(ecosystem_domains(ecosystem))
    return sorted(result)


# ── Merge ─────────────────────────────────────────────────────────────────────


def merge_allowed_domains(
    default_domains: Iterable[str],
    network: NetworkPermissions | None,
    tools: Mapping[str, Any] | None = None,
    runtimes: Mapping[str, Any] | None = None,
) -> list[str]:
    """Full, sorted allow-list for an engine including loopback hosts."""
    merged: set[str] = set(default_domains)
    if network is not None and network.allowed:
        merged.update(get_allowed_domains(network))
    merged.update(extract_http_mcp_domains(tools))
    merged.update(extract_playwright_domains(tools))
    merged.update(domains_from_runtimes(runtimes))
    merged.update(LOOPBACK_DOMAINS)
    return sorted(merged)


def format_allowed_domains(
    default_domains: Iterable[str],
    network: NetworkPermissions | None,
    tools: Mapping[str, Any] | None = None,
    runtimes: Mapping[str, Any] | None = None,
) -> str:
    return ",".join(merge_allowed_domains(default_domains, network, tools, runtimes))
