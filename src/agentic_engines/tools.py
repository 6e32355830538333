"""Queries over the raw ``tools:`` map of a workflow.

The tool map stays a plain dict as it comes out of the frontmatter; each
tool value may be ``None``/``True`` (enabled with defaults), a list
(``bash: [...]``), or a mapping with tool-specific keys.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from agentic_engines.constants import DEFAULT_GITHUB_TOKEN_EXPR
from agentic_engines.sandbox.secrets import extract_secrets_from_map, is_secret_reference

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

# Tools handled by the engine itself rather than by an MCP server.
BUILTIN_TOOLS = frozenset({"bash", "edit", "web-fetch", "web-search", "github", "playwright", "safe-inputs"})


def is_tool_enabled(tools: Mapping[str, Any] | None, name: str) -> bool:
    """``name: false`` disables a tool; any other value enables it."""
    if not tools or name not in tools:
        return False
    return tools[name] is not False


def mcp_server_type(tool_config: Any) -> str:
    """Transport of a custom MCP tool config: ``"http"``, ``"stdio"`` or ``""``."""
    if not isinstance(tool_config, Mapping):
        return ""
    declared = tool_config.get("type")
    if isinstance(declared, str) and declared:
        return "stdio" if declared == "local" else declared
    if "url" in tool_config:
        return "http"
    if "command" in tool_config or "container" in tool_config:
        return "stdio"
    return ""


def custom_mcp_tools(tools: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Tools that declare their own MCP server, keyed by name."""
    if not tools:
        return {}
    return {
        name: dict(cfg)
        for name, cfg in tools.items()
        if name not in BUILTIN_TOOLS and mcp_server_type(cfg)
    }


def is_safe_inputs_enabled(safe_inputs: Mapping[str, Any] | None) -> bool:
    return bool(safe_inputs)


def has_mcp_servers(spec: WorkflowSpec) -> bool:
    """True when the agent step will talk to at least one MCP server."""
    tools = spec.tools
    if is_tool_enabled(tools, "github") or is_tool_enabled(tools, "playwright"):
        return True
    if custom_mcp_tools(tools):
        return True
    if spec.safe_outputs is not None:
        return True
    return is_safe_inputs_enabled(spec.safe_inputs)


# ── GitHub Tool ───────────────────────────────────────────────────────────────


def has_github_tool(tools: Mapping[str, Any] | None) -> bool:
    return is_tool_enabled(tools, "github")


def github_tool_config(tools: Mapping[str, Any] | None) -> dict[str, Any]:
    if not has_github_tool(tools):
        return {}
    cfg = tools["github"]  # type: ignore[index]
    return dict(cfg) if isinstance(cfg, Mapping) else {}


def github_mode(tools: Mapping[str, Any] | None) -> str:
    mode = github_tool_config(tools).get("mode")
    return mode if isinstance(mode, str) else "local"


def github_tool_token(tools: Mapping[str, Any] | None) -> str:
    token = github_tool_config(tools).get("github-token")
    return token if isinstance(token, str) else ""


def github_allowed_tools(tools: Mapping[str, Any] | None) -> list[str] | None:
    """The GitHub tool's ``allowed`` list; None means every tool is allowed."""
    allowed = github_tool_config(tools).get("allowed")
    if isinstance(allowed, list):
        return [str(t) for t in allowed if isinstance(t, str)]
    return None


def effective_github_token(custom_token: str = "", top_level_token: str = "") -> str:
    """Precedence: tool-level token, then workflow ``github-token``, then the default secret."""
    return custom_token or top_level_token or DEFAULT_GITHUB_TOKEN_EXPR


# ── Tool Secrets ──────────────────────────────────────────────────────────────


def collect_http_mcp_header_secrets(tools: Mapping[str, Any] | None) -> dict[str, str]:
    """Secrets referenced from the ``headers`` of HTTP MCP tools."""
    found: dict[str, str] = {}
    for name, cfg in custom_mcp_tools(tools).items():
        if mcp_server_type(cfg) != "http":
            continue
        headers = cfg.get("headers") or {}
        if isinstance(headers, Mapping):
            secrets = extract_secrets_from_map(headers)
            if secrets:
                logger.debug("Tool '%s' headers reference %d secrets", name, len(secrets))
            found.update(secrets)
    return found


def collect_safe_inputs_secrets(safe_inputs: Mapping[str, Any] | None) -> dict[str, str]:
    """Env entries of safe-input tools whose value is a secret reference."""
    found: dict[str, str] = {}
    if not safe_inputs:
        return found
    for tool in safe_inputs.values():
        if not isinstance(tool, Mapping):
            continue
        env = tool.get("env") or {}
        if not isinstance(env, Mapping):
            continue
        for key, value in env.items():
            if isinstance(value, str) and is_secret_reference(value):
                found[str(key)] = value
    return found
