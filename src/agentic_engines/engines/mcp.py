"""MCP server configuration rendering.

Server definitions are built once as plain dicts and then serialized per
engine: JSON (``mcpServers``) for Claude, Copilot, Gemini and custom steps,
TOML (``[mcp_servers.<name>]``) for Codex.  The rendered text is a shell
fragment that writes the config file from an unquoted heredoc, so ``$VAR``
references inside server definitions are expanded by the runner.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from agentic_engines import tools as tool_queries
from agentic_engines.constants import (
    DEFAULT_GITHUB_MCP_SERVER_VERSION,
    DEFAULT_GITHUB_TOOLSETS,
    DEFAULT_MCP_STARTUP_TIMEOUT_SECONDS,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
    DOCKER_HOST_INTERNAL,
    GITHUB_MCP_SERVER_IMAGE,
    GITHUB_REMOTE_MCP_URL,
    MCP_GATEWAY_PAYLOAD_DIR,
    MCP_LOGS_DIR,
    PLAYWRIGHT_MCP_IMAGE,
    SAFE_INPUTS_MCP_SERVER_ID,
    SAFE_OUTPUTS_MCP_SERVER_ID,
)

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec

logger = logging.getLogger(__name__)

HEREDOC_DELIMITER = "GH_AW_MCP_CONFIG_EOF"

# Keys copied from a custom MCP tool into its server definition.
_CUSTOM_SERVER_KEYS = (
    "command",
    "args",
    "container",
    "entrypoint",
    "entrypointArgs",
    "mounts",
    "url",
    "headers",
    "env",
)


@dataclass(frozen=True)
class MCPRenderOptions:
    # Copilot reads an explicit "type" on every server and a "tools" allow-list.
    copilot_fields: bool = False
    host: str = "localhost"
    github_token_ref: str = "$GITHUB_MCP_SERVER_TOKEN"


# ── Server Selection ──────────────────────────────────────────────────────────


def mcp_tool_names(spec: WorkflowSpec) -> list[str]:
    """Names of the tools that become MCP servers, in render order."""
    names: list[str] = []
    if tool_queries.is_tool_enabled(spec.tools, "github"):
        names.append("github")
    if tool_queries.is_tool_enabled(spec.tools, "playwright"):
        names.append("playwright")
    names.extend(sorted(tool_queries.custom_mcp_tools(spec.tools)))
    if spec.safe_outputs is not None:
        names.append("safe-outputs")
    if tool_queries.is_safe_inputs_enabled(spec.safe_inputs):
        names.append("safe-inputs")
    return names


def _allowed_or_all(cfg: Mapping[str, Any]) -> list[str]:
    allowed = cfg.get("allowed")
    if isinstance(allowed, list) and allowed:
        return [str(t) for t in allowed]
    return ["*"]


def github_server(tools: Mapping[str, Any], opts: MCPRenderOptions) -> dict[str, Any]:
    cfg = tool_queries.github_tool_config(tools)
    if tool_queries.github_mode(tools) == "remote":
        server: dict[str, Any] = {
            "type": "http",
            "url": GITHUB_REMOTE_MCP_URL,
            "headers": {"Authorization": f"Bearer {opts.github_token_ref}"},
        }
    else:
        version = str(cfg.get("version") or DEFAULT_GITHUB_MCP_SERVER_VERSION)
        toolsets = cfg.get("toolsets")
        if isinstance(toolsets, list):
            toolsets = ",".join(str(t) for t in toolsets)
        env = {
            "GITHUB_PERSONAL_ACCESS_TOKEN": opts.github_token_ref,
            "GITHUB_TOOLSETS": str(toolsets or DEFAULT_GITHUB_TOOLSETS),
        }
        if cfg.get("read-only", True):
            env["GITHUB_READ_ONLY"] = "1"
        server = {"container": f"{GITHUB_MCP_SERVER_IMAGE}:{version}", "env": dict(sorted(env.items()))}
        if opts.copilot_fields:
            server = {"type": "stdio", **server}
    if opts.copilot_fields:
        server["tools"] = _allowed_or_all(cfg)
    return server


def playwright_server(tools: Mapping[str, Any], opts: MCPRenderOptions) -> dict[str, Any]:
    cfg = tools.get("playwright")
    cfg = cfg if isinstance(cfg, Mapping) else {}
    image = PLAYWRIGHT_MCP_IMAGE
    if cfg.get("version"):
        image = f"{image}:{cfg['version']}"
    entrypoint_args = ["--output-dir", f"{MCP_LOGS_DIR}/playwright"]
    domains = cfg.get("allowed_domains")
    if isinstance(domains, list) and domains:
        csv = ";".join(str(d) for d in domains)
        entrypoint_args += ["--allowed-hosts", csv, "--allowed-origins", csv]
    if isinstance(cfg.get("args"), list):
        entrypoint_args += [str(a) for a in cfg["args"]]
    server: dict[str, Any] = {
        "container": image,
        "args": ["--init", "--network", "host", "--security-opt", "seccomp=unconfined", "--ipc=host"],
        "entrypointArgs": entrypoint_args,
        "mounts": [f"{MCP_LOGS_DIR}:{MCP_LOGS_DIR}:rw"],
    }
    if opts.copilot_fields:
        server = {"type": "stdio", **server, "tools": ["*"]}
    return server


def _loopback_http_server(port_var: str, key_var: str, opts: MCPRenderOptions) -> dict[str, Any]:
    server: dict[str, Any] = {
        "type": "http",
        "url": f"http://{opts.host}:${port_var}",
        "headers": {"Authorization": f"${key_var}"},
    }
    if opts.copilot_fields:
        server["tools"] = ["*"]
    return server


def custom_server(cfg: Mapping[str, Any], opts: MCPRenderOptions) -> dict[str, Any]:
    kind = tool_queries.mcp_server_type(cfg)
    server: dict[str, Any] = {}
    if kind == "http" or opts.copilot_fields:
        server["type"] = kind
    for key in _CUSTOM_SERVER_KEYS:
        if key in cfg and cfg[key] not in (None, "", [], {}):
            server[key] = cfg[key]
    if opts.copilot_fields:
        server["tools"] = _allowed_or_all(cfg)
    return server


def build_mcp_servers(
    tools: Mapping[str, Any],
    mcp_tools: list[str],
    opts: MCPRenderOptions | None = None,
) -> dict[str, dict[str, Any]]:
    """Server definitions keyed by server id, in *mcp_tools* order."""
    opts = opts or MCPRenderOptions()
    custom = tool_queries.custom_mcp_tools(tools)
    servers: dict[str, dict[str, Any]] = {}
    for name in mcp_tools:
        if name == "github":
            servers["github"] = github_server(tools, opts)
        elif name == "playwright":
            servers["playwright"] = playwright_server(tools, opts)
        elif name == "safe-outputs":
            servers[SAFE_OUTPUTS_MCP_SERVER_ID] = _loopback_http_server(
                "GH_AW_SAFE_OUTPUTS_PORT", "GH_AW_SAFE_OUTPUTS_API_KEY", opts
            )
        elif name == "safe-inputs":
            servers[SAFE_INPUTS_MCP_SERVER_ID] = _loopback_http_server(
                "GH_AW_SAFE_INPUTS_PORT", "GH_AW_SAFE_INPUTS_API_KEY", opts
            )
        elif name in custom:
            servers[name] = custom_server(custom[name], opts)
        else:
            logger.debug("Tool '%s' has no MCP server definition, skipping", name)
    return servers


def gateway_config() -> dict[str, str]:
    return {
        "port": "${MCP_GATEWAY_PORT}",
        "domain": "${MCP_GATEWAY_DOMAIN}",
        "apiKey": "${MCP_GATEWAY_API_KEY}",
        "payloadDir": MCP_GATEWAY_PAYLOAD_DIR,
    }


# ── JSON ──────────────────────────────────────────────────────────────────────


def _heredoc(path: str, body: str) -> str:
    return "\n".join(
        [
            f'mkdir -p "{posixpath.dirname(path)}"',
            f'cat > "{path}" << {HEREDOC_DELIMITER}',
            body,
            HEREDOC_DELIMITER,
        ]
    )


def render_json_mcp_config(servers: Mapping[str, Any], config_path: str) -> str:
    """Shell fragment writing ``{"mcpServers": ..., "gateway": ...}`` to *config_path*."""
    if not servers:
        return ""
    document = {"mcpServers": dict(servers), "gateway": gateway_config()}
    logger.debug("Rendering JSON MCP config with %d servers to %s", len(servers), config_path)
    return _heredoc(config_path, json.dumps(document, indent=2))


def rewrite_loopback_hosts(text: str, host: str = DOCKER_HOST_INTERNAL) -> str:
    """Point loopback server URLs at *host* for clients running in a container."""
    return text.replace("localhost", host).replace("127.0.0.1", host)


# ── TOML ──────────────────────────────────────────────────────────────────────

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _toml_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else json.dumps(key)


def toml_value(value: Any) -> str:
    """Inline TOML for scalars, arrays and tables.

    JSON string escaping is a subset of TOML basic-string escaping, so
    strings go through :func:`json.dumps`.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        items = ", ".join(f"{json.dumps(str(k))} = {toml_value(v)}" for k, v in value.items())
        return "{ " + items + " }"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(toml_value(v) for v in value) + "]"
    return json.dumps(str(value))


def workflow_user_agent(name: str) -> str:
    """Workflow name as a lowercase, hyphenated identifier."""
    ident = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return ident or "github-agentic-workflow"


def shell_environment_policy(tools: Mapping[str, Any], mcp_tools: list[str]) -> list[str]:
    """Variables Codex passes through to MCP server processes."""
    names = {"PATH", "HOME", "CODEX_API_KEY", "OPENAI_API_KEY"}
    for tool in mcp_tools:
        if tool == "github":
            names.add("GITHUB_PERSONAL_ACCESS_TOKEN")
        elif tool == "safe-outputs":
            names.update(
                {
                    "GH_AW_SAFE_OUTPUTS",
                    "GH_AW_ASSETS_BRANCH",
                    "GH_AW_ASSETS_MAX_SIZE_KB",
                    "GH_AW_ASSETS_ALLOWED_EXTS",
                    "GITHUB_REPOSITORY",
                    "GITHUB_SERVER_URL",
                }
            )
        else:
            cfg = tools.get(tool)
            if isinstance(cfg, Mapping) and isinstance(cfg.get("env"), Mapping):
                names.update(str(k) for k in cfg["env"])
    return sorted(names)


def render_toml_mcp_config(
    servers: Mapping[str, Mapping[str, Any]],
    tools: Mapping[str, Any],
    mcp_tools: list[str],
    spec: WorkflowSpec,
    config_path: str,
) -> str:
    """Shell fragment writing a Codex ``config.toml`` to *config_path*."""
    if not servers:
        return ""
    startup = spec.tools_startup_timeout or DEFAULT_MCP_STARTUP_TIMEOUT_SECONDS
    tool_timeout = spec.tools_timeout or DEFAULT_TOOL_TIMEOUT_SECONDS

    lines = [
        "[history]",
        'persistence = "none"',
        "",
        "[shell_environment_policy]",
        'inherit = "core"',
        f"include_only = {toml_value(shell_environment_policy(tools, mcp_tools))}",
    ]
    for name, server in servers.items():
        lines += ["", f"[mcp_servers.{_toml_key(name)}]"]
        if name == "github":
            lines.append(f"user_agent = {toml_value(workflow_user_agent(spec.name))}")
        lines.append(f"startup_timeout_sec = {startup}")
        lines.append(f"tool_timeout_sec = {tool_timeout}")
        for key, value in server.items():
            lines.append(f"{_toml_key(key)} = {toml_value(value)}")
        env = server.get("env")
        if isinstance(env, Mapping) and env:
            lines.append(f"env_vars = {toml_value(sorted(env))}")
    logger.debug("Rendering TOML MCP config with %d servers", len(servers))
    return _heredoc(config_path, "\n".join(lines))
