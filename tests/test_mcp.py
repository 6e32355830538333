"""Tests for MCP server configuration rendering."""

from __future__ import annotations

import json
import tomllib

import pytest

from agentic_engines.engines.mcp import (
    HEREDOC_DELIMITER,
    MCPRenderOptions,
    build_mcp_servers,
    custom_server,
    github_server,
    mcp_tool_names,
    playwright_server,
    render_json_mcp_config,
    render_toml_mcp_config,
    rewrite_loopback_hosts,
    shell_environment_policy,
    toml_value,
    workflow_user_agent,
)

COPILOT = MCPRenderOptions(copilot_fields=True)


def heredoc_body(fragment: str) -> str:
    lines = fragment.split("\n")
    assert lines[-1] == HEREDOC_DELIMITER
    return "\n".join(lines[2:-1])


# -- Server selection -------------------------------------------------------


class TestMcpToolNames:
    def test_render_order(self, make_spec):
        spec = make_spec(
            tools={
                "zeta": {"command": "node"},
                "alpha": {"url": "https://mcp.example.com"},
                "playwright": None,
                "github": None,
                "bash": None,
            },
            safe_outputs=None,
            safe_inputs={"lookup": {"script": "return 1"}},
        )
        assert mcp_tool_names(spec) == ["github", "playwright", "alpha", "zeta", "safe-outputs", "safe-inputs"]

    def test_none(self, make_spec):
        assert mcp_tool_names(make_spec(tools={"edit": None})) == []


# -- Server definitions -----------------------------------------------------


class TestGithubServer:
    def test_local_defaults(self):
        assert github_server({"github": None}, MCPRenderOptions()) == {
            "container": "ghcr.io/github/github-mcp-server:v0.30.3",
            "env": {
                "GITHUB_PERSONAL_ACCESS_TOKEN": "$GITHUB_MCP_SERVER_TOKEN",
                "GITHUB_READ_ONLY": "1",
                "GITHUB_TOOLSETS": "context,repos,issues,pull_requests",
            },
        }

    def test_local_options(self):
        tools = {"github": {"read-only": False, "toolsets": ["repos", "actions"], "version": "v1.0.0"}}
        server = github_server(tools, MCPRenderOptions())
        assert server["container"].endswith(":v1.0.0")
        assert server["env"]["GITHUB_TOOLSETS"] == "repos,actions"
        assert "GITHUB_READ_ONLY" not in server["env"]

    def test_copilot_fields(self):
        server = github_server({"github": {"allowed": ["get_issue"]}}, COPILOT)
        assert next(iter(server)) == "type"
        assert server["type"] == "stdio"
        assert server["tools"] == ["get_issue"]

    def test_remote(self):
        server = github_server({"github": {"mode": "remote"}}, MCPRenderOptions())
        assert server == {
            "type": "http",
            "url": "https://api.githubcopilot.com/mcp/",
            "headers": {"Authorization": "Bearer $GITHUB_MCP_SERVER_TOKEN"},
        }


class TestOtherServers:
    def test_playwright_allowed_domains(self):
        server = playwright_server({"playwright": {"allowed_domains": ["a.com", "b.com"]}}, MCPRenderOptions())
        args = server["entrypointArgs"]
        assert args[args.index("--allowed-hosts") + 1] == "a.com;b.com"
        assert args[args.index("--allowed-origins") + 1] == "a.com;b.com"

    def test_safe_outputs_loopback(self):
        servers = build_mcp_servers({}, ["safe-outputs"])
        assert servers == {
            "safeoutputs": {
                "type": "http",
                "url": "http://localhost:$GH_AW_SAFE_OUTPUTS_PORT",
                "headers": {"Authorization": "$GH_AW_SAFE_OUTPUTS_API_KEY"},
            }
        }

    def test_custom_stdio(self):
        cfg = {"command": "node", "args": ["server.js"], "env": {}}
        assert custom_server(cfg, MCPRenderOptions()) == {"command": "node", "args": ["server.js"]}
        assert custom_server(cfg, COPILOT) == {"type": "stdio", "command": "node", "args": ["server.js"], "tools": ["*"]}

    def test_unknown_tool_skipped(self):
        assert build_mcp_servers({}, ["cache-memory"]) == {}


# -- JSON -------------------------------------------------------------------


class TestRenderJson:
    def test_heredoc_document(self):
        servers = build_mcp_servers({"github": None}, ["github"])
        fragment = render_json_mcp_config(servers, "/tmp/gh-aw/mcp-config/mcp-servers.json")
        lines = fragment.split("\n")
        assert lines[0] == 'mkdir -p "/tmp/gh-aw/mcp-config"'
        assert lines[1] == f'cat > "/tmp/gh-aw/mcp-config/mcp-servers.json" << {HEREDOC_DELIMITER}'
        document = json.loads(heredoc_body(fragment))
        assert list(document["mcpServers"]) == ["github"]
        assert document["gateway"]["port"] == "${MCP_GATEWAY_PORT}"

    def test_no_servers(self):
        assert render_json_mcp_config({}, "/tmp/x.json") == ""

    def test_rewrite_loopback(self):
        assert rewrite_loopback_hosts("http://localhost:1 http://127.0.0.1:2") == (
            "http://host.docker.internal:1 http://host.docker.internal:2"
        )


# -- TOML -------------------------------------------------------------------


class TestTomlValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, "true"),
            (3, "3"),
            ('say "hi"', '"say \\"hi\\""'),
            (["a", 1], '["a", 1]'),
            ({"K": "v"}, '{ "K" = "v" }'),
            ({}, "{}"),
        ],
    )
    def test_inline(self, value, expected):
        assert toml_value(value) == expected


class TestCodexHelpers:
    @pytest.mark.parametrize(
        "name,expected",
        [("My Workflow!", "my-workflow"), ("daily_report", "daily-report"), ("!!!", "github-agentic-workflow")],
    )
    def test_user_agent(self, name, expected):
        assert workflow_user_agent(name) == expected

    def test_shell_environment_policy(self):
        names = shell_environment_policy({"my-tool": {"command": "x", "env": {"MY_KEY": "1"}}}, ["github", "my-tool"])
        assert names == sorted(names)
        assert {"PATH", "HOME", "GITHUB_PERSONAL_ACCESS_TOKEN", "MY_KEY"} <= set(names)


class TestRenderToml:
    def test_parses_as_toml(self, make_spec):
        spec = make_spec(
            name="Issue Triage",
            tools={"github": None, "my.server": {"url": "https://mcp.example.com"}, "timeout": 30},
        )
        names = mcp_tool_names(spec)
        servers = build_mcp_servers(spec.tools, names)
        fragment = render_toml_mcp_config(servers, spec.tools, names, spec, "/tmp/gh-aw/mcp-config/config.toml")
        document = tomllib.loads(heredoc_body(fragment))

        assert document["history"]["persistence"] == "none"
        assert "PATH" in document["shell_environment_policy"]["include_only"]
        github = document["mcp_servers"]["github"]
        assert github["user_agent"] == "issue-triage"
        assert github["startup_timeout_sec"] == 120
        assert github["tool_timeout_sec"] == 30
        assert github["env_vars"] == sorted(github["env"])
        assert document["mcp_servers"]["my.server"]["url"] == "https://mcp.example.com"

    def test_no_servers(self, make_spec):
        spec = make_spec()
        assert render_toml_mcp_config({}, {}, [], spec, "/tmp/config.toml") == ""
