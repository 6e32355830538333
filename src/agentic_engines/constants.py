"""Shared constants for engine compilation.

Paths, default versions and environment variable names that appear in the
generated steps. Downstream scripts read these names, so treat them as a
stable interface.
"""

from __future__ import annotations

# ── Versions ──────────────────────────────────────────────────────────────────

DEFAULT_CLAUDE_CODE_VERSION = "2.1.39"
DEFAULT_COPILOT_VERSION = "0.0.409"
DEFAULT_CODEX_VERSION = "0.101.0"
DEFAULT_GEMINI_VERSION = "0.28.2"
DEFAULT_FIREWALL_VERSION = "v0.17.0"
DEFAULT_SANDBOX_RUNTIME_VERSION = "0.0.37"
DEFAULT_NODE_VERSION = "24"

DEFAULT_COPILOT_DETECTION_MODEL = "gpt-5.1-codex-mini"

# ── Timeouts ──────────────────────────────────────────────────────────────────

DEFAULT_AGENTIC_WORKFLOW_TIMEOUT_MINUTES = 20
DEFAULT_TOOL_TIMEOUT_SECONDS = 60
DEFAULT_MCP_STARTUP_TIMEOUT_SECONDS = 120

# ── Paths ─────────────────────────────────────────────────────────────────────

PROMPT_FILE = "/tmp/gh-aw/aw-prompts/prompt.txt"
DEFAULT_LOG_FILE = "/tmp/gh-aw/agent-stdio.log"
MCP_CONFIG_DIR = "/tmp/gh-aw/mcp-config"
COPILOT_LOGS_FOLDER = "/tmp/gh-aw/sandbox/agent/logs/"
AWF_PROXY_LOGS_DIR = "/tmp/gh-aw/sandbox/firewall/logs"
ACTIONS_DIR = "/opt/gh-aw/actions"

# ── Sandbox runner ────────────────────────────────────────────────────────────

AWF_DEFAULT_COMMAND = "sudo -E awf"
AWF_DEFAULT_LOG_LEVEL = "info"

# ── Domains ───────────────────────────────────────────────────────────────────

GITHUB_COPILOT_MCP_DOMAIN = "api.githubcopilot.com"
LOOPBACK_DOMAINS = ("localhost", "localhost:*", "127.0.0.1", "127.0.0.1:*")

# ── Model selection variables ─────────────────────────────────────────────────

ENV_MODEL_AGENT_CLAUDE = "GH_AW_MODEL_AGENT_CLAUDE"
ENV_MODEL_AGENT_CODEX = "GH_AW_MODEL_AGENT_CODEX"
ENV_MODEL_AGENT_COPILOT = "GH_AW_MODEL_AGENT_COPILOT"
ENV_MODEL_AGENT_GEMINI = "GH_AW_MODEL_AGENT_GEMINI"
ENV_MODEL_DETECTION_CLAUDE = "GH_AW_MODEL_DETECTION_CLAUDE"
ENV_MODEL_DETECTION_CODEX = "GH_AW_MODEL_DETECTION_CODEX"
ENV_MODEL_DETECTION_COPILOT = "GH_AW_MODEL_DETECTION_COPILOT"
ENV_MODEL_DETECTION_GEMINI = "GH_AW_MODEL_DETECTION_GEMINI"

# ── Secrets ───────────────────────────────────────────────────────────────────

SECRET_REFERENCE_MARKER = "${{ secrets."
MCP_GATEWAY_API_KEY = "MCP_GATEWAY_API_KEY"
GITHUB_MCP_SERVER_TOKEN = "GITHUB_MCP_SERVER_TOKEN"
DEFAULT_GITHUB_TOKEN_EXPR = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"

# Field order used when serializing user-supplied steps.
PRIORITY_STEP_FIELDS = ("name", "id", "if", "run", "uses", "script", "env", "with")

# ── Tool defaults ─────────────────────────────────────────────────────────────

# Read-only GitHub MCP tools allowed when the github tool has no `allowed` list.
DEFAULT_GITHUB_TOOLS = (
    "download_workflow_run_artifact",
    "get_job_logs",
    "get_workflow_run",
    "get_workflow_run_logs",
    "get_workflow_run_usage",
    "list_workflow_jobs",
    "list_workflow_run_artifacts",
    "list_workflow_runs",
    "list_workflows",
    "get_code_scanning_alert",
    "list_code_scanning_alerts",
    "get_me",
    "get_dependabot_alert",
    "list_dependabot_alerts",
    "get_discussion",
    "get_discussion_comments",
    "list_discussion_categories",
    "list_discussions",
    "issue_read",
    "list_issues",
    "search_issues",
    "get_notification_details",
    "list_notifications",
    "search_orgs",
    "get_label",
    "list_label",
    "get_pull_request",
    "get_pull_request_comments",
    "get_pull_request_diff",
    "get_pull_request_files",
    "get_pull_request_reviews",
    "get_pull_request_status",
    "list_pull_requests",
    "pull_request_read",
    "search_pull_requests",
    "get_commit",
    "get_file_contents",
    "get_tag",
    "list_branches",
    "list_commits",
    "list_tags",
    "search_code",
    "search_repositories",
    "get_secret_scanning_alert",
    "list_secret_scanning_alerts",
    "search_users",
    "get_latest_release",
    "get_pull_request_review_comments",
    "get_release_by_tag",
    "list_issue_types",
    "list_releases",
    "list_starred_repositories",
)

PLAYWRIGHT_TOOLS = (
    "browser_click",
    "browser_close",
    "browser_console_messages",
    "browser_drag",
    "browser_evaluate",
    "browser_file_upload",
    "browser_fill_form",
    "browser_handle_dialog",
    "browser_hover",
    "browser_install",
    "browser_navigate",
    "browser_navigate_back",
    "browser_network_requests",
    "browser_press_key",
    "browser_resize",
    "browser_select_option",
    "browser_snapshot",
    "browser_tabs",
    "browser_take_screenshot",
    "browser_type",
    "browser_wait_for",
)

# ── MCP servers ───────────────────────────────────────────────────────────────

DEFAULT_GITHUB_MCP_SERVER_VERSION = "v0.30.3"
GITHUB_MCP_SERVER_IMAGE = "ghcr.io/github/github-mcp-server"
GITHUB_REMOTE_MCP_URL = "https://api.githubcopilot.com/mcp/"
DEFAULT_GITHUB_TOOLSETS = "context,repos,issues,pull_requests"
PLAYWRIGHT_MCP_IMAGE = "mcr.microsoft.com/playwright/mcp"
MCP_LOGS_DIR = "/tmp/gh-aw/mcp-logs"
MCP_GATEWAY_PAYLOAD_DIR = "/tmp/gh-aw/mcp-payloads"
SAFE_OUTPUTS_MCP_SERVER_ID = "safeoutputs"
SAFE_INPUTS_MCP_SERVER_ID = "safeinputs"
DOCKER_HOST_INTERNAL = "host.docker.internal"
