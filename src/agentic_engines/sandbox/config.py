"""Network and sandbox configuration models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class FirewallConfig(BaseModel):
    """Settings for the network firewall sandbox (AWF)."""

    enabled: bool = False
    version: str = ""  # empty → DEFAULT_FIREWALL_VERSION
    args: list[str] = Field(default_factory=list)
    log_level: str = Field("", alias="log-level")
    cleanup_script: str = Field("", alias="cleanup-script")
    # SSL interception is required before URL-path filtering can apply.
    ssl_bump: bool = Field(False, alias="ssl-bump")
    allow_urls: list[str] = Field(default_factory=list, alias="allow-urls")

    model_config = {"populate_by_name": True}


class NetworkPermissions(BaseModel):
    """Declared network egress for the agent step.

    ``allowed`` may contain plain domains, ``*.`` wildcards, ecosystem
    identifiers such as ``defaults`` or ``python``, or the sentinel ``*``
    meaning unrestricted egress.
    """

    allowed: list[str] = Field(default_factory=list)
    blocked: list[str] = Field(default_factory=list)
    firewall: FirewallConfig | None = None

    # `network: defaults` shorthand and `firewall: true|false`
    @model_validator(mode="before")
    @classmethod
    def _expand_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"allowed": [data]}
        if isinstance(data, dict) and "firewall" in data:
            fw = data["firewall"]
            if isinstance(fw, bool):
                data = {**data, "firewall": {"enabled": fw}}
        return data

    @property
    def is_unrestricted(self) -> bool:
        return "*" in self.allowed


class AgentSandboxConfig(BaseModel):
    """Overrides for the process that wraps the agent command."""

    id: Literal["awf", "srt"] | None = None
    disabled: bool = False
    command: str = ""
    args: list[str] = Field(default_factory=list)
    mounts: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)  # SRT policy overrides


class SandboxConfig(BaseModel):
    """Top-level ``sandbox:`` frontmatter section."""

    type: Literal["awf", "sandbox-runtime"] | None = None
    agent: AgentSandboxConfig | None = None

    @model_validator(mode="before")
    @classmethod
    def _expand_agent_shorthand(cls, data: Any) -> Any:
        if isinstance(data, dict):
            agent = data.get("agent")
            if agent is False:
                data = {**data, "agent": {"disabled": True}}
            elif isinstance(agent, str):
                data = {**data, "agent": {"id": agent}}
        return data

    @property
    def agent_disabled(self) -> bool:
        return self.agent is not None and self.agent.disabled

    @property
    def uses_sandbox_runtime(self) -> bool:
        """True when the alternate process-isolation sandbox is selected."""
        if self.type == "sandbox-runtime":
            return True
        return self.agent is not None and self.agent.id == "srt"
