"""Engine capability contract.

Every engine is described by an immutable :class:`EngineSpec` and exposes
its behaviour through small, independently checkable roles:

- :class:`Engine`: identity
- :class:`CapabilityProvider`: capability flags and the LLM gateway port
- :class:`WorkflowExecutor`: installation/execution steps
- :class:`MCPConfigProvider`: MCP server configuration rendering
- :class:`LogParser`: log metric extraction
- :class:`SecurityProvider`: required secrets and detection model

Callers that only need one role check for it with ``isinstance`` against the
runtime-checkable protocol.  :class:`CodingAgentEngine` is the union of all
roles and :class:`BaseEngine` provides the shared defaults.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentic_engines.constants import DEFAULT_LOG_FILE
from agentic_engines.engines.logs import LogMetrics

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec
    from agentic_engines.steps import PipelineStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSpec:
    """Identity and capability flags of one engine, fixed at registration."""

    id: str
    display_name: str
    description: str
    experimental: bool = False
    supports_tools_allowlist: bool = False
    supports_http_transport: bool = False
    supports_max_turns: bool = False
    supports_web_fetch: bool = False
    supports_web_search: bool = False
    supports_firewall: bool = False
    supports_plugins: bool = False
    llm_gateway_port: int = -1  # -1 = no LLM gateway

    @property
    def supports_llm_gateway(self) -> bool:
        return self.llm_gateway_port >= 0


# ── Roles ─────────────────────────────────────────────────────────────────────


@runtime_checkable
class Engine(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def experimental(self) -> bool: ...


@runtime_checkable
class CapabilityProvider(Protocol):
    @property
    def spec(self) -> EngineSpec: ...

    @property
    def llm_gateway_port(self) -> int: ...


@runtime_checkable
class WorkflowExecutor(Protocol):
    def declared_output_files(self) -> list[str]: ...

    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]: ...

    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]: ...


@runtime_checkable
class MCPConfigProvider(Protocol):
    def render_mcp_config(
        self,
        tools: dict[str, Any],
        mcp_tools: list[str],
        spec: WorkflowSpec,
    ) -> str: ...


@runtime_checkable
class LogParser(Protocol):
    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics: ...

    def log_parser_script_id(self) -> str: ...

    def log_file_for_parsing(self) -> str: ...


@runtime_checkable
class SecurityProvider(Protocol):
    def default_detection_model(self) -> str: ...

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]: ...


@runtime_checkable
class CodingAgentEngine(
    Engine,
    CapabilityProvider,
    WorkflowExecutor,
    MCPConfigProvider,
    LogParser,
    SecurityProvider,
    Protocol,
):
    """Every role at once, for callers that drive an engine end to end."""


# ── Base Implementation ───────────────────────────────────────────────────────


class BaseEngine(ABC):
    """Shared defaults for engines.

    Subclasses set :attr:`SPEC` and implement the two step builders; every
    other role has a conservative default here.
    """

    SPEC: EngineSpec

    def __init__(self, spec: EngineSpec | None = None) -> None:
        self._spec = spec if spec is not None else self.SPEC

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r}>"

    # ── Identity ──────────────────────────────────────────────────────────

    @property
    def spec(self) -> EngineSpec:
        return self._spec

    @property
    def id(self) -> str:
        return self._spec.id

    @property
    def display_name(self) -> str:
        return self._spec.display_name

    @property
    def description(self) -> str:
        return self._spec.description

    @property
    def experimental(self) -> bool:
        return self._spec.experimental

    @property
    def llm_gateway_port(self) -> int:
        return self._spec.llm_gateway_port

    # ── Executor ──────────────────────────────────────────────────────────

    def declared_output_files(self) -> list[str]:
        return []

    @abstractmethod
    def installation_steps(self, spec: WorkflowSpec) -> list[PipelineStep]:
        """Steps that install the engine CLI before the agent runs."""

    @abstractmethod
    def execution_steps(self, spec: WorkflowSpec, log_file: str) -> list[PipelineStep]:
        """Steps that run the agent, writing its output to *log_file*."""

    # ── MCP / Logs / Security ─────────────────────────────────────────────

    def render_mcp_config(self, tools: dict[str, Any], mcp_tools: list[str], spec: WorkflowSpec) -> str:
        return ""

    def parse_log_metrics(self, text: str, verbose: bool = False) -> LogMetrics:
        return LogMetrics()

    def log_parser_script_id(self) -> str:
        return ""

    def log_file_for_parsing(self) -> str:
        return DEFAULT_LOG_FILE

    def default_detection_model(self) -> str:
        return ""

    def required_secret_names(self, spec: WorkflowSpec) -> list[str]:
        return []
