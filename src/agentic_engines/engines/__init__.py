"""Coding-agent engines and the catalog that holds them.

Key exports:
    Catalog, default_catalog: engine lookup by identifier
    BaseEngine, EngineSpec: base class and capability flags
    Engine, CapabilityProvider, WorkflowExecutor, MCPConfigProvider,
    LogParser, SecurityProvider, CodingAgentEngine: capability roles
    LogMetrics: parsed agent log metrics
"""

from agentic_engines.engines.base import (
    BaseEngine,
    CapabilityProvider,
    CodingAgentEngine,
    Engine,
    EngineSpec,
    LogParser,
    MCPConfigProvider,
    SecurityProvider,
    WorkflowExecutor,
)
from agentic_engines.engines.catalog import DEFAULT_ENGINE_ID, Catalog, default_catalog
from agentic_engines.engines.claude import ClaudeEngine
from agentic_engines.engines.codex import CodexEngine
from agentic_engines.engines.copilot import CopilotEngine
from agentic_engines.engines.copilot_sdk import CopilotSDKEngine
from agentic_engines.engines.custom import CustomEngine
from agentic_engines.engines.gemini import GeminiEngine
from agentic_engines.engines.logs import LogMetrics, ToolCallInfo

__all__ = [
    "DEFAULT_ENGINE_ID",
    "BaseEngine",
    "CapabilityProvider",
    "Catalog",
    "ClaudeEngine",
    "CodexEngine",
    "CodingAgentEngine",
    "CopilotEngine",
    "CopilotSDKEngine",
    "CustomEngine",
    "Engine",
    "EngineSpec",
    "GeminiEngine",
    "LogMetrics",
    "LogParser",
    "MCPConfigProvider",
    "SecurityProvider",
    "ToolCallInfo",
    "WorkflowExecutor",
    "default_catalog",
]
