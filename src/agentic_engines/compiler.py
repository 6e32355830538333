"""Compile a :class:`WorkflowSpec` into the agent job's pipeline steps.

This is the only place that writes into the WorkflowSpec: the firewall auto-enable
decision is made once, applied to ``spec.network`` (filled with the
``defaults`` ecosystem when the frontmatter has none), and every engine after
that only reads :func:`~agentic_engines.sandbox.firewall.is_firewall_enabled`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agentic_engines import tools as tool_queries
from agentic_engines.constants import DEFAULT_LOG_FILE
from agentic_engines.engines.catalog import Catalog, default_catalog
from agentic_engines.engines.mcp import mcp_tool_names
from agentic_engines.sandbox.config import NetworkPermissions
from agentic_engines.sandbox.firewall import apply_firewall_decision, decide_firewall_auto_enable

if TYPE_CHECKING:
    from agentic_engines.config import WorkflowSpec
    from agentic_engines.engines.base import CodingAgentEngine
    from agentic_engines.steps import PipelineStep

logger = logging.getLogger(__name__)


@dataclass
class CompiledSteps:
    """Steps produced for one workflow by one engine."""

    engine: CodingAgentEngine
    installation: list[PipelineStep] = field(default_factory=list)
    execution: list[PipelineStep] = field(default_factory=list)
    mcp_config: str = ""  # run: text writing the MCP config, "" without MCP servers

    def lines(self) -> list[str]:
        """Installation then execution step lines, as they appear in the job."""
        out: list[str] = []
        for step in [*self.installation, *self.execution]:
            out.extend(step.lines())
        return out


def compile_workflow(
    spec: WorkflowSpec,
    catalog: Catalog | None = None,
    log_file: str = DEFAULT_LOG_FILE,
) -> CompiledSteps:
    """Resolve the engine, settle the firewall, then build the steps.

    Raises:
        UnknownEngineError: If ``engine:`` names no registered engine.
    """
    if catalog is None:
        catalog = default_catalog()
    engine = catalog.resolve(spec.engine_id)
    if engine.experimental:
        logger.warning("Using experimental engine: %s", engine.id)

    if spec.network is None:
        # Missing permissions mean the defaults ecosystem.
        spec.network = NetworkPermissions(allowed=["defaults"])
        logger.debug("No network permissions declared, using defaults")
    decision = decide_firewall_auto_enable(engine.spec, spec.network, spec.sandbox)
    apply_firewall_decision(spec.network, decision)

    result = CompiledSteps(
        engine=engine,
        installation=engine.installation_steps(spec),
        execution=engine.execution_steps(spec, log_file),
    )
    if tool_queries.has_mcp_servers(spec):
        result.mcp_config = engine.render_mcp_config(spec.tools, mcp_tool_names(spec), spec)

    logger.info(
        "Compiled workflow %s with engine %s: %d installation steps, %d execution steps",
        spec.name,
        engine.id,
        len(result.installation),
        len(result.execution),
    )
    return result
