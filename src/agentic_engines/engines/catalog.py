"""Engine catalog: identifier → engine instance.

A :class:`Catalog` is an ordinary object; tests build their own.  The
process-wide catalog of built-in engines comes from :func:`default_catalog`,
which constructs it exactly once.
"""

from __future__ import annotations

import logging
import threading

from agentic_engines.engines.base import CodingAgentEngine
from agentic_engines.engines.claude import ClaudeEngine
from agentic_engines.engines.codex import CodexEngine
from agentic_engines.engines.copilot import CopilotEngine
from agentic_engines.engines.copilot_sdk import CopilotSDKEngine
from agentic_engines.engines.custom import CustomEngine
from agentic_engines.engines.gemini import GeminiEngine
from agentic_engines.errors import UnknownEngineError

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_ID = "copilot"


class Catalog:
    """Registry of coding-agent engines.

    Registration is expected at startup; lookups and enumeration are safe
    from any thread.

    Usage::

        catalog = Catalog()
        catalog.register(MyEngine())
        engine = catalog.resolve("my-engine")
    """

    def __init__(self, *, builtin: bool = True) -> None:
        self._engines: dict[str, CodingAgentEngine] = {}
        self._lock = threading.RLock()
        if builtin:
            self._register_builtin_engines()

    # ── Registration ──────────────────────────────────────────────────────────

    def register(self, engine: CodingAgentEngine) -> None:
        """Add *engine*; an engine with the same id is replaced."""
        with self._lock:
            if engine.id in self._engines:
                logger.warning("Replacing registered engine: %s", engine.id)
            self._engines[engine.id] = engine
        logger.debug("Registered engine: %s", engine.id)

    def _register_builtin_engines(self) -> None:
        for engine in (
            ClaudeEngine(),
            CodexEngine(),
            CopilotEngine(),
            CopilotSDKEngine(),
            GeminiEngine(),
            CustomEngine(),
        ):
            self.register(engine)

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get(self, engine_id: str) -> CodingAgentEngine:
        with self._lock:
            engine = self._engines.get(engine_id)
        if engine is None:
            raise UnknownEngineError(f"unknown engine: {engine_id}", engine_id)
        return engine

    def get_by_prefix(self, prefix: str) -> CodingAgentEngine:
        """Engine whose id is a prefix of *prefix*, e.g. ``codex`` for ``codex-experimental``.

        When several ids match, the longest wins, so ``copilot-sdk-beta``
        resolves to ``copilot-sdk`` rather than ``copilot``.
        """
        with self._lock:
            matches = [e for eid, e in self._engines.items() if prefix.startswith(eid)]
        if not matches:
            raise UnknownEngineError(f"no engine found matching prefix: {prefix}", prefix)
        return max(matches, key=lambda e: len(e.id))

    def resolve(self, setting: str) -> CodingAgentEngine:
        """Engine for an ``engine:`` setting: empty → default, then exact, then prefix."""
        if not setting:
            return self.default()
        with self._lock:
            engine = self._engines.get(setting)
        if engine is not None:
            return engine
        engine = self.get_by_prefix(setting)
        logger.debug("Resolved engine %r by prefix to %s", setting, engine.id)
        return engine

    def default(self) -> CodingAgentEngine:
        return self.get(DEFAULT_ENGINE_ID)

    def is_valid(self, engine_id: str) -> bool:
        with self._lock:
            return engine_id in self._engines

    # ── Enumeration ───────────────────────────────────────────────────────────

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._engines)

    def engines(self) -> list[CodingAgentEngine]:
        with self._lock:
            return [self._engines[eid] for eid in sorted(self._engines)]

    def __contains__(self, engine_id: object) -> bool:
        with self._lock:
            return engine_id in self._engines

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)


# ── Process-wide Catalog ──────────────────────────────────────────────────────

_default_catalog: Catalog | None = None
_default_lock = threading.Lock()


def default_catalog() -> Catalog:
    """The built-in catalog, created on first use."""
    global _default_catalog
    if _default_catalog is None:
        with _default_lock:
            if _default_catalog is None:
                _default_catalog = Catalog()
                logger.info("Initialized engine catalog: %s", ", ".join(_default_catalog.ids()))
    return _default_catalog
