"""Shared fixtures for agentic-engines tests."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from agentic_engines.config import WorkflowSpec
from agentic_engines.engines.catalog import Catalog


@pytest.fixture
def make_spec() -> Callable[..., WorkflowSpec]:
    """Build a WorkflowSpec from frontmatter-style keys.

    Usage::

        spec = make_spec(engine="claude", network={"allowed": ["example.com"]})
    """

    def _make(**frontmatter: Any) -> WorkflowSpec:
        data = {k.replace("_", "-"): v for k, v in frontmatter.items()}
        data.setdefault("name", "test-workflow")
        return WorkflowSpec.model_validate(data)

    return _make


@pytest.fixture
def catalog() -> Catalog:
    return Catalog()
