"""Workflow loading for agentic engine compilation.

Reads a markdown workflow file with YAML frontmatter and validates the
frontmatter into a :class:`WorkflowSpec`.  Frontmatter keys are hyphenated
(``max-turns``, ``safe-outputs``); the models accept both the hyphenated
alias and the Python field name.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from agentic_engines.errors import WorkflowConfigError
from agentic_engines.sandbox.config import NetworkPermissions, SandboxConfig

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_ENV = "AGENTIC_ENGINES_DEFAULT_ENGINE"


# ── Frontmatter Models ───────────────────────────────────────────────────────


class EngineConfig(BaseModel):
    """The ``engine:`` section: backend selection plus per-engine overrides."""

    id: str = ""
    model: str = ""
    version: str = ""
    max_turns: str = Field("", alias="max-turns")
    command: str = ""
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    steps: list[dict[str, Any]] = Field(default_factory=list)
    agent: str = ""  # Copilot custom agent identifier

    model_config = {"populate_by_name": True}

    # `engine: claude` shorthand
    @model_validator(mode="before")
    @classmethod
    def _expand_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data

    @field_validator("max_turns", mode="before")
    @classmethod
    def _coerce_max_turns(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, v: Any) -> str:
        # YAML reads `version: 1.2` as a float
        return "" if v is None else str(v)

    @field_validator("env", mode="before")
    @classmethod
    def _coerce_env(cls, v: Any) -> dict[str, str]:
        if not v:
            return {}
        return {str(k): str(val) for k, val in v.items()}


class UploadAssetsConfig(BaseModel):
    branch_name: str = Field("assets/${{ github.workflow }}", alias="branch")
    max_size_kb: int = Field(10240, alias="max-size")
    allowed_exts: list[str] = Field(
        default_factory=lambda: [".png", ".jpg", ".jpeg"], alias="allowed-exts"
    )

    model_config = {"populate_by_name": True}


class SafeOutputsConfig(BaseModel):
    """The ``safe-outputs:`` section.

    Only the parts the engine steps depend on are modelled; the individual
    output types are kept as an opaque mapping.
    """

    staged: bool = False
    upload_assets: UploadAssetsConfig | None = Field(None, alias="upload-assets")
    jobs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _collect_outputs(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            return data
        known = {"staged", "upload-assets", "upload_assets", "jobs", "outputs"}
        outputs = {k: v for k, v in data.items() if k not in known}
        result = {k: v for k, v in data.items() if k in known}
        if result.get("upload-assets", "") is None:
            result["upload-assets"] = {}
        result.setdefault("outputs", {}).update(outputs)
        return result


class WorkflowSpec(BaseModel):
    """A resolved workflow, the input of every engine.

    Engines read this and never modify it.  The single exception is the
    firewall auto-enable write-back applied by
    :func:`agentic_engines.compiler.compile_workflow`.
    """

    name: str = "workflow"
    engine: EngineConfig | None = None
    tools: dict[str, Any] = Field(default_factory=dict)
    network: NetworkPermissions | None = None
    sandbox: SandboxConfig | None = None
    safe_outputs: SafeOutputsConfig | None = Field(None, alias="safe-outputs")
    safe_inputs: dict[str, Any] = Field(default_factory=dict, alias="safe-inputs")
    runtimes: dict[str, Any] = Field(default_factory=dict)
    timeout_minutes: int | None = Field(None, alias="timeout-minutes")
    github_token: str = Field("", alias="github-token")
    agent_file: str = Field("", alias="agent-file")
    plugins: list[str] = Field(default_factory=list)
    trial_mode: bool = Field(False, alias="trial-mode")
    trial_logical_repo: str = Field("", alias="trial-logical-repo")
    markdown: str = ""

    # tools.timeout / tools.startup-timeout are lifted out of the tool map
    tools_timeout: int = 0
    tools_startup_timeout: int = 0

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _normalize_frontmatter(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if isinstance(data.get("network"), str):
            data["network"] = {"allowed": [data["network"]]}
        tools = data.get("tools")
        if isinstance(tools, dict):
            tools = dict(tools)
            if "timeout" in tools:
                data.setdefault("tools_timeout", tools.pop("timeout"))
            if "startup-timeout" in tools:
                data.setdefault("tools_startup_timeout", tools.pop("startup-timeout"))
            data["tools"] = tools
        elif tools is None and "tools" in data:
            data["tools"] = {}
        # `safe-outputs:` with an empty body still enables safe outputs
        if "safe-outputs" in data and data["safe-outputs"] is None:
            data["safe-outputs"] = {}
        return data

    @property
    def engine_id(self) -> str:
        return self.engine.id if self.engine else ""

    @property
    def model_configured(self) -> bool:
        return self.engine is not None and self.engine.model != ""

    @property
    def is_detection_job(self) -> bool:
        """Detection jobs are the ones without safe-output requirements."""
        return self.safe_outputs is None


# ── Loader ────────────────────────────────────────────────────────────────────


def _split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML frontmatter from markdown body.

    Returns (frontmatter_dict, body_markdown).
    If no frontmatter found, returns ({}, full_content).

    Raises:
        WorkflowConfigError: If the frontmatter is not valid YAML or is not
            a mapping.
    """
    lines = content.split("\n")
    start_idx = None
    end_idx = None

    for i, line in enumerate(lines):
        if line.strip() == "---":
            if start_idx is None:
                start_idx = i
            else:
                end_idx = i
                break
        elif start_idx is None and line.strip():
            # Content before the opening fence means there is no frontmatter
            return {}, content

    if start_idx is None or end_idx is None:
        return {}, content

    frontmatter_text = "\n".join(lines[start_idx + 1 : end_idx])
    body = "\n".join(lines[end_idx + 1 :]).strip()

    try:
        frontmatter = yaml.safe_load(frontmatter_text) or {}
    except yaml.YAMLError as e:
        raise WorkflowConfigError(f"Invalid YAML frontmatter: {e}") from e

    if not isinstance(frontmatter, dict):
        raise WorkflowConfigError("Frontmatter must be a YAML mapping")

    return frontmatter, body


def parse_workflow(content: str, name: str = "workflow") -> WorkflowSpec:
    """Parse workflow markdown into a validated :class:`WorkflowSpec`.

    The ``engine`` field falls back to ``$AGENTIC_ENGINES_DEFAULT_ENGINE``
    when the frontmatter does not name one.
    """
    frontmatter, body = _split_frontmatter(content)

    data: dict[str, Any] = dict(frontmatter)
    data.setdefault("name", name)
    data["markdown"] = body

    env_engine = os.environ.get(DEFAULT_ENGINE_ENV)
    if env_engine and not data.get("engine"):
        logger.debug("Using engine from %s: %s", DEFAULT_ENGINE_ENV, env_engine)
        data["engine"] = env_engine

    try:
        return WorkflowSpec.model_validate(data)
    except ValidationError as e:
        raise WorkflowConfigError(f"Invalid workflow '{name}': {e}") from e


def load_workflow(path: Path) -> WorkflowSpec:
    """Load a workflow markdown file.

    Args:
        path: Path to the ``.md`` workflow file.

    Returns:
        Validated WorkflowSpec named after the file stem.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        WorkflowConfigError: If the frontmatter fails validation.
    """
    if not path.exists():
        raise FileNotFoundError(f"Workflow not found: {path}")

    spec = parse_workflow(path.read_text(), name=path.stem)
    logger.info("Loaded workflow %s (engine=%s)", spec.name, spec.engine_id or "<default>")
    return spec
