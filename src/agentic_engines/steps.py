"""Pipeline step assembly.

Steps are built from structured parts and only turned into indented text at
the boundary, via :meth:`PipelineStep.lines`.  The text layout matches what
the workflow serializer embeds under ``steps:``::

          - name: <name>          (6 spaces)
            id: <id>              (8 spaces, header fields)
            run: |
              <command line>      (10 spaces, blank lines stay blank)
            env:
              KEY: value          (sorted by key)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from agentic_engines.constants import ACTIONS_DIR, DEFAULT_NODE_VERSION, PRIORITY_STEP_FIELDS
from agentic_engines.shell import shell_join_args

logger = logging.getLogger(__name__)

STEP_INDENT = "      "
FIELD_INDENT = "        "
BLOCK_INDENT = "          "

VALIDATE_SECRET_STEP_ID = "validate-secret"


# ── Step Value ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PipelineStep:
    """One emitted pipeline step.

    ``name`` and ``id`` are kept alongside the rendered text so callers can
    inspect a step without searching its lines.
    """

    name: str
    text: tuple[str, ...] = ()
    id: str = ""

    def lines(self) -> list[str]:
        return list(self.text)

    def __bool__(self) -> bool:
        return bool(self.text)

    def __str__(self) -> str:
        return "\n".join(self.text)

    @classmethod
    def from_lines(cls, lines: list[str], name: str = "", step_id: str = "") -> PipelineStep:
        return cls(name=name, text=tuple(lines), id=step_id)


EMPTY_STEP = PipelineStep(name="")


# ── Builder ───────────────────────────────────────────────────────────────────


@dataclass
class StepBuilder:
    """Collects the parts of a step and renders them in a fixed order.

    Order: name, id, comments, other header fields, uses/with, run, env.
    """

    name: str
    step_id: str = ""
    fields: list[tuple[str, str]] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    uses: str = ""
    with_args: dict[str, str] = field(default_factory=dict)
    command: str | None = None
    inline_run: bool = False
    env: dict[str, str] = field(default_factory=dict)

    def with_id(self, step_id: str) -> StepBuilder:
        self.step_id = step_id
        return self

    def with_field(self, key: str, value: Any) -> StepBuilder:
        self.fields.append((key, str(value)))
        return self

    def with_comments(self, lines: list[str]) -> StepBuilder:
        self.comments.extend(lines)
        return self

    def with_uses(self, action: str, args: Mapping[str, str] | None = None) -> StepBuilder:
        self.uses = action
        if args:
            self.with_args.update(args)
        return self

    def with_run(self, command: str, *, inline: bool = False) -> StepBuilder:
        self.command = command
        self.inline_run = inline
        return self

    def with_env(self, env: Mapping[str, str]) -> StepBuilder:
        self.env.update(env)
        return self

    def build(self) -> PipelineStep:
        lines = [f"{STEP_INDENT}- name: {self.name}"]
        if self.step_id:
            lines.append(f"{FIELD_INDENT}id: {self.step_id}")
        for comment in self.comments:
            lines.append(f"{FIELD_INDENT}# {comment}" if comment else f"{FIELD_INDENT}#")
        for key, value in self.fields:
            lines.append(f"{FIELD_INDENT}{key}: {value}")
        if self.uses:
            lines.append(f"{FIELD_INDENT}uses: {self.uses}")
            if self.with_args:
                lines.append(f"{FIELD_INDENT}with:")
                for key, value in self.with_args.items():
                    lines.append(f"{BLOCK_INDENT}{key}: {value}")
        if self.command is not None:
            if self.inline_run:
                lines.append(f"{FIELD_INDENT}run: {self.command}")
                lines.extend(_env_lines(self.env))
            else:
                lines = format_step_with_command_and_env(lines, self.command, self.env)
        else:
            lines.extend(_env_lines(self.env))
        return PipelineStep(name=self.name, text=tuple(lines), id=self.step_id)


def _env_lines(env: Mapping[str, str]) -> list[str]:
    if not env:
        return []
    lines = [f"{FIELD_INDENT}env:"]
    for key in sorted(env):
        lines.append(f"{BLOCK_INDENT}{key}: {env[key]}")
    return lines


def format_step_with_command_and_env(
    step_lines: list[str],
    command: str,
    env: Mapping[str, str],
) -> list[str]:
    """Append a ``run: |`` block and a sorted ``env:`` block to *step_lines*.

    Returns a new list.  Empty command lines are emitted as empty lines so
    the block scalar stays valid YAML.
    """
    logger.debug("Formatting step with command and %d environment variables", len(env))
    result = list(step_lines)
    result.append(f"{FIELD_INDENT}run: |")
    for line in command.split("\n"):
        result.append(f"{BLOCK_INDENT}{line}" if line else "")
    result.extend(_env_lines(env))
    return result


# ── Secret Validation ─────────────────────────────────────────────────────────


def generate_secret_validation_step(secret_name: str, engine_name: str, docs_url: str) -> PipelineStep:
    """Build a step that fails when a single required secret is unset."""
    command = "\n".join(
        [
            f'if [ -z "${secret_name}" ]; then',
            f'  echo "Error: {secret_name} secret is not set"',
            f'  echo "The {engine_name} engine requires the {secret_name} secret to be configured."',
            '  echo "Please configure this secret in your repository settings."',
            f'  echo "Documentation: {docs_url}"',
            "  exit 1",
            "fi",
            "",
            "# Log success in collapsible section",
            'echo "<details>"',
            'echo "<summary>Agent Environment Validation</summary>"',
            'echo ""',
            f'echo "✅ {secret_name}: Configured"',
            'echo "</details>"',
        ]
    )
    return (
        StepBuilder(f"Validate {secret_name} secret")
        .with_run(command)
        .with_env({secret_name: f"${{{{ secrets.{secret_name} }}}}"})
        .build()
    )


def generate_multi_secret_validation_step(
    secret_names: list[str],
    engine_name: str,
    docs_url: str,
) -> PipelineStep:
    """Build a step that fails unless at least one of *secret_names* is set.

    An empty name list is a wiring error in the calling engine: it is logged
    and an empty step is returned instead of raising.
    """
    if not secret_names:
        logger.error(
            "Multi-secret validation requested with no secret names for engine %s",
            engine_name,
        )
        return EMPTY_STEP

    script_args = shell_join_args([*secret_names, engine_name, docs_url])
    return (
        StepBuilder(f"Validate {' or '.join(secret_names)} secret", step_id=VALIDATE_SECRET_STEP_ID)
        .with_run(f"{ACTIONS_DIR}/validate_multi_secret.sh {script_args}", inline=True)
        .with_env({name: f"${{{{ secrets.{name} }}}}" for name in secret_names})
        .build()
    )


def has_validate_secret_step(steps: list[PipelineStep]) -> bool:
    return any(step.id == VALIDATE_SECRET_STEP_ID for step in steps)


# ── Package Installation ──────────────────────────────────────────────────────


def generate_npm_install_steps(
    package: str,
    version: str,
    step_name: str,
    cli_name: str,
    *,
    include_node_setup: bool = True,
) -> list[PipelineStep]:
    """Node.js setup (optional) followed by a global npm install of *package*."""
    logger.debug("Building npm install steps: package=%s, version=%s", package, version)
    steps: list[PipelineStep] = []
    if include_node_setup:
        steps.append(
            StepBuilder("Setup Node.js")
            .with_uses(
                "actions/setup-node@v6",
                {"node-version": f"'{DEFAULT_NODE_VERSION}'", "package-manager-cache": "false"},
            )
            .build()
        )
    steps.append(
        StepBuilder(step_name)
        .with_run(f"npm install -g --silent {package}@{version}\n{cli_name} --version")
        .build()
    )
    return steps


# ── User Steps ────────────────────────────────────────────────────────────────


def _ordered_step(step: Mapping[str, Any]) -> dict[str, Any]:
    ordered = {k: step[k] for k in PRIORITY_STEP_FIELDS if k in step}
    for key in sorted(step):
        if key not in ordered:
            ordered[key] = step[key]
    return ordered


def convert_step_to_lines(step: Mapping[str, Any]) -> PipelineStep:
    """Serialize a user-defined step mapping with PyYAML at step indentation."""
    ordered = _ordered_step(step)
    text = yaml.safe_dump(
        [ordered],
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )
    lines = []
    for line in text.strip().split("\n"):
        lines.append(f"{STEP_INDENT}{line}" if line.strip() else "")
    while lines and not lines[-1].strip():
        lines.pop()
    return PipelineStep.from_lines(lines, name=str(step.get("name", "")), step_id=str(step.get("id", "")))
