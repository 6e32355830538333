"""Log metric extraction for the agent step output.

Each engine writes a different log format:

- Claude: stream-json (one JSON object per line) or a JSON array
- Codex: timestamped text lines (``[ts] tool server.fn({...})``)
- Copilot: ``[DEBUG]`` lines with embedded, possibly multi-line, JSON
- Gemini: a single JSON document with a ``stats`` section

The parsers are total: unparseable input yields empty metrics.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_ERROR_RE = re.compile(r"\b(ERROR|Error:|error:)")
_WARNING_RE = re.compile(r"\b(WARN|WARNING|Warning:|warning:)\b")


@dataclass
class ToolCallInfo:
    name: str
    call_count: int = 0
    max_input_size: int = 0
    max_output_size: int = 0


@dataclass
class LogMetrics:
    token_usage: int = 0
    estimated_cost: float = 0.0
    turns: int = 0
    tool_calls: list[ToolCallInfo] = field(default_factory=list)
    tool_sequences: list[list[str]] = field(default_factory=list)
    errors: int = 0
    warnings: int = 0

    @property
    def is_empty(self) -> bool:
        return self.turns == 0 and self.token_usage == 0 and self.estimated_cost == 0

    def tool(self, name: str) -> ToolCallInfo | None:
        for info in self.tool_calls:
            if info.name == name:
                return info
        return None

    def record_tool_call(self, name: str, input_size: int = 0) -> ToolCallInfo:
        info = self.tool(name)
        if info is None:
            info = ToolCallInfo(name=name)
            self.tool_calls.append(info)
        info.call_count += 1
        info.max_input_size = max(info.max_input_size, input_size)
        return info


def count_errors_and_warnings(text: str, metrics: LogMetrics) -> None:
    for line in text.splitlines():
        if _ERROR_RE.search(line):
            metrics.errors += 1
        elif _WARNING_RE.search(line):
            metrics.warnings += 1


# ── Claude ────────────────────────────────────────────────────────────────────


def _claude_entries(text: str) -> list[dict[str, Any]]:
    stripped = text.strip()
    if stripped.startswith("["):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return [e for e in data if isinstance(e, dict)]
    entries = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


def _usage_tokens(usage: dict[str, Any]) -> int:
    total = 0
    for key in ("input_tokens", "output_tokens", "cache_creation_input_tokens", "cache_read_input_tokens"):
        value = usage.get(key)
        if isinstance(value, int):
            total += value
    return total


def parse_claude_log(text: str, verbose: bool = False) -> LogMetrics:
    metrics = LogMetrics()
    tool_names_by_id: dict[str, str] = {}
    sequence: list[str] = []

    for entry in _claude_entries(text):
        kind = entry.get("type")
        if kind == "result":
            if isinstance(entry.get("num_turns"), int):
                metrics.turns = entry["num_turns"]
            if isinstance(entry.get("total_cost_usd"), (int, float)):
                metrics.estimated_cost = float(entry["total_cost_usd"])
            if isinstance(entry.get("usage"), dict):
                metrics.token_usage = _usage_tokens(entry["usage"])
            if entry.get("is_error"):
                metrics.errors += 1
            continue

        content = (entry.get("message") or {}).get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, dict):
                continue
            if kind == "assistant" and item.get("type") == "tool_use":
                name = str(item.get("name", "unknown"))
                tool_names_by_id[str(item.get("id", ""))] = name
                metrics.record_tool_call(name, len(json.dumps(item.get("input", {}))))
                sequence.append(name)
            elif kind == "user" and item.get("type") == "tool_result":
                name = tool_names_by_id.get(str(item.get("tool_use_id", "")))
                info = metrics.tool(name) if name else None
                if info is not None:
                    info.max_output_size = max(info.max_output_size, len(json.dumps(item.get("content", ""))))
                if item.get("is_error"):
                    metrics.errors += 1

    if sequence:
        metrics.tool_sequences.append(sequence)
    if verbose:
        logger.debug(
            "Claude log: turns=%d, tokens=%d, tools=%d",
            metrics.turns,
            metrics.token_usage,
            len(metrics.tool_calls),
        )
    return metrics


# ── Codex ─────────────────────────────────────────────────────────────────────

_CODEX_TOOL_RE = re.compile(r"\] tool ([^(]+)\((.*)\)\s*$")
_CODEX_RESULT_RE = re.compile(r"\] ([^(\s]+)\(.*\) (?:success|failure|failed) in \d+")
_CODEX_TOKENS_RE = re.compile(r"tokens used[:\s]+([\d,]+)", re.IGNORECASE)
_CODEX_TOTAL_TOKENS_RE = re.compile(r"total_tokens:\s*(\d+)")
_CODEX_THINKING_RE = re.compile(r"\] thinking\s*$")
_TIMESTAMP_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T")


def _codex_tool_name(raw: str) -> str:
    return raw.strip().replace(".", "_")


def _result_text_size(block: str) -> int:
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return len(block.strip())
    if isinstance(data, dict) and isinstance(data.get("content"), list):
        return sum(len(c.get("text", "")) for c in data["content"] if isinstance(c, dict))
    return len(block.strip())


def parse_codex_log(text: str, verbose: bool = False) -> LogMetrics:
    metrics = LogMetrics()
    sequence: list[str] = []
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        if _CODEX_THINKING_RE.search(line):
            metrics.turns += 1
        elif match := _CODEX_TOOL_RE.search(line):
            name = _codex_tool_name(match.group(1))
            metrics.record_tool_call(name, len(match.group(2)))
            sequence.append(name)
        elif match := _CODEX_RESULT_RE.search(line):
            name = _codex_tool_name(match.group(1))
            block: list[str] = []
            j = i + 1
            while j < len(lines) and not _TIMESTAMP_RE.match(lines[j]):
                block.append(lines[j])
                j += 1
            info = metrics.tool(name)
            if info is not None and block:
                info.max_output_size = max(info.max_output_size, _result_text_size("\n".join(block)))
            i = j
            continue
        elif match := _CODEX_TOKENS_RE.search(line):
            metrics.token_usage += int(match.group(1).replace(",", ""))
        elif match := _CODEX_TOTAL_TOKENS_RE.search(line):
            metrics.token_usage += int(match.group(1))
        i += 1

    if sequence and metrics.turns == 0:
        metrics.turns = 1
    if sequence:
        metrics.tool_sequences.append(sequence)
    count_errors_and_warnings(text, metrics)
    if verbose:
        logger.debug("Codex log: turns=%d, tokens=%d", metrics.turns, metrics.token_usage)
    return metrics


# ── Copilot ───────────────────────────────────────────────────────────────────

_DEBUG_PREFIX_RE = re.compile(r"^\S+\s+\[DEBUG\]\s?")


def _json_blocks(lines: list[str]) -> list[dict[str, Any]]:
    """Brace-balanced JSON objects found in *lines*."""
    blocks: list[dict[str, Any]] = []
    buf: list[str] = []
    depth = 0
    for line in lines:
        if not buf and not line.lstrip().startswith("{"):
            continue
        buf.append(line)
        depth += line.count("{") - line.count("}")
        if depth <= 0:
            try:
                data = json.loads("\n".join(buf))
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict):
                blocks.append(data)
            buf, depth = [], 0
    return blocks


def parse_copilot_log(text: str, verbose: bool = False) -> LogMetrics:
    metrics = LogMetrics()
    sequence: list[str] = []
    lines = [_DEBUG_PREFIX_RE.sub("", line) for line in text.splitlines()]
    for block in _json_blocks(lines):
        usage = block.get("usage")
        if isinstance(usage, dict):
            for key in ("prompt_tokens", "completion_tokens"):
                if isinstance(usage.get(key), int):
                    metrics.token_usage += usage[key]
        choices = block.get("choices")
        if not isinstance(choices, list):
            continue
        metrics.turns += 1
        for choice in choices:
            message = choice.get("message") if isinstance(choice, dict) else None
            for call in (message or {}).get("tool_calls") or []:
                fn = call.get("function") or {}
                name = str(fn.get("name", "unknown"))
                metrics.record_tool_call(name, len(str(fn.get("arguments", ""))))
                sequence.append(name)
    if sequence:
        metrics.tool_sequences.append(sequence)
    count_errors_and_warnings(text, metrics)
    if verbose:
        logger.debug("Copilot log: turns=%d, tokens=%d", metrics.turns, metrics.token_usage)
    return metrics


# ── Gemini ────────────────────────────────────────────────────────────────────


def parse_gemini_log(text: str, verbose: bool = False) -> LogMetrics:
    metrics = LogMetrics()
    documents = _json_blocks(text.splitlines())
    for doc in documents:
        stats = doc.get("stats")
        if isinstance(stats, dict):
            for model in (stats.get("models") or {}).values():
                tokens = (model or {}).get("tokens") or {}
                if isinstance(tokens.get("total"), int):
                    metrics.token_usage += tokens["total"]
                api = (model or {}).get("api") or {}
                if isinstance(api.get("totalRequests"), int):
                    metrics.turns += api["totalRequests"]
            for name, tool in ((stats.get("tools") or {}).get("byName") or {}).items():
                info = metrics.tool(name)
                if info is None:
                    info = ToolCallInfo(name=name)
                    metrics.tool_calls.append(info)
                info.call_count += int((tool or {}).get("count", 0))
        if doc.get("error"):
            metrics.errors += 1
    if verbose:
        logger.debug("Gemini log: turns=%d, tokens=%d", metrics.turns, metrics.token_usage)
    return metrics
