"""agentic-engines CLI entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from agentic_engines.compiler import compile_workflow
from agentic_engines.config import EngineConfig, load_workflow
from agentic_engines.constants import DEFAULT_LOG_FILE
from agentic_engines.engines.catalog import DEFAULT_ENGINE_ID, default_catalog
from agentic_engines.errors import WorkflowCompileError

_CAPABILITIES = (
    ("supports_tools_allowlist", "allowlist"),
    ("supports_http_transport", "http"),
    ("supports_max_turns", "max-turns"),
    ("supports_web_fetch", "web-fetch"),
    ("supports_web_search", "web-search"),
    ("supports_firewall", "firewall"),
    ("supports_plugins", "plugins"),
)


def _list_engines() -> None:
    for engine in default_catalog().engines():
        flags = [label for attr, label in _CAPABILITIES if getattr(engine.spec, attr)]
        if engine.llm_gateway_port >= 0:
            flags.append(f"gateway:{engine.llm_gateway_port}")
        marker = " (default)" if engine.id == DEFAULT_ENGINE_ID else ""
        experimental = " [experimental]" if engine.experimental else ""
        print(f"{engine.id:<12} {engine.display_name}{marker}{experimental}")
        print(f"{'':<12} {engine.description}")
        print(f"{'':<12} {', '.join(flags) or '-'}")


def _compile(args: argparse.Namespace) -> None:
    try:
        spec = load_workflow(args.workflow)
        if args.engine:
            engine = spec.engine or EngineConfig()
            spec.engine = engine.model_copy(update={"id": args.engine})
        result = compile_workflow(spec, log_file=args.log_file)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except WorkflowCompileError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"# engine: {result.engine.id}")
    print("# installation steps")
    for step in result.installation:
        print(step)
    print("# execution steps")
    for step in result.execution:
        print(step)
    if args.mcp_config and result.mcp_config:
        print("# mcp config")
        print(result.mcp_config)


def main():
    parser = argparse.ArgumentParser(
        prog="agentic-engines",
        description="Compile agentic workflows into pipeline steps for AI coding-agent engines",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # agentic-engines engines
    subparsers.add_parser("engines", help="List the registered engines and their capabilities")

    # agentic-engines compile
    compile_parser = subparsers.add_parser("compile", help="Print the steps for a workflow file")
    compile_parser.add_argument("workflow", type=Path, help="Path to the workflow markdown file")
    compile_parser.add_argument(
        "--engine",
        help="Engine id overriding the workflow's engine setting",
    )
    compile_parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Agent output log path (default: {DEFAULT_LOG_FILE})",
    )
    compile_parser.add_argument(
        "--mcp-config",
        action="store_true",
        help="Also print the MCP server configuration script",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "engines":
        _list_engines()
        return

    _compile(args)


if __name__ == "__main__":
    main()
