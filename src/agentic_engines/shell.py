"""Shell quoting helpers for generated step commands.

Generated commands are embedded in ``run: |`` blocks and later executed by
bash, so arguments are quoted with POSIX single quotes only when they need
it.  Arguments that are already shell expressions (``"$VAR"``,
``"$(cat file)"``, ``${{ ... }}``) pass through untouched so the runner can
expand them.
"""

from __future__ import annotations

import re

# Characters that never need quoting in a bare word.
_SAFE_WORD = re.compile(r"^[A-Za-z0-9_@%+=:,./-]+$")
# A whole argument that is a single ${{ ... }} runner expression.
_GITHUB_EXPRESSION = re.compile(r"^\$\{\{[^}]*\}\}$")


def _is_shell_expression(arg: str) -> bool:
    """True when *arg* is one complete shell word the runner expands itself."""
    if _GITHUB_EXPRESSION.match(arg):
        return True
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in "\"'":
        return arg[0] not in arg[1:-1]
    if arg.startswith("$(") or arg.startswith("${"):
        return not any(c.isspace() for c in arg)
    return False


def shell_escape_arg(arg: str) -> str:
    """Quote a single argument for bash.

    Bare words and pre-quoted shell expressions are returned as-is.  Anything
    else is wrapped in single quotes with embedded quotes written as ``'\\''``.
    """
    if arg == "":
        return "''"
    if _SAFE_WORD.match(arg) or _is_shell_expression(arg):
        return arg
    return "'" + arg.replace("'", "'\\''") + "'"


def shell_join_args(args: list[str]) -> str:
    """Quote each argument and join them with single spaces."""
    return " ".join(shell_escape_arg(a) for a in args)


def wrap_command_in_shell(command: str) -> str:
    """Wrap *command* in ``/bin/bash -c '...'`` for execution inside a sandbox.

    Single quotes in the command are replaced with the self-closing
    ``'\\''`` sequence, so the wrapped form always has an even quote count.
    """
    escaped = command.replace("'", "'\\''")
    return f"/bin/bash -c '{escaped}'"
