"""Secret minimization for agent step environments.

Engines assemble their step ``env:`` map from several sources (fixed vars,
engine overrides, sandbox overrides, tool secrets).  Before the map is
written out it goes through :func:`filter_env_for_secrets`, which drops any
secret reference the engine did not declare as required:

1. Values without the ``${{ secrets.`` marker are always kept.
2. A secret reference is kept when the referenced secret name or the
   variable's own key is in the allowed set.
3. References whose secret name cannot be parsed are kept as non-secrets.

The result is a new dict; the input is never mutated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from agentic_engines.constants import SECRET_REFERENCE_MARKER

logger = logging.getLogger(__name__)

# ${{ secrets.NAME }} or ${{ secrets.NAME || <fallback> }}
_SECRET_NAME_RE = re.compile(r"\$\{\{\s*secrets\.([A-Za-z_][A-Za-z0-9_]*)\s*(?:\|\||\}\})")
_ALL_SECRETS_RE = re.compile(r"secrets\.([A-Za-z_][A-Za-z0-9_]*)")


def is_secret_reference(value: str) -> bool:
    return SECRET_REFERENCE_MARKER in value


def extract_secret_name(value: str) -> str:
    """Return the first secret name referenced by *value*, or ``""``."""
    match = _SECRET_NAME_RE.search(value)
    return match.group(1) if match else ""


def extract_secrets_from_map(values: Mapping[str, str]) -> dict[str, str]:
    """Collect every secret referenced in *values*.

    Returns a mapping of secret name to its ``${{ secrets.NAME }}`` expression,
    used to expose header and tool secrets under their own names.
    """
    found: dict[str, str] = {}
    for value in values.values():
        if not isinstance(value, str) or "${{" not in value:
            continue
        for name in _ALL_SECRETS_RE.findall(value):
            found[name] = f"${{{{ secrets.{name} }}}}"
    return found


def filter_env_for_secrets(
    env: Mapping[str, str],
    allowed: Iterable[str],
) -> dict[str, str]:
    """Drop secret-valued entries that are not in *allowed*.

    Args:
        env: Environment variable name → value expression.
        allowed: Secret names and/or variable keys the engine may expose.

    Returns:
        A new dict containing only the permitted entries.
    """
    allowed_set = set(allowed)
    filtered: dict[str, str] = {}
    removed: list[str] = []

    for key, value in env.items():
        if is_secret_reference(value):
            secret_name = extract_secret_name(value)
            if secret_name and secret_name not in allowed_set and key not in allowed_set:
                logger.debug("Removing unauthorized secret from env: %s (secret: %s)", key, secret_name)
                removed.append(key)
                continue
        filtered[key] = value

    if removed:
        logger.info(
            "Secret filter: removed %d env vars: %s",
            len(removed),
            ", ".join(sorted(removed)),
        )
    logger.debug("Filtered environment variables: kept=%d, removed=%d", len(filtered), len(removed))
    return filtered
