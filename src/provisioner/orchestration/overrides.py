"""Command-line ``KEY=VALUE`` overrides.

Every token containing ``=`` is split on the first ``=`` and exported into
the environment before configuration and state are loaded, so an override
wins over both the state file and the defaults. Tokens without ``=`` are
ignored with a warning.
"""

from __future__ import annotations

import os
from typing import MutableMapping, Optional, Sequence

import structlog


logger = structlog.get_logger()


def parse_overrides(tokens: Sequence[str]) -> tuple[dict[str, str], list[str]]:
    """Split tokens into (overrides, ignored tokens)."""
    overrides: dict[str, str] = {}
    ignored: list[str] = []
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep or not key:
            ignored.append(token)
            continue
        overrides[key] = value
    return overrides, ignored


def apply_overrides(
    tokens: Sequence[str],
    environ: Optional[MutableMapping[str, str]] = None,
) -> dict[str, str]:
    """Export ``KEY=VALUE`` tokens into ``environ`` (default: os.environ).

    Returns:
        The overrides that were applied.
    """
    target = os.environ if environ is None else environ
    overrides, ignored = parse_overrides(tokens)
    for token in ignored:
        logger.warning("override_ignored", token=token)
    for key, value in overrides.items():
        target[key] = value
        logger.info("override_applied", key=key)
    return overrides
