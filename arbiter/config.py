"""
arbiter.config — YAML Configuration Loader
===========================================

This module reads ``config.yaml`` for **platform-wide** settings that the
decision engine needs at construction time (feature switches, the default
edit window, currency naming).  Per-community rules and settings live in
the ``communities`` table and are merged with code defaults on every read.

Usage::

    from arbiter.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.platform_name)            # "Arbiter Dev"
    print(cfg.enable_comment_voting)    # False
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from arbiter.constants import DEFAULT_CURRENCY_LABEL, DEFAULT_EDIT_WINDOW_MINUTES


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ArbiterConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Injected into :class:`~arbiter.engine.context.ContextBuilder`; the engine
    never reads ambient process state.
    """

    # Identity
    platform_name: str

    # Feature switches
    enable_comment_voting: bool = False

    # Fallbacks for communities that do not configure their own values
    edit_window_minutes: int = DEFAULT_EDIT_WINDOW_MINUTES
    currency_label: str = DEFAULT_CURRENCY_LABEL


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ArbiterConfig:
    """Read *path* and return an :class:`ArbiterConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ArbiterConfig(
        platform_name=raw["platform_name"],
        enable_comment_voting=bool(raw.get("enable_comment_voting", False)),
        edit_window_minutes=int(
            raw.get("edit_window_minutes", DEFAULT_EDIT_WINDOW_MINUTES)
        ),
        currency_label=raw.get("currency_label") or DEFAULT_CURRENCY_LABEL,
    )
