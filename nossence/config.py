"""
nossence.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for the soft settings of the bot (relays, batch
sizing, feed window).  Secrets (``DATABASE_URL``, ``BOT_SECRET_KEY``)
never live here; they come from the environment / ``.env``.

Usage::

    from nossence.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.relays)            # ["wss://relay.damus.io", ...]
    print(cfg.batch_size)        # 100
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NossenceConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Transport
    relays: tuple[str, ...]
    transport: str  # "package.module:factory", called with the relay list

    # Delivery
    batch_size: int = 100
    feed_limit: int = 10
    feed_lookback_hours: int = 24
    min_delivery_gap_minutes: int = 50

    # Bounds every relay / store call made by the bot loops
    call_timeout_seconds: float = 30.0

    # Whether the bot also ingests content events into the graph
    ingest_enabled: bool = True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> NossenceConfig:
    """Read *path* and return a :class:`NossenceConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key (``relays``, ``transport``) is missing.
    ValueError
        If ``relays`` is empty or a sizing value is not positive.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    relays = tuple(str(r) for r in raw["relays"])
    if not relays:
        raise ValueError("config.yaml: 'relays' must list at least one relay URL")

    cfg = NossenceConfig(
        relays=relays,
        transport=str(raw["transport"]),
        batch_size=int(raw.get("batch_size", 100)),
        feed_limit=int(raw.get("feed_limit", 10)),
        feed_lookback_hours=int(raw.get("feed_lookback_hours", 24)),
        min_delivery_gap_minutes=int(raw.get("min_delivery_gap_minutes", 50)),
        call_timeout_seconds=float(raw.get("call_timeout_seconds", 30.0)),
        ingest_enabled=bool(raw.get("ingest_enabled", True)),
    )
    for name in ("batch_size", "feed_limit", "feed_lookback_hours"):
        if getattr(cfg, name) <= 0:
            raise ValueError(f"config.yaml: '{name}' must be positive")
    return cfg
