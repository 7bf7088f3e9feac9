"""
questboard.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for infrastructure settings (community identity,
dashboard port) and the lifecycle tuning knobs used by the attention
engine and squad health derivation.  Secrets (``DATABASE_URL``,
``JWT_SECRET``) stay in the environment.

Usage::

    from questboard.config import load_config

    cfg = load_config()                    # reads ./config.yaml by default
    print(cfg.lifecycle.warmup_stall_hours)  # 24.0
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Lifecycle tuning: thresholds the engine would otherwise hardcode
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LifecycleTuning:
    """Named thresholds for attention flags and squad health.

    All values have production defaults; ``config.yaml`` may override any
    subset under the ``lifecycle:`` key.
    """

    # Attention engine
    warmup_stall_hours: float = 24.0
    squad_ready_ratio: float = 0.8      # share of target squad size that makes an instance squad-ready
    underfilled_window_hours: float = 2.0
    underfilled_min_signups: int = 3
    starting_soon_hours: float = 2.0
    default_target_squad_size: int = 6

    # Squad health
    health_healthy_ratio: float = 0.8
    health_warning_ratio: float = 0.5

    # Instance start instants are local to this zone
    event_timezone: str = "UTC"


DEFAULT_TUNING = LifecycleTuning()


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuestboardConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Dashboard
    dashboard_port: int

    # Lifecycle
    lifecycle: LifecycleTuning = field(default_factory=LifecycleTuning)


def _load_tuning(raw: dict | None) -> LifecycleTuning:
    """Build :class:`LifecycleTuning` from the optional ``lifecycle`` mapping.

    Unknown keys are rejected so a typo never silently falls back to a
    default threshold.
    """
    if not raw:
        return LifecycleTuning()
    known = {f.name for f in fields(LifecycleTuning)}
    unknown = set(raw) - known
    if unknown:
        raise KeyError(f"Unknown lifecycle setting(s): {sorted(unknown)}")

    values = {}
    for key, value in raw.items():
        default = getattr(DEFAULT_TUNING, key)
        values[key] = type(default)(value)
    return LifecycleTuning(**values)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> QuestboardConfig:
    """Read *path* and return a :class:`QuestboardConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing or a lifecycle key is unknown.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return QuestboardConfig(
        community_name=raw["community_name"],
        dashboard_port=int(raw["dashboard_port"]),
        lifecycle=_load_tuning(raw.get("lifecycle")),
    )
