"""Sea-time detection thresholds loaded from config/sea_time.yaml.

Every threshold has a default, so a missing file or section falls back to the
long-standing behaviour (2 kn moving speed, 1–3 h windows, 0.1° displacement,
4 underway hours over a 24 h lookback).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path

import yaml

from seatime.config import settings

logger = logging.getLogger(__name__)

# yaml section -> {yaml key: SeaTimePolicy field}
_SECTION_FIELDS: dict[str, dict[str, str]] = {
    "adapter": {"moving_speed_knots": "moving_speed_knots"},
    "analysis": {
        "lookback_hours": "lookback_hours",
        "window_min_hours": "window_min_hours",
        "window_max_hours": "window_max_hours",
        "displacement_degrees": "displacement_degrees",
    },
    "reconciliation": {"min_underway_hours": "min_underway_hours"},
    "manual_check": {
        "lookback_hours": "manual_lookback_hours",
        "min_checks": "manual_min_checks",
    },
}


@dataclass(frozen=True)
class SeaTimePolicy:
    moving_speed_knots: float = 2.0
    lookback_hours: float = 24.0
    window_min_hours: float = 1.0
    window_max_hours: float = 3.0
    displacement_degrees: float = 0.1
    min_underway_hours: float = 4.0
    manual_lookback_hours: float = 4.0
    manual_min_checks: int = 2

    def __post_init__(self) -> None:
        if self.window_min_hours > self.window_max_hours:
            raise ValueError(
                f"window_min_hours ({self.window_min_hours}) must be <= "
                f"window_max_hours ({self.window_max_hours})"
            )
        if self.lookback_hours <= 0 or self.manual_lookback_hours <= 0:
            raise ValueError("lookback hours must be positive")
        if self.manual_min_checks < 2:
            raise ValueError("manual_min_checks must be at least 2")


DEFAULT_POLICY = SeaTimePolicy()


def resolve_config_path(path: str | Path) -> Path:
    """Resolve a relative config path against the repo root (the directory holding backend/)."""
    p = Path(path)
    if p.is_absolute():
        return p
    repo_root = Path(__file__).resolve().parents[3]
    candidate = repo_root / p
    return candidate if candidate.exists() else p


def parse_policy(raw: dict | None) -> SeaTimePolicy:
    """Build a policy from parsed YAML; unknown keys are logged and ignored."""
    if not raw:
        return DEFAULT_POLICY

    known = {f.name for f in fields(SeaTimePolicy)}
    values: dict = {}
    for section, mapping in raw.items():
        if section not in _SECTION_FIELDS:
            logger.warning("Unknown section '%s' in sea-time policy config: ignored", section)
            continue
        for key, value in (mapping or {}).items():
            field_name = _SECTION_FIELDS[section].get(key)
            if field_name is None or field_name not in known:
                logger.warning("Unknown key '%s.%s' in sea-time policy config: ignored", section, key)
                continue
            values[field_name] = value

    if "manual_min_checks" in values:
        values["manual_min_checks"] = int(values["manual_min_checks"])
    for name, value in list(values.items()):
        if name != "manual_min_checks":
            values[name] = float(value)
    return SeaTimePolicy(**values)


@lru_cache(maxsize=1)
def load_policy(path: str | None = None) -> SeaTimePolicy:
    """Load the policy once per process; falls back to defaults when the file is absent."""
    config_path = resolve_config_path(path or settings.SEA_TIME_POLICY_CONFIG)
    if not config_path.exists():
        logger.warning("Sea-time policy config not found at %s: using defaults", config_path)
        return DEFAULT_POLICY
    with open(config_path) as f:
        raw = yaml.safe_load(f)
    policy = parse_policy(raw)
    logger.info("Loaded sea-time policy from %s: %s", config_path, policy)
    return policy
