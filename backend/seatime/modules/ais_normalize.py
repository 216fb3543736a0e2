"""Normalization of MyShipTracking vessel payloads.

The provider's JSON is loosely typed: a field can sit at the top level or
under ``vessel``/``position``/``navigation``/``voyage``, and names vary between
endpoints (``lat``/``latitude``, ``vessel_type``/``ship_type``). Every lookup
probes the flat payload first, then each sub-object in that fixed order, and
within one location tries the canonical name before its aliases. The first
present value wins, so the same payload always normalizes the same way.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

NESTED_SECTIONS: tuple[str, ...] = ("vessel", "position", "navigation", "voyage")

# Canonical name first, then aliases
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("vessel_name", "name", "shipname"),
    "mmsi": ("mmsi",),
    "imo": ("imo",),
    "speed_knots": ("speed", "speed_knots", "sog"),
    "latitude": ("lat", "latitude"),
    "longitude": ("lng", "lon", "longitude"),
    "course": ("course", "cog"),
    "heading": ("heading",),
    "status": ("nav_status", "status", "navigation_status"),
    "destination": ("destination",),
    "eta": ("eta",),
    "callsign": ("callsign", "call_sign"),
    "ship_type": ("vessel_type", "ship_type", "vtype", "type"),
    "flag": ("flag", "country"),
}

_ISO_TIMESTAMP_KEYS: tuple[str, ...] = ("received",)
_EPOCH_TIMESTAMP_KEYS: tuple[str, ...] = ("timestamp", "last_position_update")

# Epoch values below this are seconds; at or above it, milliseconds
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000

# Sentinels the AIS standard uses for "not available"
_SPEED_NOT_AVAILABLE = 102.3
_HEADING_NOT_AVAILABLE = 511


@dataclass
class AISPosition:
    """One normalized provider fix for a single vessel."""
    mmsi: str
    name: Optional[str] = None
    imo: Optional[str] = None
    speed_knots: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    course: Optional[float] = None
    heading: Optional[float] = None
    timestamp: Optional[datetime] = None
    # False when the payload carried no usable time and wall clock was used
    timestamp_trusted: bool = False
    status: Optional[str] = None
    destination: Optional[str] = None
    eta: Optional[str] = None
    callsign: Optional[str] = None
    ship_type: Optional[str] = None
    flag: Optional[str] = None
    is_moving: bool = False

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return data


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def unwrap_envelope(payload: Any) -> dict:
    """Strip a single ``{"status": ..., "data": {...}}`` envelope if present."""
    if not isinstance(payload, dict):
        return {}
    data = payload.get("data")
    if isinstance(data, dict):
        return data
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return payload


def probe(payload: dict, names: tuple[str, ...]) -> Any:
    """Return the first present value for ``names``: flat before nested, canonical before alias."""
    locations: list[dict] = [payload]
    for section in NESTED_SECTIONS:
        nested = payload.get(section)
        if isinstance(nested, dict):
            locations.append(nested)

    for location in locations:
        for name in names:
            value = location.get(name)
            if _is_present(value):
                return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if not _is_present(value):
        return None
    return str(value).strip()


def _coordinate(value: Any, limit: float) -> Optional[float]:
    coord = _to_float(value)
    if coord is None or not (-limit <= coord <= limit):
        return None
    return coord


def parse_epoch(value: Any) -> Optional[datetime]:
    """Interpret a numeric Unix time; magnitudes >= 1e11 are milliseconds."""
    number = _to_float(value)
    if number is None:
        return None
    if abs(number) >= _EPOCH_MILLIS_THRESHOLD:
        number = number / 1000.0
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OSError, ValueError, OverflowError):
        return None


def parse_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_timestamp(payload: dict, now: Optional[datetime] = None) -> tuple[datetime, bool]:
    """Pick the fix time: ISO ``received``, then epoch fields, then wall clock.

    Returns (timestamp, trusted). ``trusted`` is False only for the wall-clock
    fallback.
    """
    received = probe(payload, _ISO_TIMESTAMP_KEYS)
    parsed = parse_iso(received)
    if parsed is not None:
        return parsed, True

    epoch = probe(payload, _EPOCH_TIMESTAMP_KEYS)
    parsed = parse_epoch(epoch)
    if parsed is not None:
        return parsed, True

    if received is not None or epoch is not None:
        logger.debug("Unparseable provider timestamp (received=%r, epoch=%r)", received, epoch)
    return (now or datetime.now(timezone.utc)), False


def normalize_vessel_payload(
    payload: Any,
    mmsi: str,
    moving_speed_knots: float = 2.0,
    now: Optional[datetime] = None,
) -> AISPosition:
    """Map a raw provider response onto an AISPosition.

    Missing or out-of-range coordinates become None rather than failing, so a
    poll without a fix still produces a check row the analyzer can skip.
    """
    data = unwrap_envelope(payload)

    speed = _to_float(probe(data, FIELD_ALIASES["speed_knots"]))
    if speed is not None and (speed < 0 or speed >= _SPEED_NOT_AVAILABLE):
        speed = None

    heading = _to_float(probe(data, FIELD_ALIASES["heading"]))
    if heading is not None and heading == _HEADING_NOT_AVAILABLE:
        heading = None

    timestamp, trusted = resolve_timestamp(data, now=now)

    return AISPosition(
        mmsi=_to_str(probe(data, FIELD_ALIASES["mmsi"])) or mmsi,
        name=_to_str(probe(data, FIELD_ALIASES["name"])),
        imo=_to_str(probe(data, FIELD_ALIASES["imo"])),
        speed_knots=speed,
        latitude=_coordinate(probe(data, FIELD_ALIASES["latitude"]), 90.0),
        longitude=_coordinate(probe(data, FIELD_ALIASES["longitude"]), 180.0),
        course=_to_float(probe(data, FIELD_ALIASES["course"])),
        heading=heading,
        timestamp=timestamp,
        timestamp_trusted=trusted,
        status=_to_str(probe(data, FIELD_ALIASES["status"])),
        destination=_to_str(probe(data, FIELD_ALIASES["destination"])),
        eta=_to_str(probe(data, FIELD_ALIASES["eta"])),
        callsign=_to_str(probe(data, FIELD_ALIASES["callsign"])),
        ship_type=_to_str(probe(data, FIELD_ALIASES["ship_type"])),
        flag=_to_str(probe(data, FIELD_ALIASES["flag"])),
        is_moving=speed is not None and speed > moving_speed_knots,
    )
