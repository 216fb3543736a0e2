"""Import all models to register them with SQLAlchemy metadata."""
from seatime.models.base import Base
from seatime.models.vessel import Vessel
from seatime.models.tracking_task import TrackingTask
from seatime.models.position_check import PositionCheck
from seatime.models.sea_time_entry import SeaTimeEntry
from seatime.models.ais_debug_log import AISDebugLog

__all__ = [
    "Base",
    "Vessel",
    "TrackingTask",
    "PositionCheck",
    "SeaTimeEntry",
    "AISDebugLog",
]
