"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from dedata.models.base import Base
from dedata.models.checkin import CheckIn
from dedata.models.enums import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    WORKER_STATUSES,
    CheckInStatus,
)
from dedata.models.user import User

__all__ = [
    "ACTIVE_STATUSES",
    "Base",
    "CheckIn",
    "CheckInStatus",
    "TERMINAL_STATUSES",
    "User",
    "WORKER_STATUSES",
]
