"""
Repositories.

Data access layer for check-in and user models.
"""

from dedata.repositories.checkin_repository import CheckInRepository
from dedata.repositories.ledger import (
    CheckInLedger,
    LedgerScope,
    LedgerScopeFactory,
    UserAccountStore,
    sql_ledger_scope,
)
from dedata.repositories.user_repository import UserRepository

__all__ = [
    "CheckInLedger",
    "CheckInRepository",
    "LedgerScope",
    "LedgerScopeFactory",
    "UserAccountStore",
    "UserRepository",
    "sql_ledger_scope",
]
