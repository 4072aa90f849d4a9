"""
Settlement Worker Module.

Module structure:
- processor.py - One settlement pass over paid check-ins
- worker.py - Background loop running passes on a fixed interval
"""

from .processor import RewardIssuer, SettlementOutcome, SettlementProcessor
from .worker import SettlementWorker

__all__ = [
    "RewardIssuer",
    "SettlementOutcome",
    "SettlementProcessor",
    "SettlementWorker",
]
