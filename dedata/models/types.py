"""
Standard type definitions for database models.

Provides consistent types for token amounts across all models.
"""

from sqlalchemy import DECIMAL

# Token amount type (18 decimals, matches on-chain precision)
# Precision: 36 digits total, 18 after decimal point
TokenAmountType = DECIMAL(36, 18)
