"""
Quota tracking for playlist-sync.

Usage:
    from playlist_sync.quota import QuotaLedger, QuotaBudget
"""

from playlist_sync.quota.ledger import (
    PAGE_SIZE,
    QuotaBudget,
    QuotaLedger,
    QuotaLedgerEntry,
    Reservation,
)

__all__ = [
    "PAGE_SIZE",
    "QuotaBudget",
    "QuotaLedger",
    "QuotaLedgerEntry",
    "Reservation",
]
