"""
CallPanel service layer.
"""

from .credit_ledger_service import apply_ledger_entry, recent_ledger_entries

__all__ = [
    "apply_ledger_entry",
    "recent_ledger_entries",
]
