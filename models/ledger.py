"""Ledger result model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


INSUFFICIENT_FUNDS = "InsufficientFunds"


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a debit or credit."""

    success: bool
    """Whether the balance was changed."""

    balance: int
    """Balance after the operation (unchanged when success is False)."""

    error: Optional[str] = None
    """Business-rule failure code, e.g. INSUFFICIENT_FUNDS."""

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "balance": self.balance}
        if self.error:
            data["error"] = self.error
        return data
