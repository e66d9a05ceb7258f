"""Withdrawal submission and approval services."""

from .service import (
    ApprovalResult,
    WithdrawalGuard,
    WithdrawalNotFound,
    WithdrawalStateError,
    approve_withdrawal,
)

__all__ = [
    "ApprovalResult",
    "WithdrawalGuard",
    "WithdrawalNotFound",
    "WithdrawalStateError",
    "approve_withdrawal",
]
