"""Payouts domain - per-cleaner payout records and earnings"""

from .router import router

__all__ = ["router"]
