"""Billing domain - per-user ledger of amounts due and paid"""

from .router import router

__all__ = ["router"]
