"""Incentives domain - new-cleaner fee reductions and new-homeowner discounts"""

from .router import router

__all__ = ["router"]
