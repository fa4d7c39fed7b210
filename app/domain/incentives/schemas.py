"""Incentive domain schemas - Pydantic models for validation"""

from typing import Optional, Union

from pydantic import BaseModel, StrictBool, StrictFloat, StrictInt


class IncentiveConfigUpdate(BaseModel):
    """Partial update; omitted fields keep their current values"""

    cleanerIncentiveEnabled: Optional[StrictBool] = None
    cleanerFeeReductionPercent: Optional[Union[StrictInt, StrictFloat]] = None
    cleanerEligibilityDays: Optional[Union[StrictInt, StrictFloat]] = None
    cleanerMaxCleanings: Optional[Union[StrictInt, StrictFloat]] = None
    homeownerIncentiveEnabled: Optional[StrictBool] = None
    homeownerDiscountPercent: Optional[Union[StrictInt, StrictFloat]] = None
    homeownerMaxCleanings: Optional[Union[StrictInt, StrictFloat]] = None
    changeNote: Optional[str] = None

    def to_changes(self) -> dict:
        """Map the set fields onto config column names"""
        mapping = {
            "cleanerIncentiveEnabled": "cleaner_incentive_enabled",
            "cleanerFeeReductionPercent": "cleaner_fee_reduction_percent",
            "cleanerEligibilityDays": "cleaner_eligibility_days",
            "cleanerMaxCleanings": "cleaner_max_cleanings",
            "homeownerIncentiveEnabled": "homeowner_incentive_enabled",
            "homeownerDiscountPercent": "homeowner_discount_percent",
            "homeownerMaxCleanings": "homeowner_max_cleanings",
        }
        return {
            column: getattr(self, field)
            for field, column in mapping.items()
            if getattr(self, field) is not None
        }
