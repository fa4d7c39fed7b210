"""
Incentive evaluator - first-cleanings fee reductions for new cleaners and
discounts for new homeowners.

Eligibility is recomputed on every call from the active config; nothing is
cached between calls.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...errors import ValidationFailed
from ...models_payout import IncentiveConfig
from ...shared.money import round_cents, round_currency, to_decimal
from .repository import IncentiveRepository

logger = logging.getLogger(__name__)

DEFAULT_INCENTIVE_CONFIG = {
    "cleaner_incentive_enabled": False,
    "cleaner_fee_reduction_percent": 1.0,
    "cleaner_eligibility_days": 30,
    "cleaner_max_cleanings": 5,
    "homeowner_incentive_enabled": False,
    "homeowner_discount_percent": 0.10,
    "homeowner_max_cleanings": 4,
}

CONFIG_FIELDS = tuple(DEFAULT_INCENTIVE_CONFIG.keys())


def validate_incentive_config(data: dict[str, Any]) -> list[str]:
    """Return a list of human-readable problems, empty when the config is valid"""
    errors = []

    for flag in ("cleaner_incentive_enabled", "homeowner_incentive_enabled"):
        if flag in data and not isinstance(data[flag], bool):
            errors.append(f"{flag} must be a boolean")

    def check_range(name: str, low, high, integer: bool = False):
        if name not in data:
            return
        value = data[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{name} must be a number")
            return
        if integer and int(value) != value:
            errors.append(f"{name} must be a whole number")
            return
        if not low <= value <= high:
            errors.append(f"{name} must be between {low} and {high}")

    check_range("cleaner_fee_reduction_percent", 0, 1)
    check_range("cleaner_eligibility_days", 1, 365, integer=True)
    check_range("cleaner_max_cleanings", 1, 100, integer=True)
    check_range("homeowner_discount_percent", 0, 1)
    check_range("homeowner_max_cleanings", 1, 100, integer=True)
    return errors


def serialize_config(config: Optional[IncentiveConfig]) -> dict[str, Any]:
    values = (
        {name: getattr(config, name) for name in CONFIG_FIELDS}
        if config
        else dict(DEFAULT_INCENTIVE_CONFIG)
    )
    return {
        "id": config.id if config else None,
        "cleaner": {
            "enabled": values["cleaner_incentive_enabled"],
            "feeReductionPercent": values["cleaner_fee_reduction_percent"],
            "eligibilityDays": values["cleaner_eligibility_days"],
            "maxCleanings": values["cleaner_max_cleanings"],
        },
        "homeowner": {
            "enabled": values["homeowner_incentive_enabled"],
            "discountPercent": values["homeowner_discount_percent"],
            "maxCleanings": values["homeowner_max_cleanings"],
        },
        "updatedBy": config.updated_by if config else None,
        "changeNote": config.change_note if config else None,
        "createdAt": config.created_at if config else None,
    }


class IncentiveEvaluator:
    """Service layer for incentive eligibility and fee math"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = IncentiveRepository()

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def cleaner_eligibility(self, cleaner_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        not_eligible = {
            "eligible": False,
            "remainingCleanings": 0,
            "completedCleanings": 0,
            "feeReductionPercent": 0.0,
        }

        config = self.repo.get_active_config(self.db)
        if not config or not config.cleaner_incentive_enabled:
            return not_eligible

        cleaner = self.repo.get_user(self.db, cleaner_id)
        if not cleaner:
            return not_eligible

        now = now or datetime.utcnow()
        account_age_days = (now - cleaner.created_at).days if cleaner.created_at else 0
        if account_age_days > config.cleaner_eligibility_days:
            return not_eligible

        completed = self.repo.count_completed_payouts(self.db, cleaner_id)
        remaining = max(config.cleaner_max_cleanings - completed, 0)
        return {
            "eligible": completed < config.cleaner_max_cleanings,
            "remainingCleanings": remaining,
            "completedCleanings": completed,
            "feeReductionPercent": config.cleaner_fee_reduction_percent if remaining else 0.0,
        }

    def homeowner_eligibility(self, user_id: int) -> dict[str, Any]:
        config = self.repo.get_active_config(self.db)
        if not config or not config.homeowner_incentive_enabled:
            return {
                "eligible": False,
                "remainingCleanings": 0,
                "completedAppointments": 0,
                "discountPercent": 0.0,
            }

        completed = self.repo.count_completed_appointments(self.db, user_id)
        remaining = max(config.homeowner_max_cleanings - completed, 0)
        return {
            "eligible": completed < config.homeowner_max_cleanings,
            "remainingCleanings": remaining,
            "completedAppointments": completed,
            "discountPercent": config.homeowner_discount_percent if remaining else 0.0,
        }

    # ------------------------------------------------------------------
    # Fee / price calculations
    # ------------------------------------------------------------------

    def cleaner_fee(
        self, cleaner_id: int, gross_cents: int, standard_fee_percent: float
    ) -> dict[str, Any]:
        """
        Platform fee and cleaner net for one payout.

        Example: gross 10000, standard 0.10, reduction 0.33
        -> effective 0.067, fee 670, net 9330.
        """
        gross = to_decimal(gross_cents)
        standard = to_decimal(standard_fee_percent)
        standard_fee = round_cents(gross * standard)

        eligibility = self.cleaner_eligibility(cleaner_id)
        if not eligibility["eligible"]:
            return {
                "platformFee": standard_fee,
                "netAmount": gross_cents - standard_fee,
                "effectiveFeePercent": float(standard),
                "incentiveApplied": False,
                "originalPlatformFee": standard_fee,
            }

        reduction = to_decimal(eligibility["feeReductionPercent"])
        effective = standard * (1 - reduction)
        fee = round_cents(gross * effective)
        logger.info(
            f"🎁 Cleaner incentive applied for cleaner {cleaner_id}: fee {standard_fee} -> {fee}"
        )
        return {
            "platformFee": fee,
            "netAmount": gross_cents - fee,
            "effectiveFeePercent": float(effective),
            "incentiveApplied": True,
            "originalPlatformFee": standard_fee,
        }

    def homeowner_price(self, user_id: int, original_price: float) -> dict[str, Any]:
        eligibility = self.homeowner_eligibility(user_id)
        if not eligibility["eligible"]:
            return {
                "originalPrice": original_price,
                "finalPrice": original_price,
                "discountApplied": False,
                "discountPercent": 0.0,
            }

        discount = to_decimal(eligibility["discountPercent"])
        final_price = round_currency(to_decimal(original_price) * (1 - discount))
        return {
            "originalPrice": original_price,
            "finalPrice": final_price,
            "discountApplied": True,
            "discountPercent": float(discount),
        }

    # ------------------------------------------------------------------
    # Configuration management
    # ------------------------------------------------------------------

    def current_config(self) -> dict[str, Any]:
        return serialize_config(self.repo.get_active_config(self.db))

    def update_config(
        self, changes: dict[str, Any], updated_by: int, change_note: Optional[str] = None
    ) -> dict[str, Any]:
        """Append a new active config row built from the current one plus changes"""
        unknown = set(changes) - set(CONFIG_FIELDS)
        if unknown:
            raise ValidationFailed(f"Unknown incentive fields: {', '.join(sorted(unknown))}")

        errors = validate_incentive_config(changes)
        if errors:
            raise ValidationFailed("Invalid incentive configuration", errors=errors)

        current = self.repo.get_active_config(self.db)
        merged = (
            {name: getattr(current, name) for name in CONFIG_FIELDS}
            if current
            else dict(DEFAULT_INCENTIVE_CONFIG)
        )
        merged.update(changes)

        config = self.repo.create_active_config(
            self.db, updated_by=updated_by, change_note=change_note, **merged
        )
        logger.info(f"✅ Incentive config {config.id} activated by user {updated_by}")
        return serialize_config(config)

    def config_history(self, limit: int = 20) -> list[dict[str, Any]]:
        return [serialize_config(c) for c in self.repo.get_history(self.db, limit)]
