import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cleaning_core.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Shared key for internal callers (cron runners, ops scripts) hitting batch endpoints
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY")

# Stripe Configuration (manual-capture PaymentIntents)
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_API_URL = os.getenv("STRIPE_API_URL", "https://api.stripe.com/v1")

# Redis for the ARQ worker
REDIS_URL = os.getenv("REDIS_URL")


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    """Business constants injected into every domain component"""

    platform_fee_percent: float = 0.10
    cancellation_fee: float = 25.00
    cancellation_window_days: int = 7
    auto_approval_hours: int = 24
    capture_days_before: int = 3
    unassigned_cancel_days_before: int = 1
    gateway_timeout_seconds: float = 30.0
    gateway_max_retries: int = 2
    currency: str = "usd"
    horizon_weeks: dict = field(
        default_factory=lambda: {"weekly": 4, "biweekly": 8, "monthly": 12}
    )

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            platform_fee_percent=_env_float("PLATFORM_FEE_PERCENT", 0.10),
            cancellation_fee=_env_float("CANCELLATION_FEE", 25.00),
            cancellation_window_days=_env_int("CANCELLATION_WINDOW_DAYS", 7),
            auto_approval_hours=_env_int("AUTO_APPROVAL_HOURS", 24),
            capture_days_before=_env_int("PAYMENT_CAPTURE_DAYS_BEFORE", 3),
            unassigned_cancel_days_before=_env_int("UNASSIGNED_CANCEL_DAYS_BEFORE", 1),
            gateway_timeout_seconds=_env_float("GATEWAY_TIMEOUT_SECONDS", 30.0),
            gateway_max_retries=_env_int("GATEWAY_MAX_RETRIES", 2),
            currency=os.getenv("PAYMENT_CURRENCY", "usd"),
            horizon_weeks={
                "weekly": _env_int("HORIZON_WEEKS_WEEKLY", 4),
                "biweekly": _env_int("HORIZON_WEEKS_BIWEEKLY", 8),
                "monthly": _env_int("HORIZON_WEEKS_MONTHLY", 12),
            },
        )


_settings = None


def get_settings() -> Settings:
    """Process-wide settings, built once from the environment"""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
