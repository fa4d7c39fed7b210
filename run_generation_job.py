"""
Recurring Appointment Generation Runner
Run this from cron or by hand: python run_generation_job.py
"""

import json
import logging
import sys

from app.config import get_settings
from app.database import SessionLocal
from app.domain.scheduling.generation_job import run_generation_job
from app.services.payment_gateway import get_payment_gateway

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting recurring appointment generation...")
    try:
        summary = run_generation_job(SessionLocal, get_settings(), gateway=get_payment_gateway())
    except KeyboardInterrupt:
        logger.info("👋 Generation stopped by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"❌ Generation job crashed: {e}")
        sys.exit(1)

    print(json.dumps(summary, indent=2, default=str))
    sys.exit(1 if summary["errors"] else 0)
