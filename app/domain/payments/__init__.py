"""
Payments domain - holds, captures, refunds, homeowner cancellation and the
two-step job completion flow.

Routers:
- router: /payments
- webhooks_router: /payments/webhook (gateway events)
- appointments_router: /appointments cancellation endpoints
- completion_router: /completion
"""

from .router import appointments_router, completion_router, router
from .webhooks import router as webhooks_router

__all__ = ["router", "webhooks_router", "appointments_router", "completion_router"]
