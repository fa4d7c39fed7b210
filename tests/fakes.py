"""In-memory payment gateway used by the service and route tests"""

from dataclasses import replace
from typing import Any, Optional

from app.services.payment_gateway import GatewayError, GatewayHold, GatewayRefund, PaymentGateway


class FakePaymentGateway(PaymentGateway):
    """
    Keeps holds in a dict and mimics the PaymentIntent status flow:
    requires_capture -> succeeded (capture) or canceled (cancel).

    Queue exceptions on capture_errors to make the next captures fail.
    """

    def __init__(self):
        self.holds: dict[str, GatewayHold] = {}
        self.refunds: list[GatewayRefund] = []
        self.calls: list[tuple] = []
        self.capture_errors: list[Exception] = []
        self.hold_status = "requires_capture"
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def add_hold(self, amount_cents: int, status: str = "requires_capture") -> GatewayHold:
        hold = GatewayHold(id=self._next_id("pi_test"), status=status, amount_cents=amount_cents)
        if status == "succeeded":
            hold.amount_received_cents = amount_cents
        self.holds[hold.id] = hold
        return replace(hold)

    def _get(self, hold_id: str) -> GatewayHold:
        if hold_id not in self.holds:
            raise GatewayError(f"No such payment_intent: {hold_id}", provider_code="resource_missing", retryable=False)
        return self.holds[hold_id]

    def create_hold(
        self,
        amount_cents: int,
        customer_id: str,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayHold:
        self.calls.append(("create_hold", amount_cents, customer_id))
        return self.add_hold(amount_cents, self.hold_status)

    def capture_hold(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayHold:
        self.calls.append(("capture_hold", hold_id))
        if self.capture_errors:
            raise self.capture_errors.pop(0)
        hold = self._get(hold_id)
        if hold.status != "requires_capture":
            raise GatewayError(f"Hold {hold_id} cannot be captured ({hold.status})", retryable=False)
        hold.status = "succeeded"
        hold.amount_received_cents = hold.amount_cents
        return replace(hold)

    def cancel_hold(self, hold_id: str) -> GatewayHold:
        self.calls.append(("cancel_hold", hold_id))
        hold = self._get(hold_id)
        hold.status = "canceled"
        return replace(hold)

    def refund(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayRefund:
        self.calls.append(("refund", hold_id))
        hold = self._get(hold_id)
        if hold.status != "succeeded":
            raise GatewayError(f"Hold {hold_id} has nothing to refund", retryable=False)
        refund = GatewayRefund(
            id=self._next_id("re_test"),
            status="succeeded",
            amount_cents=hold.amount_received_cents,
            hold_id=hold_id,
        )
        self.refunds.append(refund)
        return refund

    def retrieve_hold(self, hold_id: str) -> GatewayHold:
        self.calls.append(("retrieve_hold", hold_id))
        return replace(self._get(hold_id))

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]
