"""
Payment Gateway Client
Creates, captures, cancels and refunds card holds (Stripe manual-capture PaymentIntents)
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import STRIPE_API_URL, STRIPE_SECRET_KEY, Settings, get_settings
from ..errors import DomainError

logger = logging.getLogger(__name__)


# ============================================================================
# VALUE OBJECTS AND ERRORS
# ============================================================================


@dataclass
class GatewayHold:
    """A payment hold as the gateway currently sees it"""

    id: str
    status: str  # requires_capture, succeeded, canceled, requires_payment_method, ...
    amount_cents: int
    amount_received_cents: int = 0


@dataclass
class GatewayRefund:
    id: str
    status: str
    amount_cents: int
    hold_id: str


class GatewayError(DomainError):
    """Gateway call failed; safe to retry unless stated otherwise"""

    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str, provider_code: Optional[str] = None, retryable: bool = True):
        super().__init__(message, retryable=retryable, providerCode=provider_code)
        self.provider_code = provider_code
        self.retryable = retryable


class GatewayTimeout(GatewayError):
    status_code = 504
    code = "gateway_timeout"


class PaymentDeclined(GatewayError):
    """Card declined or payment method unusable; retrying will not help"""

    status_code = 402
    code = "payment_declined"

    def __init__(self, message: str, provider_code: Optional[str] = None):
        super().__init__(message, provider_code=provider_code, retryable=False)


# ============================================================================
# GATEWAY INTERFACE
# ============================================================================


class PaymentGateway:
    """Narrow interface over the payment provider.

    The services only ever need these five operations; tests inject a fake
    implementation, production injects StripeGateway.
    """

    def create_hold(
        self,
        amount_cents: int,
        customer_id: str,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayHold:  # pragma: no cover - interface
        raise NotImplementedError

    def capture_hold(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayHold:  # pragma: no cover - interface
        raise NotImplementedError

    def cancel_hold(self, hold_id: str) -> GatewayHold:  # pragma: no cover - interface
        raise NotImplementedError

    def refund(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayRefund:  # pragma: no cover - interface
        raise NotImplementedError

    def retrieve_hold(self, hold_id: str) -> GatewayHold:  # pragma: no cover - interface
        raise NotImplementedError


# ============================================================================
# STRIPE REST IMPLEMENTATION
# ============================================================================


def _hold_from_intent(intent: dict[str, Any]) -> GatewayHold:
    return GatewayHold(
        id=intent["id"],
        status=intent.get("status", "unknown"),
        amount_cents=int(intent.get("amount") or 0),
        amount_received_cents=int(intent.get("amount_received") or 0),
    )


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents over plain HTTPS (form-encoded, bearer auth)"""

    def __init__(
        self,
        api_key: str,
        api_url: str = STRIPE_API_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        currency: str = "usd",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.max_retries = max_retries
        self.currency = currency
        self._client = httpx.Client(
            base_url=api_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send one logical request, retrying transport errors and 5xx responses
        up to max_retries times. POSTs always carry an Idempotency-Key so a
        retried capture or refund cannot move money twice.
        """
        headers = {}
        if method == "POST":
            headers["Idempotency-Key"] = idempotency_key or str(uuid.uuid4())

        attempt = 0
        while True:
            try:
                response = self._client.request(method, path, data=data, headers=headers)
            except httpx.TimeoutException as e:
                if attempt < self.max_retries:
                    attempt += 1
                    logger.warning(f"⚠️ Gateway timeout on {method} {path}, retry {attempt}/{self.max_retries}")
                    continue
                logger.error(f"❌ Gateway timeout on {method} {path} after {attempt + 1} attempts")
                raise GatewayTimeout(f"Payment gateway timed out on {path}") from e
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    attempt += 1
                    logger.warning(f"⚠️ Gateway transport error on {method} {path}: {e}, retry {attempt}")
                    continue
                logger.error(f"❌ Gateway unreachable on {method} {path}: {e}")
                raise GatewayError(f"Payment gateway unreachable: {e}") from e

            if response.status_code >= 500 and attempt < self.max_retries:
                attempt += 1
                logger.warning(
                    f"⚠️ Gateway returned {response.status_code} on {method} {path}, retry {attempt}"
                )
                continue

            if response.status_code >= 400:
                raise self._error_from_response(response)

            return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> GatewayError:
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}

        message = error.get("message") or f"Payment gateway error (HTTP {response.status_code})"
        provider_code = error.get("decline_code") or error.get("code")
        logger.error(f"❌ Gateway error {response.status_code}: {provider_code} - {message}")

        if error.get("type") == "card_error" or response.status_code == 402:
            return PaymentDeclined(message, provider_code=provider_code)
        retryable = response.status_code >= 500 or response.status_code == 429
        return GatewayError(message, provider_code=provider_code, retryable=retryable)

    def create_hold(
        self,
        amount_cents: int,
        customer_id: str,
        payment_method_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayHold:
        data = {
            "amount": amount_cents,
            "currency": self.currency,
            "customer": customer_id,
            "capture_method": "manual",
            "confirm": "true",
            "off_session": "true",
        }
        if payment_method_id:
            data["payment_method"] = payment_method_id
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = str(value)

        intent = self._request("POST", "/payment_intents", data=data, idempotency_key=idempotency_key)
        logger.info(f"✅ Hold {intent['id']} created for {amount_cents} cents")
        return _hold_from_intent(intent)

    def capture_hold(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayHold:
        intent = self._request(
            "POST", f"/payment_intents/{hold_id}/capture", idempotency_key=idempotency_key
        )
        logger.info(f"✅ Hold {hold_id} captured")
        return _hold_from_intent(intent)

    def cancel_hold(self, hold_id: str) -> GatewayHold:
        intent = self._request(
            "POST", f"/payment_intents/{hold_id}/cancel", idempotency_key=f"cancel-{hold_id}"
        )
        logger.info(f"✅ Hold {hold_id} cancelled")
        return _hold_from_intent(intent)

    def refund(self, hold_id: str, idempotency_key: Optional[str] = None) -> GatewayRefund:
        refund = self._request(
            "POST",
            "/refunds",
            data={"payment_intent": hold_id},
            idempotency_key=idempotency_key or f"refund-{hold_id}",
        )
        logger.info(f"✅ Refund {refund['id']} issued for hold {hold_id}")
        return GatewayRefund(
            id=refund["id"],
            status=refund.get("status", "unknown"),
            amount_cents=int(refund.get("amount") or 0),
            hold_id=hold_id,
        )

    def retrieve_hold(self, hold_id: str) -> GatewayHold:
        return _hold_from_intent(self._request("GET", f"/payment_intents/{hold_id}"))


def build_payment_gateway(settings: Optional[Settings] = None) -> PaymentGateway:
    settings = settings or get_settings()
    if not STRIPE_SECRET_KEY:
        logger.warning("⚠️ STRIPE_SECRET_KEY not set - gateway calls will be rejected")
    return StripeGateway(
        api_key=STRIPE_SECRET_KEY or "",
        timeout=settings.gateway_timeout_seconds,
        max_retries=settings.gateway_max_retries,
        currency=settings.currency,
    )


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the process-wide gateway client"""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway
