"""
Payment lifecycle - drives one appointment's money through
pending -> authorized -> captured -> refunded / canceled (failed is reachable
from authorized and recoverable with retry_payment).

Gateway first, local state second: the appointment, ledger and payouts are
only written once the gateway result is known.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import Settings
from ...errors import DomainError, NotAuthorized, NotFound, ReconciliationRequired, StateConflict, ValidationFailed
from ...models import Appointment, User
from ...models_payout import PaymentTransaction
from ...services.payment_gateway import GatewayError, GatewayHold, PaymentDeclined, PaymentGateway
from ...shared.money import dollars_to_cents
from ..billing.service import BillingLedger
from ..payouts.service import PayoutEngine
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = ("authorized", "failed")


class PaymentLifecycle:
    """Service layer for appointment payments"""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        gateway: PaymentGateway,
        ledger: Optional[BillingLedger] = None,
        payouts: Optional[PayoutEngine] = None,
    ):
        self.db = db
        self.settings = settings
        self.gateway = gateway
        self.ledger = ledger or BillingLedger(db)
        self.payouts = payouts or PayoutEngine(db, settings)
        self.repo = PaymentRepository()

    # ========================================================================
    # HELPERS
    # ========================================================================

    def load_for_update(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment_for_update(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        return appointment

    @staticmethod
    def require_homeowner(appointment: Appointment, user_id: int) -> None:
        if appointment.user_id != user_id:
            raise NotAuthorized("Not authorized to manage this appointment")

    def ensure_participant(self, appointment_id: int, user: User) -> None:
        """Owners, the appointment's homeowner and its assigned cleaners may act on it"""
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        if user.type == "owner" or appointment.user_id == user.id:
            return
        if user.id in appointment.assigned_cleaner_ids:
            return
        raise NotAuthorized("Not authorized to manage this appointment")

    def log_transaction(
        self,
        txn_type: str,
        status: str,
        appointment: Appointment,
        amount_cents: Optional[int] = None,
        reference: Optional[str] = None,
        description: Optional[str] = None,
        **extra: Any,
    ) -> PaymentTransaction:
        return self.repo.record_transaction(
            self.db,
            transaction_id=f"txn_{uuid.uuid4().hex}",
            type=txn_type,
            status=status,
            amount_cents=amount_cents if amount_cents is not None else dollars_to_cents(appointment.price),
            currency=self.settings.currency,
            user_id=appointment.user_id,
            appointment_id=appointment.id,
            gateway_reference=reference,
            description=description,
            processed_at=datetime.utcnow(),
            **extra,
        )

    def _serialize(self, appointment: Appointment, **extra: Any) -> dict[str, Any]:
        result = {
            "appointmentId": appointment.id,
            "paymentStatus": appointment.payment_status,
            "paid": appointment.paid,
            "manuallyPaid": appointment.manually_paid,
            "paymentCaptureFailed": appointment.payment_capture_failed,
            "wasCancelled": appointment.was_cancelled,
        }
        result.update(extra)
        return result

    # ========================================================================
    # HOLD / CAPTURE PRIMITIVES
    # ========================================================================

    def create_hold(self, appointment: Appointment) -> GatewayHold:
        """Place a hold for the appointment price on the client's saved card. Does not commit on success."""
        client = self.repo.get_user(self.db, appointment.user_id)
        if not client or not client.gateway_customer_id:
            raise ValidationFailed("Client has no payment method on file")

        amount_cents = dollars_to_cents(appointment.price)
        try:
            hold = self.gateway.create_hold(
                amount_cents,
                client.gateway_customer_id,
                payment_method_id=client.gateway_payment_method_id,
                metadata={"appointmentId": appointment.id, "userId": appointment.user_id},
            )
        except GatewayError as e:
            logger.error(f"❌ Hold creation failed for appointment {appointment.id}: {e.message}")
            self.log_transaction("authorization", "failed", appointment, description=e.message)
            self.db.commit()
            raise

        if hold.status != "requires_capture":
            appointment.payment_hold_id = hold.id
            appointment.payment_status = "failed"
            self.log_transaction("authorization", "failed", appointment, reference=hold.id)
            self.db.commit()
            raise PaymentDeclined(f"Payment hold could not be authorized (status: {hold.status})")

        appointment.payment_hold_id = hold.id
        appointment.payment_status = "authorized"
        appointment.payment_capture_failed = False
        self.log_transaction("authorization", "succeeded", appointment, amount_cents=amount_cents, reference=hold.id)
        return hold

    def gateway_capture(self, appointment: Appointment) -> GatewayHold:
        """
        Capture the hold at the gateway. On failure the appointment is marked
        failed and committed before the error propagates.
        """
        hold_id = appointment.payment_hold_id
        try:
            return self.gateway.capture_hold(hold_id)
        except GatewayError as e:
            appointment.payment_status = "failed"
            appointment.payment_capture_failed = True
            self.log_transaction("capture", "failed", appointment, reference=hold_id, description=e.message)
            self.db.commit()
            logger.error(f"❌ Capture failed for appointment {appointment.id}: {e.message}")
            raise

    def apply_capture(
        self,
        appointment: Appointment,
        hold: GatewayHold,
        now: Optional[datetime] = None,
        manually_paid: bool = False,
    ) -> None:
        """Local bookkeeping for a captured hold (no commit)"""
        appointment.payment_status = "captured"
        appointment.paid = True
        appointment.payment_capture_failed = False
        appointment.amount_paid_cents = hold.amount_received_cents or dollars_to_cents(appointment.price)
        if manually_paid:
            appointment.manually_paid = True

        self.ledger.record_payment(appointment.user_id, appointment.price)
        self.payouts.mark_held(appointment.id, now)
        self.log_transaction(
            "capture", "succeeded", appointment, amount_cents=appointment.amount_paid_cents, reference=hold.id
        )

    def commit_after_gateway(self, appointment_id: int, hold_id: str, action: str) -> None:
        """
        Commit local state for money the gateway already moved. If the commit
        fails, leave a needs_reconciliation record for the worker to replay.
        """
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ {action} succeeded at gateway for appointment {appointment_id} but local update failed: {e}")
            try:
                self.repo.record_transaction(
                    self.db,
                    transaction_id=f"txn_{uuid.uuid4().hex}",
                    type=action,
                    status="needs_reconciliation",
                    amount_cents=0,
                    currency=self.settings.currency,
                    appointment_id=appointment_id,
                    gateway_reference=hold_id,
                    description=str(e)[:500],
                )
                self.db.commit()
            except SQLAlchemyError as log_error:
                self.db.rollback()
                logger.critical(
                    f"🚨 Could not record reconciliation for appointment {appointment_id} hold {hold_id}: {log_error}"
                )
            raise ReconciliationRequired(
                "Payment was processed but could not be recorded; it will be reconciled automatically"
            ) from e

    def _capture_and_commit(
        self, appointment: Appointment, now: Optional[datetime], manually_paid: bool = False
    ) -> None:
        hold = self.gateway_capture(appointment)
        self.apply_capture(appointment, hold, now, manually_paid=manually_paid)
        self.commit_after_gateway(appointment.id, hold.id, "capture")
        logger.info(f"✅ Payment captured for appointment {appointment.id}")

    # ========================================================================
    # PAYMENT OPERATIONS
    # ========================================================================

    def authorize(self, appointment_id: int, user_id: Optional[int] = None) -> dict[str, Any]:
        appointment = self.load_for_update(appointment_id)
        if user_id is not None:
            self.require_homeowner(appointment, user_id)
        if appointment.was_cancelled:
            raise StateConflict("Cannot authorize a cancelled appointment")
        if appointment.payment_status in ("authorized", "captured"):
            raise StateConflict("Payment already authorized")

        self.create_hold(appointment)
        self.db.commit()
        return self._serialize(appointment, holdId=appointment.payment_hold_id)

    def capture(self, appointment_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        appointment = self.load_for_update(appointment_id)
        if not appointment.has_cleaner_assigned:
            raise ValidationFailed("Cannot charge without a cleaner assigned")
        if not appointment.payment_hold_id:
            raise ValidationFailed("No payment hold found for this appointment")
        if appointment.paid or appointment.payment_status == "captured":
            raise StateConflict("Payment already captured")
        if appointment.payment_status not in RETRYABLE_STATUSES:
            raise StateConflict(f"Cannot capture a payment in status {appointment.payment_status}")

        self._capture_and_commit(appointment, now)
        return self._serialize(appointment, success=True)

    def retry_payment(self, appointment_id: int, user_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        """Homeowner-triggered capture retry on the existing hold"""
        appointment = self.load_for_update(appointment_id)
        self.require_homeowner(appointment, user_id)

        if appointment.paid or appointment.payment_status == "captured":
            return self._serialize(appointment, success=True, alreadyPaid=True)
        if not appointment.payment_hold_id:
            raise ValidationFailed("No payment hold found for this appointment")
        if appointment.payment_status not in RETRYABLE_STATUSES:
            raise StateConflict(f"Cannot retry a payment in status {appointment.payment_status}")

        self._capture_and_commit(appointment, now)
        return self._serialize(appointment, success=True, alreadyPaid=False)

    def pre_pay(self, appointment_id: int, user_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        """Homeowner pays ahead of the automatic capture window"""
        appointment = self.load_for_update(appointment_id)
        self.require_homeowner(appointment, user_id)

        if appointment.paid:
            raise StateConflict("Appointment already paid")
        if appointment.was_cancelled:
            raise StateConflict("Cannot pay for a cancelled appointment")
        if not appointment.has_cleaner_assigned:
            raise ValidationFailed("Cannot pre-pay until a cleaner is assigned")

        if not appointment.payment_hold_id or appointment.payment_status not in RETRYABLE_STATUSES:
            self.create_hold(appointment)
            self.db.flush()

        self._capture_and_commit(appointment, now, manually_paid=True)
        return self._serialize(appointment, success=True)

    def _reverse_hold(self, appointment: Appointment, strict: bool = True) -> Optional[str]:
        """
        Release or refund the appointment's hold based on its live gateway
        status. Returns the resulting payment status, or None when there was
        nothing to reverse and strict is False.
        """
        hold_id = appointment.payment_hold_id
        hold = self.gateway.retrieve_hold(hold_id)

        if hold.status == "requires_capture":
            self.gateway.cancel_hold(hold_id)
            self.log_transaction("cancellation", "canceled", appointment, reference=hold_id)
            return "canceled"
        if hold.status == "succeeded":
            refund = self.gateway.refund(hold_id)
            self.log_transaction(
                "refund",
                "succeeded",
                appointment,
                amount_cents=refund.amount_cents or hold.amount_received_cents,
                reference=refund.id,
                details={"holdId": hold_id},
            )
            return "refunded"
        if strict:
            raise StateConflict("Cannot cancel or refund this payment")
        return None

    def _release_appointment(self, appointment: Appointment, now: datetime) -> None:
        """Take a cancelled appointment off the ledger and drop its open payouts"""
        if appointment.paid:
            self.ledger.record_refund(appointment.user_id, appointment.price)
        else:
            self.ledger.debit(appointment.user_id, appointment.price)
        appointment.paid = False
        appointment.was_cancelled = True
        appointment.cancelled_at = now
        self.payouts.discard_for_appointment(appointment.id)

    def cancel_or_refund(
        self, appointment_id: int, user_id: Optional[int] = None, now: Optional[datetime] = None
    ) -> dict[str, Any]:
        """Cancel an uncaptured hold or refund a captured payment"""
        now = now or datetime.utcnow()
        appointment = self.load_for_update(appointment_id)
        if user_id is not None:
            self.require_homeowner(appointment, user_id)
        if not appointment.payment_hold_id:
            raise ValidationFailed("No payment hold found for this appointment")
        if appointment.payment_status in ("canceled", "refunded"):
            raise StateConflict("Cannot cancel or refund this payment")

        outcome = self._reverse_hold(appointment, strict=True)
        appointment.payment_status = outcome
        self._release_appointment(appointment, now)
        self.commit_after_gateway(appointment.id, appointment.payment_hold_id, outcome)
        logger.info(f"✅ Appointment {appointment.id} payment {outcome}")
        return self._serialize(appointment, success=True, action=outcome)

    # ========================================================================
    # HOMEOWNER CANCELLATION
    # ========================================================================

    def _cancellation_terms(self, appointment: Appointment, today: date) -> dict[str, Any]:
        days_until = (appointment.date - today).days
        window = self.settings.cancellation_window_days
        fee_applies = 0 <= days_until <= window
        return {
            "appointmentId": appointment.id,
            "daysUntilAppointment": days_until,
            "cancellationWindowDays": window,
            "willChargeCancellationFee": fee_applies,
            "cancellationFee": self.settings.cancellation_fee if fee_applies else 0.0,
        }

    def cancellation_info(self, appointment_id: int, user_id: int, today: Optional[date] = None) -> dict[str, Any]:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        self.require_homeowner(appointment, user_id)
        return self._cancellation_terms(appointment, today or date.today())

    def cancel_appointment(
        self,
        appointment_id: int,
        user_id: int,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Homeowner cancellation. Within the window (0-7 days out by default,
        inclusive) a fixed fee is added to the ledger's cancellation bucket.
        """
        today = today or date.today()
        now = now or datetime.utcnow()
        appointment = self.load_for_update(appointment_id)
        self.require_homeowner(appointment, user_id)

        if appointment.was_cancelled:
            raise StateConflict("Appointment is already cancelled")
        if appointment.completed:
            raise StateConflict("Cannot cancel a completed appointment")

        terms = self._cancellation_terms(appointment, today)
        if terms["daysUntilAppointment"] < 0:
            raise StateConflict("Cannot cancel a past appointment")

        payment_action = None
        if appointment.payment_hold_id and appointment.payment_status not in ("canceled", "refunded"):
            payment_action = self._reverse_hold(appointment, strict=False)
            if payment_action:
                appointment.payment_status = payment_action

        self._release_appointment(appointment, now)

        fee = terms["cancellationFee"]
        if fee:
            self.ledger.credit(appointment.user_id, fee, bucket="cancellation")
            self.log_transaction(
                "cancellation_fee", "succeeded", appointment, amount_cents=dollars_to_cents(fee)
            )

        if payment_action:
            self.commit_after_gateway(appointment.id, appointment.payment_hold_id, payment_action)
        else:
            self.db.commit()

        logger.info(
            f"✅ Appointment {appointment.id} cancelled by user {user_id} "
            f"({terms['daysUntilAppointment']} days out, fee {fee})"
        )
        return self._serialize(
            appointment,
            success=True,
            paymentAction=payment_action,
            cancellationFee=fee,
            daysUntilAppointment=terms["daysUntilAppointment"],
        )

    # ========================================================================
    # GATEWAY EVENTS
    # ========================================================================

    def handle_gateway_event(self, event: dict[str, Any], now: Optional[datetime] = None) -> dict[str, Any]:
        """Apply a verified webhook event; duplicates are no-ops"""
        event_type = event.get("type")
        payload = (event.get("data") or {}).get("object") or {}

        if event_type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            hold_id = payload.get("id")
        elif event_type == "charge.refunded":
            hold_id = payload.get("payment_intent")
        else:
            logger.info(f"Ignoring gateway event {event_type}")
            return {"received": True, "handled": False}

        appointment = self.repo.get_appointment_by_hold(self.db, hold_id) if hold_id else None
        if not appointment:
            logger.warning(f"⚠️ Gateway event {event_type} for unknown hold {hold_id}")
            return {"received": True, "handled": False}

        if event_type == "payment_intent.succeeded":
            if not appointment.paid and not appointment.was_cancelled:
                hold = GatewayHold(
                    id=hold_id,
                    status="succeeded",
                    amount_cents=int(payload.get("amount") or 0),
                    amount_received_cents=int(payload.get("amount_received") or 0),
                )
                self.apply_capture(appointment, hold, now)
                logger.info(f"✅ Capture for appointment {appointment.id} applied from webhook")
        elif event_type == "payment_intent.payment_failed":
            if appointment.payment_status != "captured":
                appointment.payment_status = "failed"
                appointment.payment_capture_failed = True
                logger.warning(f"⚠️ Payment failed for appointment {appointment.id}")
        elif appointment.payment_status != "refunded":
            appointment.payment_status = "refunded"
            if not appointment.was_cancelled:
                self._release_appointment(appointment, now or datetime.utcnow())
            logger.info(f"✅ Refund for appointment {appointment.id} applied from webhook")

        self.db.commit()
        return {"received": True, "handled": True, "appointmentId": appointment.id}

    # ========================================================================
    # SCHEDULED CHECKS
    # ========================================================================

    def run_daily_payment_check(self, today: Optional[date] = None) -> dict[str, int]:
        """
        Capture payments for assigned appointments inside the capture window and
        release holds on appointments still unassigned on the day before.
        """
        today = today or date.today()
        window_end = today + timedelta(days=self.settings.capture_days_before)
        summary = {"checked": 0, "captured": 0, "failed": 0, "holdsReleased": 0, "errors": 0}

        for appointment_id in self.repo.appointment_ids_due_for_payment(self.db, today, window_end):
            summary["checked"] += 1
            try:
                appointment = self.load_for_update(appointment_id)
                days_until = (appointment.date - today).days

                if appointment.has_cleaner_assigned:
                    if not appointment.payment_hold_id or appointment.payment_status not in RETRYABLE_STATUSES:
                        self.create_hold(appointment)
                        self.db.flush()
                    self._capture_and_commit(appointment, None)
                    summary["captured"] += 1
                elif (
                    appointment.payment_hold_id
                    and appointment.payment_status == "authorized"
                    and days_until <= self.settings.unassigned_cancel_days_before
                ):
                    self.cancel_or_refund(appointment_id)
                    summary["holdsReleased"] += 1
                else:
                    self.db.rollback()
            except GatewayError as e:
                self.db.rollback()
                summary["failed"] += 1
                logger.error(f"❌ Daily payment check: appointment {appointment_id} failed: {e.message}")
            except DomainError as e:
                self.db.rollback()
                summary["errors"] += 1
                logger.error(f"❌ Daily payment check: appointment {appointment_id} skipped: {e.message}")

        logger.info(f"📊 Daily payment check complete: {summary}")
        return summary

    def reconcile_pending_captures(self, now: Optional[datetime] = None) -> dict[str, int]:
        """
        Replay local state for money the gateway moved but we failed to record,
        and release holds left behind by appointments removed with a schedule.
        """
        now = now or datetime.utcnow()
        summary = {"checked": 0, "reconciled": 0, "errors": 0}

        for transaction in self.repo.transactions_needing_reconciliation(self.db):
            summary["checked"] += 1
            transaction_id = transaction.id
            try:
                hold = self.gateway.retrieve_hold(transaction.gateway_reference)
                appointment = (
                    self.load_for_update(transaction.appointment_id) if transaction.appointment_id else None
                )
                if appointment is None and transaction.type == "cancellation":
                    # Hold of an appointment removed with its schedule
                    if hold.status == "requires_capture":
                        self.gateway.cancel_hold(transaction.gateway_reference)
                elif appointment and transaction.type == "refunded" and appointment.payment_status != "refunded":
                    appointment.payment_status = "refunded"
                    if not appointment.was_cancelled:
                        self._release_appointment(appointment, now)
                elif appointment and hold.status == "succeeded" and not appointment.paid and not appointment.was_cancelled:
                    self.apply_capture(appointment, hold, now)
                elif appointment and hold.status == "canceled" and appointment.payment_status != "canceled":
                    appointment.payment_status = "canceled"
                    if not appointment.was_cancelled:
                        self._release_appointment(appointment, now)

                transaction.status = "reconciled"
                transaction.processed_at = now
                self.db.commit()
                summary["reconciled"] += 1
            except (DomainError, SQLAlchemyError) as e:
                self.db.rollback()
                summary["errors"] += 1
                logger.error(f"❌ Reconciliation of transaction {transaction_id} failed: {e}")

        if summary["checked"]:
            logger.info(f"📊 Reconciliation complete: {summary}")
        return summary
