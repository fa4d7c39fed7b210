import inspect
import json
import time
from datetime import date, timedelta

from fastapi.routing import APIRoute

from app.main import app
from app.webhook_security import build_signature_header

from tests.factories import WEBHOOK_SECRET, auth_headers, book_appointment

INTERNAL_HEADERS = {"X-Internal-Api-Key": "test-internal-key"}


def schedule_body(seeded, **overrides):
    body = {
        "cleanerClientId": seeded.relationship.id,
        "frequency": "weekly",
        "dayOfWeek": 1,
        "startDate": date.today().isoformat(),
    }
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


# ============================================================================
# RECURRING SCHEDULES
# ============================================================================


def test_cleaner_creates_schedule(client, seeded):
    response = client.post("/recurring-schedules", json=schedule_body(seeded), headers=auth_headers(seeded.cleaner))

    assert response.status_code == 200
    data = response.json()
    assert data["schedule"]["frequency"] == "weekly"
    assert data["schedule"]["price"] == 120.0
    assert data["newAppointmentsCreated"] in (4, 5)

    listed = client.get("/recurring-schedules", headers=auth_headers(seeded.cleaner)).json()
    assert [s["id"] for s in listed] == [data["schedule"]["id"]]

    mine = client.get("/recurring-schedules/my-schedules", headers=auth_headers(seeded.homeowner)).json()
    assert [s["id"] for s in mine] == [data["schedule"]["id"]]


def test_homeowner_cannot_create_schedule(client, seeded):
    response = client.post(
        "/recurring-schedules", json=schedule_body(seeded), headers=auth_headers(seeded.homeowner)
    )
    assert response.status_code == 403


def test_invalid_frequency_is_a_validation_error(client, seeded):
    response = client.post(
        "/recurring-schedules",
        json=schedule_body(seeded, frequency="daily"),
        headers=auth_headers(seeded.cleaner),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "validation_failed"


def test_unknown_schedule_is_not_found(client, seeded):
    response = client.get("/recurring-schedules/9999", headers=auth_headers(seeded.cleaner))

    assert response.status_code == 404
    assert response.json() == {"detail": "Schedule not found", "code": "not_found"}


def test_pause_and_resume_routes(client, seeded):
    headers = auth_headers(seeded.cleaner)
    schedule_id = client.post("/recurring-schedules", json=schedule_body(seeded), headers=headers).json()[
        "schedule"
    ]["id"]

    paused = client.post(f"/recurring-schedules/{schedule_id}/pause", json={"reason": "Vacation"}, headers=headers)
    assert paused.status_code == 200
    assert paused.json()["schedule"]["isPaused"] is True

    blocked = client.post(f"/recurring-schedules/{schedule_id}/generate", headers=headers)
    assert blocked.status_code == 409

    resumed = client.post(f"/recurring-schedules/{schedule_id}/resume", headers=headers)
    assert resumed.status_code == 200
    assert resumed.json()["schedule"]["isPaused"] is False


def test_generate_all_accepts_internal_key(client, seeded):
    response = client.post("/recurring-schedules/generate-all", headers=INTERNAL_HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "schedulesProcessed": 0,
        "appointmentsCreated": 0,
        "skipped": 0,
        "errors": 0,
        "details": [],
    }


def test_generate_all_auth(client, seeded):
    owner = client.post("/recurring-schedules/generate-all", headers=auth_headers(seeded.owner))
    cleaner = client.post("/recurring-schedules/generate-all", headers=auth_headers(seeded.cleaner))
    wrong_key = client.post("/recurring-schedules/generate-all", headers={"X-Internal-Api-Key": "nope"})

    assert owner.status_code == 200
    assert cleaner.status_code == 403
    assert wrong_key.status_code == 401


# ============================================================================
# INCENTIVES / BILLING / PAYOUTS
# ============================================================================


def test_incentive_config_update(client, seeded):
    headers = auth_headers(seeded.owner)

    rejected = client.put("/incentives/config", json={"cleanerFeeReductionPercent": 1.5}, headers=headers)
    assert rejected.status_code == 400
    assert rejected.json()["errors"] == ["cleaner_fee_reduction_percent must be between 0 and 1"]

    saved = client.put(
        "/incentives/config",
        json={"cleanerIncentiveEnabled": True, "cleanerFeeReductionPercent": 0.5, "changeNote": "Spring promo"},
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()["config"]["cleaner"]["feeReductionPercent"] == 0.5

    current = client.get("/incentives/current").json()
    assert current["cleaner"]["enabled"] is True
    assert current["changeNote"] == "Spring promo"

    history = client.get("/incentives/history", headers=headers).json()["history"]
    assert len(history) == 1


def test_only_owners_configure_incentives(client, seeded):
    response = client.put(
        "/incentives/config", json={"cleanerIncentiveEnabled": True}, headers=auth_headers(seeded.cleaner)
    )
    assert response.status_code == 403


def test_bill_and_earnings(client, db, settings, seeded):
    book_appointment(
        db, settings, seeded.homeowner, seeded.home, date.today() + timedelta(days=3), cleaners=[seeded.cleaner]
    )

    bill = client.get("/billing/bill", headers=auth_headers(seeded.homeowner)).json()
    assert bill["appointmentDue"] == 120.0
    assert bill["totalDue"] == 120.0

    earnings = client.get("/payouts/earnings", headers=auth_headers(seeded.cleaner)).json()
    assert earnings["pending"] == {"count": 1, "amountCents": 10800}


# ============================================================================
# APPOINTMENTS / COMPLETION
# ============================================================================


def test_cancel_route(client, db, settings, seeded):
    appointment = book_appointment(db, settings, seeded.homeowner, seeded.home, date.today() + timedelta(days=10))

    info = client.get(f"/appointments/{appointment.id}/cancellation-info", headers=auth_headers(seeded.homeowner))
    assert info.json()["willChargeCancellationFee"] is False

    response = client.post(f"/appointments/{appointment.id}/cancel", headers=auth_headers(seeded.homeowner))
    assert response.status_code == 200
    assert response.json()["wasCancelled"] is True
    assert response.json()["cancellationFee"] == 0.0

    again = client.post(f"/appointments/{appointment.id}/cancel", headers=auth_headers(seeded.homeowner))
    assert again.status_code == 409


def test_completion_without_photos(client, db, settings, seeded):
    appointment = book_appointment(
        db, settings, seeded.homeowner, seeded.home, date.today(), cleaners=[seeded.cleaner]
    )

    response = client.post(f"/completion/submit/{appointment.id}", headers=auth_headers(seeded.cleaner))

    assert response.status_code == 400
    assert response.json()["missingPhotos"] == "before"


def test_cleaner_cannot_complete_for_someone_else(client, db, settings, seeded):
    appointment = book_appointment(
        db, settings, seeded.homeowner, seeded.home, date.today(), cleaners=[seeded.cleaner]
    )

    response = client.post(
        "/payments/complete-job",
        json={"appointmentId": appointment.id, "cleanerId": seeded.cleaner.id + 1000},
        headers=auth_headers(seeded.cleaner),
    )
    assert response.status_code == 403


# ============================================================================
# WEBHOOKS
# ============================================================================


def test_signed_webhook_is_accepted(client):
    body = json.dumps({"id": "evt_1", "type": "customer.created", "data": {"object": {}}}).encode()
    header = build_signature_header(body, WEBHOOK_SECRET, int(time.time()))

    response = client.post(
        "/payments/webhook",
        content=body,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True, "handled": False}


def test_badly_signed_webhook_is_rejected(client):
    body = b'{"id": "evt_1", "type": "payment_intent.succeeded"}'
    header = build_signature_header(body, "whsec_wrong", int(time.time()))

    response = client.post("/payments/webhook", content=body, headers={"Stripe-Signature": header})

    assert response.status_code == 401


def test_gateway_handlers_run_in_the_threadpool():
    gateway_routes = [
        ("/payments/authorize", "POST"),
        ("/payments/capture", "POST"),
        ("/payments/cancel-or-refund", "POST"),
        ("/appointments/{appointment_id}/cancel", "POST"),
        ("/completion/approve/{appointment_id}", "POST"),
        ("/recurring-schedules/{schedule_id}/pause", "POST"),
        ("/recurring-schedules/{schedule_id}", "DELETE"),
        ("/recurring-schedules/generate-all", "POST"),
    ]
    endpoints = {
        (route.path, method): route.endpoint
        for route in app.routes
        if isinstance(route, APIRoute)
        for method in route.methods
    }

    for key in gateway_routes:
        assert not inspect.iscoroutinefunction(endpoints[key]), key
