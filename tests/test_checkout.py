from datetime import datetime, timedelta

import pytest

from gclients.auth.tokens import validate_token
from gclients.checkout.checkout_models import CheckoutIntent, CheckoutMode, CheckoutStep
from gclients.checkout.checkout_service import apply_checkout_steps, resume_incomplete_checkouts
from gclients.enrollments.enrollment_service import create_track_enrollment
from tests.conftest import auth_headers, make_track


def checkout_body(**overrides):
    body = {
        "trackSlug": "react-101",
        "firstName": "Linus",
        "lastName": "Pauling",
        "email": "linus@example.com",
        "phone": "+1 555 0100",
        "gender": "male",
        "location": "Portland",
        "password": "secret123",
        "paymentSuccess": True,
        "paymentDetails": {"gateway": "test", "reference": "pay_123"},
    }
    body.update(overrides)
    return body


async def record_counts(db):
    return {
        "users": await db.users.count_documents({}),
        "enrollments": await db.track_enrollments.count_documents({}),
        "invoices": await db.invoices.count_documents({}),
        "emails": await db.email_outbox.count_documents({}),
    }


# ==================== ANONYMOUS CHECKOUT ====================

async def test_successful_payment_creates_user_enrollment_and_paid_invoice(client, db, mailer, track):
    resp = await client.post("/api/checkout/process", json=checkout_body())

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["autoLogin"] is True
    assert body["message"] == "Account created and enrollment successful"
    assert "pendingPayment" not in body

    user = await db.users.find_one({"email": "linus@example.com"})
    assert validate_token(body["token"]) == user["user_id"]
    assert body["user"]["id"] == user["user_id"]
    assert user["role"] == "learner"
    assert user["bio"] == "Learning React 101"

    enrollments = await db.track_enrollments.find({"learner_id": user["user_id"]}).to_list(length=None)
    assert len(enrollments) == 1
    assert enrollments[0]["track_id"] == track["track_id"]
    assert enrollments[0]["status"] == "active"

    invoices = await db.invoices.find({"learner_id": user["user_id"]}).to_list(length=None)
    assert len(invoices) == 1
    assert invoices[0]["invoice_id"] == body["invoiceId"]
    assert invoices[0]["amount"] == 100
    assert invoices[0]["status"] == "paid"
    assert invoices[0]["payment_date"] is not None

    assert [m["to"] for m in mailer.sent] == ["linus@example.com"]
    assert "React 101 enrollment is confirmed" in mailer.sent[0]["subject"]


async def test_failed_payment_creates_user_and_unpaid_invoice_only(client, db, mailer, track):
    before = datetime.utcnow()
    resp = await client.post("/api/checkout/process", json=checkout_body(paymentSuccess=False))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["pendingPayment"] is True
    assert body["autoLogin"] is True

    user = await db.users.find_one({"email": "linus@example.com"})
    assert validate_token(body["token"]) == user["user_id"]
    assert await db.track_enrollments.count_documents({}) == 0

    invoice = await db.invoices.find_one({"invoice_id": body["invoiceId"]})
    assert invoice["status"] == "unpaid"
    assert invoice["amount"] == 100
    expected_due = before + timedelta(days=30)
    assert abs((invoice["due_date"] - expected_due).total_seconds()) < 60

    assert len(mailer.sent) == 1
    assert "Payment Pending for React 101" in mailer.sent[0]["subject"]
    assert body["invoiceId"] in mailer.sent[0]["text"]


async def test_existing_email_is_refused_without_writes(client, db, learner, track):
    before = await record_counts(db)

    resp = await client.post("/api/checkout/process", json=checkout_body(email="Learner@GClients.test"))

    assert resp.status_code == 403
    body = resp.json()
    assert body["success"] is False
    assert body["existingUser"] is True
    assert body["requiresAuthentication"] is True
    assert await record_counts(db) == before
    assert await db.checkout_intents.count_documents({}) == 0


async def test_unknown_track_is_not_found(client, db):
    resp = await client.post("/api/checkout/process", json=checkout_body(trackSlug="does-not-exist"))

    assert resp.status_code == 404
    assert await db.users.count_documents({}) == 0


@pytest.mark.parametrize("overrides, message", [
    ({"firstName": "  "}, "Missing required fields"),
    ({"email": "not-an-email"}, "Invalid email address"),
    ({"password": "12345"}, "Password must be at least 6 characters long"),
])
async def test_invalid_fields_are_rejected(client, db, track, overrides, message):
    resp = await client.post("/api/checkout/process", json=checkout_body(**overrides))

    assert resp.status_code == 400
    assert resp.json()["message"] == message
    assert await db.users.count_documents({}) == 0


async def test_missing_body_fields_are_a_400(client, track):
    body = checkout_body()
    del body["password"]

    resp = await client.post("/api/checkout/process", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Missing required fields"}


async def test_mail_outage_does_not_fail_checkout(client, db, mailer, track):
    mailer.fail = True

    resp = await client.post("/api/checkout/process", json=checkout_body())

    assert resp.status_code == 200
    assert await db.track_enrollments.count_documents({}) == 1
    message = await db.email_outbox.find_one({"kind": "checkout_welcome"})
    assert message["status"] == "failed"
    assert message["attempts"] == 1


async def test_slug_from_other_track_enrolls_in_that_track_only(client, db, track):
    other = await make_track(db, name="Python Basics", price=250)

    resp = await client.post("/api/checkout/process", json=checkout_body(trackSlug="python-basics"))

    assert resp.status_code == 200
    invoice = await db.invoices.find_one({"invoice_id": resp.json()["invoiceId"]})
    assert invoice["track_id"] == other["track_id"]
    assert invoice["amount"] == 250


# ==================== AUTHENTICATED CHECKOUT ====================

async def test_authenticated_checkout_success(client, db, mailer, learner, track):
    resp = await client.post(
        "/api/checkout/authenticated",
        json={"trackSlug": "react-101", "paymentSuccess": True, "paymentDetails": {"ref": "x"}},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Enrollment successful"
    assert "token" not in body
    assert await db.track_enrollments.count_documents({"learner_id": learner["user_id"]}) == 1
    invoice = await db.invoices.find_one({"invoice_id": body["invoiceId"]})
    assert invoice["status"] == "paid"
    assert mailer.sent[0]["subject"] == "Enrollment Confirmed: React 101"


async def test_authenticated_checkout_failed_payment(client, db, mailer, learner, track):
    resp = await client.post(
        "/api/checkout/authenticated",
        json={"trackSlug": "react-101", "paymentSuccess": False},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["pendingPayment"] is True
    assert "token" not in body
    assert await db.track_enrollments.count_documents({}) == 0
    invoice = await db.invoices.find_one({"invoice_id": body["invoiceId"]})
    assert invoice["status"] == "unpaid"
    assert mailer.sent[0]["subject"] == "Payment Failed - React 101 Enrollment Pending"


async def test_authenticated_checkout_requires_token(client, db, track):
    resp = await client.post("/api/checkout/authenticated", json={"trackSlug": "react-101", "paymentSuccess": True})

    assert resp.status_code == 401
    assert await db.invoices.count_documents({}) == 0


async def test_already_enrolled_learner_gets_conflict_without_writes(client, db, learner, track):
    await create_track_enrollment(db, learner["user_id"], track["track_id"])
    before = await record_counts(db)

    resp = await client.post(
        "/api/checkout/authenticated",
        json={"trackSlug": "react-101", "paymentSuccess": True},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 409
    assert resp.json()["message"] == "You are already enrolled in this track."
    assert await record_counts(db) == before


async def test_cancelled_enrollment_still_blocks_checkout(client, db, learner, track):
    await create_track_enrollment(db, learner["user_id"], track["track_id"], status="cancelled")

    resp = await client.post(
        "/api/checkout/authenticated",
        json={"trackSlug": "react-101", "paymentSuccess": True},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 409


# ==================== INTENTS ====================

def interrupted_intent(learner, track, **fields):
    intent = CheckoutIntent(**{
        "intent_id": "CHK_TEST",
        "mode": CheckoutMode.AUTHENTICATED,
        "email": learner["email"],
        "track_id": track["track_id"],
        "amount": track["price"],
        "payment_success": True,
        "learner_id": learner["user_id"],
        "enrollment_id": "ENR_TEST",
        "invoice_id": "INV_TEST",
        "message_id": "MSG_TEST",
        **fields,
    }).dict()
    intent["updated_at"] = datetime.utcnow() - timedelta(minutes=10)
    return intent


async def test_interrupted_checkout_is_resumed_once(db, learner, track):
    await db.checkout_intents.insert_one(interrupted_intent(learner, track))

    result = await resume_incomplete_checkouts(db)

    assert result["resumed"] == 1
    assert result["message_ids"] == ["MSG_TEST"]
    assert await db.track_enrollments.find_one({"enrollment_id": "ENR_TEST"})
    assert (await db.invoices.find_one({"invoice_id": "INV_TEST"}))["status"] == "paid"
    assert (await db.checkout_intents.find_one({"intent_id": "CHK_TEST"}))["status"] == "completed"

    again = await resume_incomplete_checkouts(db)
    assert again["resumed"] == 0
    assert await db.invoices.count_documents({}) == 1


async def test_recent_intents_are_left_alone(db, learner, track):
    intent = interrupted_intent(learner, track)
    intent["updated_at"] = datetime.utcnow()
    await db.checkout_intents.insert_one(intent)

    result = await resume_incomplete_checkouts(db)

    assert result["resumed"] == 0
    assert await db.track_enrollments.count_documents({}) == 0


async def test_reapplying_steps_does_not_duplicate_records(db, learner, track):
    # enrollment was written but the step never got recorded
    await create_track_enrollment(db, learner["user_id"], track["track_id"], enrollment_id="ENR_TEST")
    intent = interrupted_intent(learner, track, completed_steps=[CheckoutStep.ACCOUNT])
    await db.checkout_intents.insert_one(dict(intent))

    message_id = await apply_checkout_steps(db, intent, track, learner)

    assert message_id == "MSG_TEST"
    assert await db.track_enrollments.count_documents({}) == 1
    assert await db.invoices.count_documents({}) == 1
    assert await db.email_outbox.count_documents({}) == 1

    assert await apply_checkout_steps(db, intent, track, learner) is None
    assert await db.email_outbox.count_documents({}) == 1


async def test_intent_without_account_is_abandoned(db, learner, track):
    intent = interrupted_intent(learner, track, mode=CheckoutMode.ANONYMOUS)
    intent["learner_id"] = None
    await db.checkout_intents.insert_one(intent)

    result = await resume_incomplete_checkouts(db)

    assert result == {"resumed": 0, "failed": 1, "message_ids": []}
    assert (await db.checkout_intents.find_one({"intent_id": "CHK_TEST"}))["status"] == "failed"
