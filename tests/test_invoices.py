import asyncio

import pytest

from gclients.checkout.checkout_service import settle_invoice
from gclients.errors import Conflict, NotFound
from gclients.invoices import invoice_service
from gclients.invoices.invoice_models import InvoiceStatus, decode_payment_details
from gclients.invoices.invoice_schemas import InvoicePayment
from tests.conftest import auth_headers, make_course, make_user


async def unpaid_invoice(db, learner, track, **fields):
    return await invoice_service.create_invoice(
        db,
        learner_id=learner["user_id"],
        amount=track["price"],
        track_id=track["track_id"],
        **fields
    )


# ==================== ADMIN ====================

async def test_admin_creates_invoice(client, admin, learner, track):
    resp = await client.post("/api/invoices", headers=auth_headers(admin), json={
        "learnerId": learner["user_id"],
        "trackId": track["track_id"],
        "amount": 100,
    })

    assert resp.status_code == 201
    invoice = resp.json()["invoice"]
    assert invoice["status"] == "unpaid"
    assert invoice["dueDate"] is not None
    assert invoice["track"]["slug"] == "react-101"
    assert invoice["learner"]["id"] == learner["user_id"]


async def test_invoice_needs_track_or_course(client, admin, learner):
    resp = await client.post("/api/invoices", headers=auth_headers(admin), json={
        "learnerId": learner["user_id"], "amount": 100,
    })

    assert resp.status_code == 400
    assert resp.json()["message"] == "Either courseId or trackId must be provided"


async def test_invoice_for_unknown_learner(client, admin, track):
    resp = await client.post("/api/invoices", headers=auth_headers(admin), json={
        "learnerId": "USR_MISSING", "trackId": track["track_id"], "amount": 100,
    })

    assert resp.status_code == 400
    assert resp.json()["message"] == "Learner not found"


async def test_admin_lists_and_filters(client, db, admin, learner, track):
    await unpaid_invoice(db, learner, track)
    await unpaid_invoice(db, learner, track, status=InvoiceStatus.PAID)

    resp = await client.get("/api/invoices", headers=auth_headers(admin))
    assert resp.json()["count"] == 2

    resp = await client.get("/api/invoices", params={"status": "paid"}, headers=auth_headers(admin))
    assert [i["status"] for i in resp.json()["invoices"]] == ["paid"]


async def test_mark_paid_sets_payment_date(client, db, admin, learner, track):
    invoice = await unpaid_invoice(db, learner, track)

    resp = await client.post(f"/api/invoices/{invoice['invoice_id']}/mark-paid", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json()["invoice"]["status"] == "paid"
    assert resp.json()["invoice"]["paymentDate"] is not None
    assert (await db.audit_logs.find_one({"action": "mark_invoice_paid"}))["target_id"] == invoice["invoice_id"]


async def test_admin_creates_paid_invoice_with_payment_date(client, admin, learner, track):
    resp = await client.post("/api/invoices", headers=auth_headers(admin), json={
        "learnerId": learner["user_id"],
        "trackId": track["track_id"],
        "amount": 100,
        "status": "paid",
    })

    assert resp.status_code == 201
    assert resp.json()["invoice"]["status"] == "paid"
    assert resp.json()["invoice"]["paymentDate"] is not None


async def test_mark_paid_twice_conflicts(client, db, admin, learner, track):
    invoice = await unpaid_invoice(db, learner, track)
    url = f"/api/invoices/{invoice['invoice_id']}/mark-paid"

    first = await client.post(url, headers=auth_headers(admin))
    second = await client.post(url, headers=auth_headers(admin))

    assert second.status_code == 409
    assert second.json()["message"] == "Invoice has already been paid"
    assert second.json()["success"] is False
    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert stored["payment_date"] is not None
    assert first.json()["invoice"]["paymentDate"] is not None
    assert await db.audit_logs.count_documents({"action": "mark_invoice_paid"}) == 1


async def test_mark_paid_keeps_first_payment_details(db, learner, track):
    invoice = await unpaid_invoice(db, learner, track)
    await invoice_service.mark_paid(db, invoice["invoice_id"], {"reference": "pay_1"})

    with pytest.raises(Conflict):
        await invoice_service.mark_paid(db, invoice["invoice_id"], {"reference": "pay_2"})
    with pytest.raises(Conflict):
        await invoice_service.record_failed_payment(db, invoice["invoice_id"], {"error": "late_decline"})

    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert decode_payment_details(stored["payment_details"]) == {"reference": "pay_1"}


async def test_mark_paid_unknown_invoice(db):
    with pytest.raises(NotFound):
        await invoice_service.mark_paid(db, "INV_MISSING")


async def test_update_to_paid_stamps_payment_date(client, db, admin, learner, track):
    invoice = await unpaid_invoice(db, learner, track)

    resp = await client.put(
        f"/api/invoices/{invoice['invoice_id']}",
        json={"status": "paid", "amount": 80},
        headers=auth_headers(admin),
    )

    body = resp.json()["invoice"]
    assert body["amount"] == 80
    assert body["paymentDate"] is not None


async def test_delete_invoice(client, db, admin, learner, track):
    invoice = await unpaid_invoice(db, learner, track)
    url = f"/api/invoices/{invoice['invoice_id']}"

    assert (await client.delete(url, headers=auth_headers(admin))).status_code == 200
    assert (await client.delete(url, headers=auth_headers(admin))).status_code == 404


# ==================== LEARNER ====================

async def test_learner_sees_only_own_invoices(client, db, learner, track):
    mine = await unpaid_invoice(db, learner, track)
    someone = await make_user(db, "someone@gclients.test")
    theirs = await unpaid_invoice(db, someone, track)
    headers = auth_headers(learner)

    resp = await client.get("/api/invoices/user", headers=headers)
    assert [i["id"] for i in resp.json()["invoices"]] == [mine["invoice_id"]]

    assert (await client.get(f"/api/invoices/{mine['invoice_id']}", headers=headers)).status_code == 200
    assert (await client.get(f"/api/invoices/{theirs['invoice_id']}", headers=headers)).status_code == 404


async def test_paying_an_invoice_enrolls_the_learner(client, db, mailer, learner, track):
    invoice = await unpaid_invoice(db, learner, track)

    resp = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": True, "paymentDetails": {"reference": "pay_9"}},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 200
    assert resp.json()["message"] == "Payment successful"
    assert resp.json()["invoice"]["paymentDetails"] == {"reference": "pay_9"}
    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert stored["status"] == "paid"
    assert await db.track_enrollments.count_documents({"learner_id": learner["user_id"]}) == 1
    assert mailer.sent[0]["subject"] == "Enrollment Confirmed: React 101"

    again = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": True},
        headers=auth_headers(learner),
    )
    assert again.status_code == 409


async def test_failed_invoice_payment_keeps_it_unpaid(client, db, mailer, learner, track):
    invoice = await unpaid_invoice(db, learner, track)

    resp = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": False, "paymentDetails": {"error": "card_declined"}},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 200
    assert resp.json()["pendingPayment"] is True
    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert stored["status"] == "unpaid"
    assert await db.track_enrollments.count_documents({}) == 0
    assert mailer.sent[0]["subject"] == "Payment Failed - React 101 Enrollment Pending"


async def test_paying_a_course_invoice_registers_for_the_course(client, db, learner, track):
    course = await make_course(db, track["track_id"])
    invoice = await invoice_service.create_invoice(
        db, learner_id=learner["user_id"], amount=50, course_id=course["course_id"]
    )

    resp = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": True},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 200
    assert await db.course_registrations.count_documents({"course_id": course["course_id"]}) == 1


async def test_cannot_pay_someone_elses_invoice(client, db, learner, track):
    someone = await make_user(db, "someone@gclients.test")
    invoice = await unpaid_invoice(db, someone, track)

    resp = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": True},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 403
    assert (await db.invoices.find_one({"invoice_id": invoice["invoice_id"]}))["status"] == "unpaid"


async def test_paying_an_already_paid_invoice_conflicts(client, db, learner, track):
    invoice = await unpaid_invoice(db, learner, track, status=InvoiceStatus.PAID)

    resp = await client.post(
        f"/api/invoices/{invoice['invoice_id']}/pay",
        json={"paymentSuccess": True, "paymentDetails": {"reference": "pay_dup"}},
        headers=auth_headers(learner),
    )

    assert resp.status_code == 409
    assert resp.json()["message"] == "Invoice has already been paid"
    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert stored["payment_details"] is None
    assert await db.track_enrollments.count_documents({}) == 0


async def test_concurrent_payments_settle_once(db, learner, track):
    invoice = await unpaid_invoice(db, learner, track)
    payments = [
        InvoicePayment(paymentSuccess=True, paymentDetails={"reference": reference})
        for reference in ("pay_a", "pay_b")
    ]

    results = await asyncio.gather(
        *(settle_invoice(db, learner, invoice["invoice_id"], payment) for payment in payments),
        return_exceptions=True,
    )

    settled = [r for r in results if not isinstance(r, Exception)]
    assert len(settled) == 1
    assert sum(isinstance(r, Conflict) for r in results) == 1
    winner = settled[0][0]["invoice"]["paymentDetails"]
    stored = await db.invoices.find_one({"invoice_id": invoice["invoice_id"]})
    assert decode_payment_details(stored["payment_details"]) == winner
    assert await db.track_enrollments.count_documents({"learner_id": learner["user_id"]}) == 1
