from datetime import datetime, timedelta

from gclients.auth.tokens import validate_token, verify_password
from gclients.users.user_models import UserRole
from tests.conftest import TEST_PASSWORD, auth_headers, make_user


def admin_registration(**overrides):
    body = {
        "firstName": "Mary",
        "lastName": "Jackson",
        "email": "mary@gclients.test",
        "contact": "555-0101",
        "password": "secret123",
        "confirmPassword": "secret123",
    }
    body.update(overrides)
    return body


# ==================== LOGIN ====================

async def test_login_returns_token(client, learner):
    resp = await client.post("/api/auth/login", json={"email": "LEARNER@gclients.test", "password": TEST_PASSWORD})

    assert resp.status_code == 200
    body = resp.json()
    assert validate_token(body["token"]) == learner["user_id"]
    assert body["user"]["email"] == "learner@gclients.test"
    assert "password_hash" not in body["user"]


async def test_login_requires_both_fields(client):
    resp = await client.post("/api/auth/login", json={"email": "a@b.co"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "Email and password are required"


async def test_login_with_wrong_password(client, learner):
    resp = await client.post("/api/auth/login", json={"email": learner["email"], "password": "nope-nope"})

    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid email or password"


async def test_unverified_login_sends_a_fresh_code(client, db, mailer):
    user = await make_user(db, "new@gclients.test", is_verified=False)

    resp = await client.post("/api/auth/login", json={"email": user["email"], "password": TEST_PASSWORD})

    assert resp.status_code == 401
    body = resp.json()
    assert body["requiresVerification"] is True
    assert body["email"] == user["email"]
    stored = await db.users.find_one({"user_id": user["user_id"]})
    assert stored["verification_otp"] in mailer.sent[0]["text"]


async def test_unverified_login_when_mail_is_down(client, db, mailer):
    user = await make_user(db, "new@gclients.test", is_verified=False)
    mailer.fail = True

    resp = await client.post("/api/auth/login", json={"email": user["email"], "password": TEST_PASSWORD})

    assert resp.status_code == 401
    assert resp.json()["message"] == "Please verify your email before logging in"


# ==================== REGISTRATION & VERIFICATION ====================

async def test_register_admin_then_verify(client, db, mailer):
    resp = await client.post("/api/auth/register-admin", json=admin_registration())

    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "admin"
    assert resp.json()["user"]["isVerified"] is False

    stored = await db.users.find_one({"email": "mary@gclients.test"})
    otp = stored["verification_otp"]
    assert otp in mailer.sent[0]["text"]

    resp = await client.post("/api/auth/verify-email", json={"email": "mary@gclients.test", "otp": otp})

    assert resp.status_code == 200
    stored = await db.users.find_one({"email": "mary@gclients.test"})
    assert stored["is_verified"] is True
    assert stored.get("verification_otp") is None
    assert mailer.sent[-1]["subject"] == "Welcome to G-Clients!"


async def test_register_admin_survives_mail_outage(client, db, mailer):
    mailer.fail = True

    resp = await client.post("/api/auth/register-admin", json=admin_registration())

    assert resp.status_code == 201
    assert await db.users.count_documents({"role": UserRole.ADMIN.value}) == 1
    assert (await db.email_outbox.find_one({"kind": "verification"}))["status"] == "failed"


async def test_register_admin_validation(client, learner):
    resp = await client.post("/api/auth/register-admin", json=admin_registration(lastName=""))
    assert resp.json()["message"] == "All fields are required"

    resp = await client.post("/api/auth/register-admin", json=admin_registration(confirmPassword="secret124"))
    assert resp.json()["message"] == "Passwords do not match"

    resp = await client.post("/api/auth/register-admin", json=admin_registration(password="abc", confirmPassword="abc"))
    assert resp.json()["message"] == "Password must be at least 6 characters long"

    resp = await client.post("/api/auth/register-admin", json=admin_registration(email=learner["email"]))
    assert resp.status_code == 409


async def test_verify_with_expired_code(client, db):
    user = await make_user(db, "new@gclients.test", is_verified=False)
    await db.users.update_one({"user_id": user["user_id"]}, {"$set": {
        "verification_otp": "123456",
        "verification_otp_expiry": datetime.utcnow() - timedelta(minutes=1),
    }})

    resp = await client.post("/api/auth/verify-email", json={"email": user["email"], "otp": "123456"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired verification OTP"


async def test_resend_verification(client, db, mailer, learner):
    unknown = await client.post("/api/auth/resend-verification", json={"email": "ghost@gclients.test"})
    assert unknown.status_code == 200
    assert mailer.sent == []

    verified = await client.post("/api/auth/resend-verification", json={"email": learner["email"]})
    assert verified.status_code == 400
    assert verified.json()["message"] == "Email is already verified"

    await make_user(db, "new@gclients.test", is_verified=False)
    resp = await client.post("/api/auth/resend-verification", json={"email": "new@gclients.test"})
    assert resp.status_code == 200
    assert mailer.sent[0]["to"] == "new@gclients.test"


# ==================== PASSWORDS ====================

async def test_forgot_and_reset_password(client, db, mailer, learner):
    resp = await client.post("/api/auth/forgot-password", json={"email": learner["email"]})
    assert resp.status_code == 200

    token = (await db.users.find_one({"user_id": learner["user_id"]}))["reset_token"]
    assert f"reset-password?token={token}" in mailer.sent[0]["text"]

    resp = await client.post("/api/auth/reset-password", json={
        "token": token, "password": "brand-new", "confirmPassword": "brand-new"
    })
    assert resp.status_code == 200

    stored = await db.users.find_one({"user_id": learner["user_id"]})
    assert verify_password("brand-new", stored["password_hash"])
    assert stored.get("reset_token") is None

    reused = await client.post("/api/auth/reset-password", json={
        "token": token, "password": "another1", "confirmPassword": "another1"
    })
    assert reused.status_code == 400


async def test_forgot_password_does_not_reveal_accounts(client, mailer):
    resp = await client.post("/api/auth/forgot-password", json={"email": "ghost@gclients.test"})

    assert resp.status_code == 200
    assert "If an account with that email exists" in resp.json()["message"]
    assert mailer.sent == []


async def test_forgot_password_mail_failure_is_reported(client, mailer, learner):
    mailer.fail = True

    resp = await client.post("/api/auth/forgot-password", json={"email": learner["email"]})

    assert resp.status_code == 500
    assert resp.json()["message"] == "Failed to send password reset email. Try again."


async def test_update_password(client, db, learner):
    headers = auth_headers(learner)

    wrong = await client.post("/api/auth/update-password", headers=headers, json={
        "currentPassword": "not-it", "newPassword": "newpass1", "confirmPassword": "newpass1"
    })
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"

    resp = await client.post("/api/auth/update-password", headers=headers, json={
        "currentPassword": TEST_PASSWORD, "newPassword": "newpass1", "confirmPassword": "newpass1"
    })
    assert resp.status_code == 200
    stored = await db.users.find_one({"user_id": learner["user_id"]})
    assert verify_password("newpass1", stored["password_hash"])


# ==================== PROFILE ====================

async def test_update_profile(client, learner):
    resp = await client.put("/api/auth/update-user", headers=auth_headers(learner), json={
        "location": "Lagos", "gender": "female", "bio": "Frontend dev"
    })

    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["location"] == "Lagos"
    assert user["gender"] == "female"
    assert user["firstName"] == "Ada"


async def test_update_profile_ignores_nulls(client, db, learner):
    resp = await client.put("/api/auth/update-user", headers=auth_headers(learner), json={
        "firstName": None, "lastName": None, "bio": "Frontend dev"
    })

    assert resp.status_code == 200
    stored = await db.users.find_one({"user_id": learner["user_id"]})
    assert (stored["first_name"], stored["last_name"]) == ("Ada", "Lovelace")
    assert stored["bio"] == "Frontend dev"

    resp = await client.put("/api/auth/update-user", headers=auth_headers(learner), json={"firstName": None})
    assert resp.status_code == 400


async def test_update_profile_needs_fields(client, learner):
    resp = await client.put("/api/auth/update-user", headers=auth_headers(learner), json={})

    assert resp.status_code == 400
    assert resp.json()["message"] == "No valid fields to update"


async def test_check_and_check_email(client, learner):
    resp = await client.get("/api/auth/check", headers=auth_headers(learner))
    assert resp.json()["user"]["id"] == learner["user_id"]

    resp = await client.get("/api/auth/check", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401

    resp = await client.post("/api/auth/check-email", json={"email": learner["email"]})
    assert resp.json()["exists"] is True
    assert resp.json()["user"]["id"] == learner["user_id"]

    resp = await client.post("/api/auth/check-email", json={"email": "ghost@gclients.test"})
    assert resp.json() == {"success": True, "message": "Email checked", "exists": False, "user": None}
