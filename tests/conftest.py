"""
Shared fixtures for API and service tests

The app runs against an in-memory mongomock database and a recording
mailer; startup hooks (real Mongo indexes, reconciler loop) are not run.
"""

from typing import List, Optional, Set

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from gclients.auth import tokens
from gclients.auth.tokens import issue_token
from gclients.catalog import course_service, track_service
from gclients.catalog.catalog_schemas import CourseCreate, TrackCreate
from gclients.database import create_indexes, get_db
from gclients.main import app
from gclients.notifications.mailer import MailDeliveryError
from gclients.users import user_service
from gclients.users.user_models import UserRole

TEST_PASSWORD = "secret123"


class FakeMailer:
    """Records every send; set `fail` to simulate a transport outage, add to `bouncing` to reject one address"""

    def __init__(self):
        self.sent: List[dict] = []
        self.fail = False
        self.bouncing: Set[str] = set()

    async def send(self, to_email: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        if self.fail or to_email in self.bouncing:
            raise MailDeliveryError("Failed to send email")
        self.sent.append({"to": to_email, "subject": subject, "text": text_body, "html": html_body})


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(tokens, "BCRYPT_ROUNDS", 4)


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()["gclients_test"]
    await create_indexes(database)
    return database


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
async def client(db, mailer):
    async def override_get_db():
        return db

    app.dependency_overrides[get_db] = override_get_db
    original_mailer = app.state.mailer
    app.state.mailer = mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.mailer = original_mailer


def auth_headers(user: dict) -> dict:
    return {"Authorization": f"Bearer {issue_token(user['user_id'])}"}


async def make_user(db, email: str, role: UserRole = UserRole.LEARNER, is_verified: bool = True, **profile) -> dict:
    return await user_service.create_user(
        db,
        first_name=profile.pop("first_name", "Ada"),
        last_name=profile.pop("last_name", "Lovelace"),
        email=email,
        password=TEST_PASSWORD,
        role=role,
        is_verified=is_verified,
        **profile
    )


async def make_track(db, name: str = "React 101", price: float = 100, **fields) -> dict:
    data = TrackCreate(
        name=name,
        price=price,
        duration=fields.pop("duration", 8),
        instructor=fields.pop("instructor", "Grace Hopper"),
        description=fields.pop("description", "Components, hooks and state"),
        **fields
    )
    return await track_service.create_track(db, data)


async def make_course(db, track_id: str, title: str = "Hooks in Depth", **fields) -> dict:
    data = CourseCreate(
        title=title,
        description=fields.pop("description", "useState, useEffect and friends"),
        instructor=fields.pop("instructor", "Grace Hopper"),
        duration=fields.pop("duration", 2),
        price=fields.pop("price", 50),
        track=track_id,
    )
    return await course_service.create_course(db, data)


@pytest.fixture
async def admin(db):
    return await make_user(db, "admin@gclients.test", role=UserRole.ADMIN)


@pytest.fixture
async def learner(db):
    return await make_user(db, "learner@gclients.test")


@pytest.fixture
async def track(db):
    return await make_track(db)
