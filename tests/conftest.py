"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite database per test (schema from the ORM metadata)
- Model factories for users, projects and work items
- A recording dispatch gateway and default collaborators wired to it
- HTTPX AsyncClient bound to the app with the test session
"""
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Generator, Sequence

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from notifier.core.config import settings
from notifier.core.deps import get_db
from notifier.db.base import Base
from notifier.db.models import Project, User, WorkItem
from notifier.db.session import SessionLocal
from notifier.main import app
from notifier.services import work_item_notification_service

INTERNAL_SECRET = "test-internal-secret"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """Isolated in-memory database with the full schema."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine: Engine) -> Generator[Session, None, None]:
    """Session bound to the per-test database (autoflush off, like the app)."""
    session = SessionLocal(bind=db_engine)
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def mail_settings(monkeypatch):
    """Deterministic mail and secret settings for every test."""
    monkeypatch.setattr(settings, "MAIL_INBOX_ADDRESS", "issues@example.com")
    monkeypatch.setattr(settings, "MAIL_THREADING_DOMAIN", "notifier.test")
    monkeypatch.setattr(settings, "SERVER_URL", "https://tracker.example.com")
    monkeypatch.setattr(settings, "INTERNAL_SECRET", INTERNAL_SECRET)


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture(scope="function")
def make_user(db: Session) -> Callable[..., User]:
    """Create a user; email defaults to <username>@example.com."""

    def _make(username: str, **kwargs) -> User:
        user = User(
            id=uuid.uuid4(),
            username=username,
            display_name=kwargs.pop("display_name", username.title()),
            email=kwargs.pop("email", f"{username}@example.com"),
            **kwargs,
        )
        db.add(user)
        db.flush()
        return user

    return _make


@pytest.fixture(scope="function")
def project(db: Session) -> Project:
    project = Project(id=uuid.uuid4(), key="FOO", name="Foo")
    db.add(project)
    db.flush()
    return project


@pytest.fixture(scope="function")
def submitter(make_user) -> User:
    return make_user("submitter")


@pytest.fixture(scope="function")
def make_work_item(db: Session, project: Project, submitter: User) -> Callable[..., WorkItem]:
    counter = {"number": 0}

    def _make(**kwargs) -> WorkItem:
        counter["number"] += 1
        work_item = WorkItem(
            id=uuid.uuid4(),
            project=kwargs.pop("project", project),
            number=kwargs.pop("number", counter["number"]),
            title=kwargs.pop("title", "Login page crashes"),
            description=kwargs.pop("description", None),
            state=kwargs.pop("state", "Open"),
            submitter=kwargs.pop("submitter", submitter),
            submitted_at=kwargs.pop("submitted_at", datetime.now(timezone.utc)),
            **kwargs,
        )
        db.add(work_item)
        db.flush()
        return work_item

    return _make


@pytest.fixture(scope="function")
def work_item(make_work_item) -> WorkItem:
    return make_work_item()


# =============================================================================
# Collaborator Fakes
# =============================================================================

@dataclass
class SentMail:
    to: list[str]
    cc: list[str]
    subject: str
    html_body: str
    text_body: str
    reply_address: str | None
    thread_key: str


@dataclass
class RecordingDispatcher:
    """Dispatch gateway that records sends instead of queueing jobs."""

    sent: list[SentMail] = field(default_factory=list)

    def send_async(
        self,
        to: Sequence[str],
        cc: Sequence[str],
        subject: str,
        html_body: str,
        text_body: str,
        reply_address: str | None,
        thread_key: str,
    ) -> None:
        self.sent.append(
            SentMail(
                to=list(to),
                cc=list(cc),
                subject=subject,
                html_body=html_body,
                text_body=text_body,
                reply_address=reply_address,
                thread_key=thread_key,
            )
        )


@pytest.fixture(scope="function")
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(scope="function")
def collaborators(db: Session, dispatcher: RecordingDispatcher):
    """Default collaborators with the recording dispatcher."""
    bundle = work_item_notification_service.default_collaborators(db)
    bundle.dispatcher = dispatcher
    return bundle


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient sending the internal secret header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    ) as c:
        yield c

    app.dependency_overrides.clear()
