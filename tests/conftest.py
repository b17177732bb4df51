"""Pytest configuration and fixtures for Lukaut tests.

Every test gets its own SQLite database file and storage directory under
``tmp_path``; services under test open sessions through the normal
``get_session`` path.
"""

from __future__ import annotations

from datetime import date
from io import BytesIO
from uuid import uuid4

import pytest
import pytest_asyncio
from PIL import Image

from lukaut.accounts import service as account_service
from lukaut.ai.mock import MockProvider
from lukaut.ai.provider import set_provider
from lukaut.config import reset_config
from lukaut.core.storage import LocalStorage, set_storage
from lukaut.db.connection import close_db, get_session_factory, init_db
from lukaut.db.models import UserModel
from lukaut.inspections.service import InspectionParams, create_inspection
from lukaut.notifications.email import set_email_service

TEST_SECRET = "test-secret-key"
TEST_PASSWORD = "correct-horse-battery"
UNSET_ENV = (
    "ENVIRONMENT",
    "SMTP_HOST",
    "ADMIN_EMAILS",
    "STRIPE_SECRET_KEY",
    "STRIPE_STARTER_PRICE_ID",
    "STRIPE_PROFESSIONAL_PRICE_ID",
    "AI_PROVIDER",
    "OPENAI_API_KEY",
    "AI_MODEL",
    "INVITE_CODES_ENABLED",
    "VALID_INVITE_CODES",
)


@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Isolated configuration for every test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'lukaut.db'}")
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("BASE_URL", "http://testserver")
    monkeypatch.setenv("LOCAL_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setenv("WORKER_RETRY_DELAY", "0")
    for name in UNSET_ENV:
        monkeypatch.delenv(name, raising=False)
    # Minimum bcrypt cost keeps account tests fast
    monkeypatch.setattr(account_service, "BCRYPT_ROUNDS", 4)

    reset_config()
    set_storage(None)
    set_email_service(None)
    set_provider(None)
    yield
    reset_config()
    set_storage(None)
    set_email_service(None)
    set_provider(None)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    """Local storage rooted in the test's temp directory."""
    backend = LocalStorage(
        root=tmp_path / "storage",
        base_url="http://testserver",
        secret=TEST_SECRET,
    )
    set_storage(backend)
    return backend


@pytest.fixture
def ai_provider() -> MockProvider:
    """Mock AI provider installed for the test; adjust its analysis or error to script it."""
    provider = MockProvider()
    set_provider(provider)
    return provider


@pytest_asyncio.fixture()
async def db():
    """Create the schema in the test database and dispose the engine afterwards."""
    await init_db()
    yield
    await close_db()


@pytest_asyncio.fixture()
async def db_session(db):
    """A session on the test database. Tests commit explicitly when needed."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def make_user(db_session):
    """Factory for users with a known password."""

    async def _make(email: str | None = None, **kwargs) -> UserModel:
        user = UserModel(
            email=email or f"inspector-{uuid4().hex[:8]}@example.com",
            password_hash=account_service.hash_password(TEST_PASSWORD),
            name=kwargs.pop("name", "Pat Inspector"),
            **kwargs,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture()
async def user(make_user) -> UserModel:
    return await make_user()


def inspection_params(**overrides) -> InspectionParams:
    values = {
        "title": "Riverside Tower Phase 2",
        "inspection_date": date.today(),
        "address_line1": "100 River Rd",
        "city": "Austin",
        "state": "TX",
        "postal_code": "78701",
    }
    values.update(overrides)
    return InspectionParams(**values)


@pytest.fixture
def make_inspection(db_session):
    """Factory for draft inspections owned by a given user."""

    async def _make(owner: UserModel, **overrides):
        return await create_inspection(db_session, owner.id, inspection_params(**overrides))

    return _make


def image_bytes(fmt: str = "PNG", size: tuple[int, int] = (640, 480)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=(200, 120, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return image_bytes("JPEG", (1200, 800))


@pytest.fixture
def password() -> str:
    """Plain-text password of users made by ``make_user``."""
    return TEST_PASSWORD
