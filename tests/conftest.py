"""Shared fixtures: an in-memory SQLite catalogue and an HTTP client on the app."""
import httpx
import pytest

from catalogue_api.api import create_app
from catalogue_api.config import Settings
from catalogue_api.db import Database
from catalogue_api.db_utils import create_schema
from catalogue_api.schemas import TestInput

ADMIN_TOKEN = "admin-token"
VIEWER_TOKEN = "viewer-token"


@pytest.fixture
async def database():
    """Fresh in-memory database with the full schema."""
    db = Database("sqlite://")
    await create_schema(db)
    yield db
    await db.dispose()


@pytest.fixture
async def session(database):
    """One transaction spanning the test; committed at teardown."""
    async with database.transaction() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        api_tokens={ADMIN_TOKEN: "admin", VIEWER_TOKEN: "viewer"},
        log_level="WARNING",
        log_json=False,
    )


@pytest.fixture
async def client(database, settings):
    """HTTP client bound to the app, sharing the test database."""
    app = create_app(settings=settings, database=database)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


def make_test_input(name="WISC-V", **overrides):
    """A test form with sensible defaults."""
    values = {"locale": "fr", "name": name}
    values.update(overrides)
    return TestInput(**values)
