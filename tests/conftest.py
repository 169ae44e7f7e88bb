"""
Shared fixtures.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
the aiosqlite connections opened by the app all see the same schema and no
state leaks between tests.
"""

from pathlib import Path
from typing import Dict

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app
from models import UserModel


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "expenses.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return Settings(
        APP_ENV="test",
        LOG_LEVEL="WARNING",
        DATABASE_URL=f"sqlite+aiosqlite:///{db_path}",
        SECRET_KEY="test-secret-key",
        BCRYPT_ROUNDS=4,
        DEMO_USER_EMAIL="demo@tracker.com",
        DEMO_USER_PASSWORD="password123",
        DEMO_USER_NAME="Demo User",
    )


@pytest.fixture
def client(settings: Settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def signup(client: TestClient, email: str, name: str = "Test User", password: str = "secret123") -> Dict[str, str]:
    """Register a user and return the Authorization header for it."""
    response = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


@pytest.fixture
def alice(client: TestClient) -> Dict[str, str]:
    return signup(client, "alice@example.com", name="Alice")


@pytest.fixture
def bob(client: TestClient) -> Dict[str, str]:
    return signup(client, "bob@example.com", name="Bob")


@pytest_asyncio.fixture
async def database(settings: Settings):
    db = Database(settings.DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database: Database):
    async with database.sessionmaker() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def owners(session):
    """Two users, returned as (owner_a, owner_b) ids."""
    users = [
        UserModel(name="Owner A", email="a@example.com", password_hash="x"),
        UserModel(name="Owner B", email="b@example.com", password_hash="x"),
    ]
    session.add_all(users)
    await session.commit()
    return users[0].id, users[1].id
