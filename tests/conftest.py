"""Pytest configuration and shared fixtures"""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="projectdrop-tests-")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/app.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["EMAIL_LOG_DIR"] = os.path.join(_TMP, "emails")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from app import crud  # noqa: E402
from app.db.session import init_db  # noqa: E402
from app.deps import get_db, get_storage  # noqa: E402
from app.main import app  # noqa: E402
from app.utils.storage import LocalStorage  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test"""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "uploads")


@pytest_asyncio.fixture
async def client(engine, storage):
    """HTTP client against the app, wired to the per-test database and storage"""

    async def _get_db():
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# -------------------------
# helpers
# -------------------------
async def make_user(db, username: str, *, is_admin: bool = False, can_upload: bool = False):
    return await crud.create_user(
        db,
        email=f"{username}@example.com",
        username=username,
        hashed_password="not-a-real-hash",
        is_admin=is_admin,
        can_upload=can_upload,
    )


async def register(client, username: str, password: str = "password123") -> dict:
    resp = await client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def bearer(token_body: dict) -> dict:
    return {"Authorization": f"Bearer {token_body['access_token']}"}
