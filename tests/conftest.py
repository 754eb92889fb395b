from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TMP = Path(tempfile.mkdtemp(prefix="focusflow_test_"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'focusflow_test.db'}")
os.environ.setdefault("UPLOAD_DIR", str(_TMP / "uploads"))
os.environ.setdefault("MAIL_PROVIDER", "local")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("COOKIE_SECURE", "false")

from focusflow.config import settings
from focusflow.db import SessionLocal, engine
from focusflow.main import app
from focusflow.models import (
  ActivityEntry,
  Attachment,
  Base,
  Comment,
  CommentReply,
  Invitation,
  Notification,
  Task,
  User,
)
from focusflow.notifications.service import LOCAL_OUTBOX
from focusflow.rate_limit import limiter
from focusflow.security import hash_password

PASSWORD = "Password123"
_PASSWORD_HASH = hash_password(PASSWORD)
SEEDED = ("alice", "bob", "carol")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  LOCAL_OUTBOX.clear()
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(Notification))
    await db.execute(delete(CommentReply))
    await db.execute(delete(Comment))
    await db.execute(delete(ActivityEntry))
    await db.execute(delete(Attachment))
    await db.execute(delete(Invitation))
    await db.execute(delete(Task))
    await db.execute(delete(User))
    for name in SEEDED:
      db.add(
        User(
          username=name,
          email=f"{name}@focusflow.test",
          password_hash=_PASSWORD_HASH,
          is_verified=True,
          is_new_user=False,
        )
      )
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. focusflow_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def login(client: AsyncClient, username: str, password: str = PASSWORD) -> dict[str, str]:
  """Log in a seeded user and return headers that authenticate as them."""
  res = await client.post("/auth/login", json={"email": f"{username}@focusflow.test", "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and f"{settings.cookie_name}=" in cookie
  # Several users share one client; the header wins over the cookie jar.
  return {"Authorization": f"Bearer {res.json()['token']}"}


async def seeded_user_id(username: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.username == username))
    u = res.scalar_one()
    return u.id


async def create_task(client: AsyncClient, headers: dict[str, str], title: str = "Ship it", **fields) -> dict:
  data = {"title": title, **fields}
  res = await client.post("/tasks", data=data, headers=headers)
  assert res.status_code == 201, res.text
  return res.json()


async def add_member(client: AsyncClient, task_id: str, owner: dict[str, str], username: str) -> dict[str, str]:
  """Invite ``username`` by id and accept on their behalf; returns their headers."""
  uid = await seeded_user_id(username)
  r = await client.patch(
    f"/tasks/{task_id}", data={"assignedTo": f'["{uid}"]', "assignedToOperation": "add"}, headers=owner
  )
  assert r.status_code == 200, r.text
  member = await login(client, username)
  r = await client.post(f"/tasks/invitations/accept/{task_id}", headers=member)
  assert r.status_code == 200, r.text
  return member
