from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.config import settings
from focusflow.db import SessionLocal
from focusflow.errors import AuthError, NotFoundError
from focusflow.models import User
from focusflow.security import decode_access_token


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def _request_token(request: Request) -> str | None:
  token = request.cookies.get(settings.cookie_name)
  auth = request.headers.get("authorization")
  if auth and auth.lower().startswith("bearer "):
    token = auth.split(" ", 1)[1].strip()
  return token or None


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  token = _request_token(request)
  if not token:
    raise AuthError("No token provided, unauthorized")
  user_id = decode_access_token(token)

  res = await db.execute(select(User).where(User.id == user_id))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFoundError("User not found")
  if not u.is_verified:
    raise AuthError("User not verified")
  return u


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
