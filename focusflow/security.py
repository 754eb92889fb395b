from __future__ import annotations

import hashlib
import re
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from focusflow.config import settings
from focusflow.errors import AuthError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d]{8,}$")


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def password_is_strong(password: str) -> bool:
  return bool(_PASSWORD_RE.fullmatch(password or ""))


def create_access_token(user_id: str, *, now: datetime | None = None) -> str:
  issued = now or datetime.now(timezone.utc)
  payload = {
    "sub": user_id,
    "iat": int(issued.timestamp()),
    "exp": int((issued + timedelta(days=settings.jwt_expire_days)).timestamp()),
  }
  return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> str:
  try:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
  except ExpiredSignatureError as exc:
    raise AuthError("Token has expired") from exc
  except JWTError as exc:
    raise AuthError("Invalid token") from exc
  user_id = payload.get("sub")
  if not user_id:
    raise AuthError("Invalid token")
  return str(user_id)


def otp_new() -> str:
  return str(secrets.randbelow(900000) + 100000)


def otp_hash(code: str) -> str:
  return hashlib.sha256((code or "").strip().encode("utf-8")).hexdigest()


def otp_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(minutes=settings.otp_ttl_minutes)


def invitation_token_new() -> str:
  return secrets.token_urlsafe(32)


def as_utc(value: datetime) -> datetime:
  # SQLite hands back naive datetimes for timezone-aware columns.
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)
