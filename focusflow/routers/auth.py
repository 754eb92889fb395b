from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.config import settings
from focusflow.deps import client_ip, get_current_user, get_db
from focusflow.errors import AuthError, NotFoundError, ValidationError
from focusflow.models import Invitation, Notification, User
from focusflow.notifications.events import NotificationEvent, deliver_notifications
from focusflow.notifications.service import send_otp_email
from focusflow.rate_limit import limiter
from focusflow.schemas import (
  AuthMessageOut,
  InvitationOut,
  LoginIn,
  LoginOut,
  RegisterIn,
  RegisterOut,
  ResendOtpIn,
  UserEnvelopeOut,
  UserListOut,
  UserOut,
  VerifyOtpIn,
)
from focusflow.security import (
  as_utc,
  create_access_token,
  hash_password,
  otp_expires_at,
  otp_hash,
  otp_new,
  password_is_strong,
  verify_password,
)
from focusflow.storage import delete_quietly, get_storage, read_uploads

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

PASSWORD_POLICY = (
  "Password must be at least 8 characters long and contain at least one uppercase letter, "
  "one lowercase letter, and one number."
)


def _welcome(username: str) -> str:
  return f"Welcome to FocusFlow, {username}! We're excited to have you here. Explore your dashboard to get started."


async def _user_outs(db: AsyncSession, users: list[User]) -> list[UserOut]:
  invitations: dict[str, list[Invitation]] = {}
  if users:
    res = await db.execute(
      select(Invitation).where(Invitation.user_id.in_([u.id for u in users])).order_by(Invitation.invited_at.asc())
    )
    for inv in res.scalars().all():
      invitations.setdefault(inv.user_id, []).append(inv)
  out: list[UserOut] = []
  for u in users:
    mine = invitations.get(u.id, [])
    out.append(
      UserOut(
        id=u.id,
        username=u.username,
        email=u.email,
        firstname=u.firstname or "",
        lastname=u.lastname or "",
        avatar=u.avatar_url,
        isVerified=bool(u.is_verified),
        assignedTasks=[inv.task_id for inv in mine if inv.status == "accepted"],
        invitations=[InvitationOut(taskId=inv.task_id, status=inv.status, invitedAt=inv.invited_at) for inv in mine],
        createdAt=u.created_at,
      )
    )
  return out


async def _user_out(db: AsyncSession, u: User) -> UserOut:
  return (await _user_outs(db, [u]))[0]


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail="Too many requests",
    headers={"Retry-After": str(retry_after)},
  )


async def _user_by_email(db: AsyncSession, email: str) -> User | None:
  res = await db.execute(select(User).where(User.email == (email or "").strip().lower()))
  return res.scalar_one_or_none()


@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)) -> RegisterOut:
  email = payload.email.strip().lower()
  username = payload.username.strip()
  if await _user_by_email(db, email):
    raise ValidationError("Email Already Exists.")
  res = await db.execute(select(User.id).where(User.username == username))
  if res.scalar_one_or_none():
    raise ValidationError("Username Already Exists.")
  if not password_is_strong(payload.password):
    raise ValidationError(PASSWORD_POLICY)

  otp = otp_new()
  u = User(
    username=username,
    email=email,
    password_hash=hash_password(payload.password),
    is_verified=False,
    otp_hash=otp_hash(otp),
    otp_expires_at=otp_expires_at(),
  )
  db.add(u)
  await db.commit()

  await send_otp_email(u.email, u.username, otp)
  return RegisterOut(
    message="Registration successful. Please check your email to get the OTP.",
    userId=u.id,
    welcomeMessage=(
      f"Welcome to FocusFlow, {u.username}! We're excited to have you on board. Please verify your email to get started."
    ),
  )


@router.post("/verify-otp", response_model=UserEnvelopeOut)
async def verify_otp(payload: VerifyOtpIn, db: AsyncSession = Depends(get_db)) -> UserEnvelopeOut:
  u = await _user_by_email(db, payload.email)
  now = datetime.now(timezone.utc)
  if (
    not u
    or not u.otp_hash
    or u.otp_hash != otp_hash(payload.otp)
    or not u.otp_expires_at
    or as_utc(u.otp_expires_at) <= now
  ):
    raise ValidationError("Invalid OTP")
  u.is_verified = True
  u.otp_hash = None
  u.otp_expires_at = None
  await db.commit()
  return UserEnvelopeOut(message="OTP verified successfully", data=await _user_out(db, u))


@router.post("/resend-otp", response_model=AuthMessageOut)
async def resend_otp(payload: ResendOtpIn, db: AsyncSession = Depends(get_db)) -> AuthMessageOut:
  email_key = (payload.email or "").strip().lower()
  if email_key:
    _rate_limit_or_429(key=f"auth:otp:email:{email_key}", limit=int(settings.rate_limit_otp_email_per_minute), window_seconds=60)
  u = await _user_by_email(db, email_key)
  if not u:
    raise NotFoundError("User not found")
  if u.is_verified:
    raise ValidationError("Account is already verified")

  otp = otp_new()
  u.otp_hash = otp_hash(otp)
  u.otp_expires_at = otp_expires_at()
  await db.commit()

  await send_otp_email(u.email, u.username, otp)
  return AuthMessageOut(message="New OTP sent successfully")


@router.post("/login", response_model=LoginOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> LoginOut:
  ip = client_ip(request)
  email_key = (payload.email or "").strip().lower()
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email_key:
    _rate_limit_or_429(key=f"auth:login:email:{email_key}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)
  if not email_key or not payload.password:
    raise ValidationError("Email and password are required")

  u = await _user_by_email(db, email_key)
  if not u:
    raise NotFoundError("User not found")
  if not verify_password(payload.password, u.password_hash):
    logger.debug("Failed login for %s from %s", email_key, ip)
    raise AuthError("Invalid credentials")
  if not u.is_verified:
    raise AuthError("User not verified")

  token = create_access_token(u.id)
  response.set_cookie(
    key=settings.cookie_name,
    value=token,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="none" if settings.cookie_secure else "lax",
    domain=settings.cookie_domain or None,
    max_age=int(settings.cookie_max_age_days * 86400),
    path="/",
  )
  return LoginOut(message="Login successful", token=token, user=await _user_out(db, u))


@router.post("/logout", response_model=AuthMessageOut)
async def logout(response: Response) -> AuthMessageOut:
  response.delete_cookie(
    key=settings.cookie_name,
    path="/",
    domain=settings.cookie_domain or None,
    secure=settings.cookie_secure,
    httponly=True,
    samesite="none" if settings.cookie_secure else "lax",
  )
  return AuthMessageOut(message="Logout successful")


@router.get("/me", response_model=UserEnvelopeOut)
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserEnvelopeOut:
  events: list[NotificationEvent] = []
  if user.is_new_user:
    message = _welcome(user.username)
    res = await db.execute(select(Notification.id).where(Notification.user_id == user.id, Notification.message == message))
    if res.first() is None:
      events.append(NotificationEvent(recipient_id=user.id, actor_id=user.id, message=message))
    user.is_new_user = False
    await db.commit()
  await deliver_notifications(events)
  return UserEnvelopeOut(data=await _user_out(db, user))


@router.get("/users", response_model=UserListOut)
async def list_users(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserListOut:
  res = await db.execute(select(User).where(User.is_verified.is_(True)).order_by(User.username.asc()))
  return UserListOut(data=await _user_outs(db, list(res.scalars().all())))


@router.put("/update", response_model=UserEnvelopeOut)
async def update_profile(
  username: str | None = Form(None),
  firstname: str | None = Form(None),
  lastname: str | None = Form(None),
  avatar: UploadFile | None = File(None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> UserEnvelopeOut:
  username = (username or "").strip()
  if not username:
    raise ValidationError("Username is required")
  res = await db.execute(select(User.id).where(User.username == username, User.id != user.id))
  if res.scalar_one_or_none():
    raise ValidationError("Username already exists")
  uploads = await read_uploads([avatar] if avatar is not None else [], image_only=True)

  stale: list[str | None] = []
  user.username = username
  user.firstname = firstname or ""
  user.lastname = lastname or ""
  if uploads:
    stored = get_storage().save(uploads[0])
    stale.append(user.avatar_public_id)
    user.avatar_url = stored.url
    user.avatar_public_id = stored.public_id
  await db.commit()

  delete_quietly(stale)
  await deliver_notifications(
    [
      NotificationEvent(
        recipient_id=user.id,
        actor_id=user.id,
        message=f"Your profile has been updated successfully, {user.username}!",
      )
    ]
  )
  return UserEnvelopeOut(message="User profile updated successfully!", data=await _user_out(db, user))
