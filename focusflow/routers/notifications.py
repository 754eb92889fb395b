from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.deps import get_current_user, get_db
from focusflow.errors import NotFoundError, ValidationError
from focusflow.models import Notification, Task, User
from focusflow.schemas import MarkAllReadOut, MessageOut, NotificationCreateIn, NotificationOut, NotificationTaskRef
from focusflow.task_view import user_ref

router = APIRouter(prefix="/notifications", tags=["notifications"])

NOT_FOUND = "Notification not found or not authorized"


async def _notification_out(db: AsyncSession, items: list[Notification]) -> list[NotificationOut]:
  user_ids = {n.user_id for n in items} | {n.actor_id for n in items if n.actor_id}
  task_ids = {n.task_id for n in items if n.task_id}
  users: dict[str, User] = {}
  tasks: dict[str, str] = {}
  if user_ids:
    ures = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in ures.scalars().all()}
  if task_ids:
    tres = await db.execute(select(Task.id, Task.title).where(Task.id.in_(task_ids)))
    tasks = {row.id: row.title for row in tres.all()}
  return [
    NotificationOut(
      id=n.id,
      user=user_ref(users.get(n.user_id)),
      actor=user_ref(users.get(n.actor_id)) if n.actor_id else None,
      task=NotificationTaskRef(id=n.task_id, title=tasks[n.task_id]) if n.task_id in tasks else None,
      message=n.message,
      read=bool(n.read),
      createdAt=n.created_at,
    )
    for n in items
  ]


async def _own_or_404(db: AsyncSession, notification_id: str, user: User) -> Notification:
  res = await db.execute(select(Notification).where(Notification.id == notification_id, Notification.user_id == user.id))
  n = res.scalar_one_or_none()
  if not n:
    raise NotFoundError(NOT_FOUND)
  return n


@router.get("", response_model=list[NotificationOut])
async def list_notifications(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[NotificationOut]:
  res = await db.execute(
    select(Notification).where(Notification.user_id == user.id).order_by(Notification.created_at.desc())
  )
  return await _notification_out(db, list(res.scalars().all()))


@router.post("", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
async def create_notification(
  payload: NotificationCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationOut:
  message = payload.message.strip()
  if not message:
    raise ValidationError("Message is required")
  found = await db.execute(select(User.id).where(User.id.in_({payload.user, payload.actionBy})))
  known = set(found.scalars().all())
  if payload.user not in known:
    raise ValidationError("Valid user ID is required")
  if payload.actionBy not in known:
    raise ValidationError("Valid actionBy ID is required")
  tres = await db.execute(select(Task.id).where(Task.id == payload.task))
  if not tres.scalar_one_or_none():
    raise NotFoundError("Task not found")

  n = Notification(user_id=payload.user, actor_id=payload.actionBy, task_id=payload.task, message=message, read=False)
  db.add(n)
  await db.commit()
  return (await _notification_out(db, [n]))[0]


@router.put("/mark-all", response_model=MarkAllReadOut)
async def mark_all_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MarkAllReadOut:
  res = await db.execute(
    update(Notification).where(Notification.user_id == user.id, Notification.read.is_(False)).values(read=True)
  )
  await db.commit()
  n = res.rowcount or 0
  if n == 0:
    return MarkAllReadOut(modifiedCount=0, message="No unread notifications to mark")
  return MarkAllReadOut(modifiedCount=n, message=f"{n} notifications marked as read")


@router.patch("/{notification_id}", response_model=NotificationOut)
async def mark_read(
  notification_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> NotificationOut:
  n = await _own_or_404(db, notification_id, user)
  n.read = True
  await db.commit()
  return (await _notification_out(db, [n]))[0]


@router.delete("/{notification_id}", response_model=MessageOut)
async def delete_notification(
  notification_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MessageOut:
  n = await _own_or_404(db, notification_id, user)
  await db.execute(delete(Notification).where(Notification.id == n.id))
  await db.commit()
  return MessageOut(message="Notification permanently deleted")
