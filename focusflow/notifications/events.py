from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.db import SessionLocal
from focusflow.models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
  recipient_id: str
  message: str
  actor_id: str | None = None
  task_id: str | None = None


def _record(ev: NotificationEvent) -> Notification:
  return Notification(user_id=ev.recipient_id, actor_id=ev.actor_id, task_id=ev.task_id, message=ev.message, read=False)


def stage_notifications(db: AsyncSession, events: list[NotificationEvent]) -> int:
  """Add notifications to the caller's transaction; they commit or fail with it."""
  for ev in events:
    db.add(_record(ev))
  return len(events)


async def deliver_notifications(events: list[NotificationEvent]) -> int:
  """Write notifications in their own transaction after the source change committed.

  Failures are logged and dropped; the originating change stays in place.
  """
  if not events:
    return 0
  try:
    async with SessionLocal() as db:
      db.add_all([_record(ev) for ev in events])
      await db.commit()
  except SQLAlchemyError:
    logger.exception("Dropped %d notification(s) after write failure", len(events))
    return 0
  return len(events)


async def mark_task_notifications_read(db: AsyncSession, *, user_id: str, task_id: str) -> int:
  res = await db.execute(
    update(Notification)
    .where(Notification.user_id == user_id, Notification.task_id == task_id, Notification.read.is_(False))
    .values(read=True)
  )
  return res.rowcount or 0


async def purge_task_notifications(db: AsyncSession, *, user_ids: list[str], task_id: str) -> int:
  if not user_ids:
    return 0
  res = await db.execute(delete(Notification).where(Notification.user_id.in_(user_ids), Notification.task_id == task_id))
  return res.rowcount or 0
