from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.models import Task, User
from focusflow.notifications.events import NotificationEvent

_MENTION_RE = re.compile(r"@(\w+)")


def extract_mentions(text: str | None) -> list[str]:
  """Usernames mentioned in ``text``, first occurrence order, duplicates dropped."""
  seen: list[str] = []
  for name in _MENTION_RE.findall(text or ""):
    if name not in seen:
      seen.append(name)
  return seen


def new_mentions(old_text: str | None, new_text: str | None) -> list[str]:
  before = set(extract_mentions(old_text))
  return [name for name in extract_mentions(new_text) if name not in before]


async def mention_events(
  db: AsyncSession,
  *,
  usernames: list[str],
  actor: User,
  task: Task,
  text: str,
) -> list[NotificationEvent]:
  if not usernames:
    return []
  res = await db.execute(select(User.id, User.username).where(User.username.in_(usernames)))
  found = {row.username: row.id for row in res.all()}
  events: list[NotificationEvent] = []
  notified: set[str] = set()
  for name in usernames:
    uid = found.get(name)
    if not uid or uid == actor.id or uid in notified:
      continue
    notified.add(uid)
    events.append(
      NotificationEvent(
        recipient_id=uid,
        actor_id=actor.id,
        task_id=task.id,
        message=f"{actor.username} mentioned you in {task.title}: {text}",
      )
    )
  return events
