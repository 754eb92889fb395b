from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow import activity
from focusflow.activity import write_activity
from focusflow.errors import NotFoundError
from focusflow.models import Invitation, Task, User, utcnow
from focusflow.notifications.events import (
  NotificationEvent,
  mark_task_notifications_read,
  purge_task_notifications,
  stage_notifications,
)
from focusflow.notifications.service import invitation_link, send_invitation_email
from focusflow.security import invitation_token_new
from focusflow.task_view import get_task_or_404, member_ids

logger = logging.getLogger(__name__)

ASSIGN_OPERATIONS = ("add", "remove", "replace")
NO_PENDING_INVITATION = "Invitation not found or already processed"


@dataclass
class InviteResult:
  invited: list[User] = field(default_factory=list)
  removed: list[User] = field(default_factory=list)
  invalid_emails: list[str] = field(default_factory=list)
  # (address, token) pairs to mail once the transaction has committed.
  emails: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class _Resolved:
  users: list[User]
  by_email: set[str]
  invalid_emails: list[str]


async def _resolve_targets(db: AsyncSession, targets: list[str]) -> _Resolved:
  ids: list[str] = []
  emails: list[str] = []
  for raw in targets:
    t = str(raw).strip()
    if not t:
      continue
    if "@" in t:
      if t.lower() not in emails:
        emails.append(t.lower())
    elif t not in ids:
      ids.append(t)

  found: dict[str, User] = {}
  if ids:
    res = await db.execute(select(User).where(User.id.in_(ids)))
    found.update({u.id: u for u in res.scalars().all()})
    for missing in [i for i in ids if i not in found]:
      logger.info("Dropping unknown invite target %s", missing)

  by_email: set[str] = set()
  invalid: list[str] = []
  for addr in emails:
    res = await db.execute(select(User).where(User.email == addr))
    u = res.scalar_one_or_none()
    if not u:
      invalid.append(addr)
      continue
    found.setdefault(u.id, u)
    by_email.add(u.id)

  ordered = [found[i] for i in ids if i in found]
  ordered.extend(u for uid, u in found.items() if uid not in ids)
  return _Resolved(users=ordered, by_email=by_email, invalid_emails=invalid)


async def _invite_users(
  db: AsyncSession,
  task: Task,
  inviter: User,
  users: list[User],
  by_email: set[str],
) -> InviteResult:
  result = InviteResult()
  if not users:
    return result
  current = set(await member_ids(db, task.id))
  res = await db.execute(
    select(Invitation).where(Invitation.task_id == task.id, Invitation.user_id.in_([u.id for u in users]))
  )
  existing = {inv.user_id: inv for inv in res.scalars().all()}

  events: list[NotificationEvent] = []
  for u in users:
    if u.id == task.owner_id or u.id in current:
      continue
    inv = existing.get(u.id)
    if inv is not None and inv.status == "pending":
      continue
    token = invitation_token_new() if u.id in by_email else None
    if inv is None:
      inv = Invitation(user_id=u.id, task_id=task.id, status="pending", token=token, invited_by_id=inviter.id)
      db.add(inv)
    else:
      # Declined earlier; the same row is offered again.
      inv.status = "pending"
      inv.token = token
      inv.invited_by_id = inviter.id
      inv.invited_at = utcnow()
      inv.responded_at = None
    events.append(
      NotificationEvent(
        recipient_id=u.id,
        actor_id=inviter.id,
        task_id=task.id,
        message=f"{inviter.username} invited you to join {task.title}.",
      )
    )
    result.invited.append(u)
    if token:
      result.emails.append((u.email, token))

  stage_notifications(db, events)
  if result.invited:
    write_activity(
      db,
      task_id=task.id,
      actor=inviter,
      kind=activity.MEMBERS_INVITED,
      names=[u.username for u in result.invited],
      title=task.title,
      userIds=[u.id for u in result.invited],
    )
  return result


async def invite(db: AsyncSession, task: Task, inviter: User, targets: list[str]) -> InviteResult:
  """Offer ``task`` to each target (a user id or an email address).

  Owner and existing members are skipped, as are users with an invitation
  still pending. Unknown addresses are reported in ``invalid_emails``.
  """
  resolved = await _resolve_targets(db, targets)
  result = await _invite_users(db, task, inviter, resolved.users, resolved.by_email)
  result.invalid_emails = resolved.invalid_emails
  return result


async def _remove_users(db: AsyncSession, task: Task, actor: User, users: list[User]) -> list[User]:
  if not users:
    return []
  ids = [u.id for u in users]
  res = await db.execute(select(Invitation.user_id).where(Invitation.task_id == task.id, Invitation.user_id.in_(ids)))
  holding = set(res.scalars().all())
  removed = [u for u in users if u.id in holding]
  if not removed:
    return []
  removed_ids = [u.id for u in removed]
  await db.execute(delete(Invitation).where(Invitation.task_id == task.id, Invitation.user_id.in_(removed_ids)))
  await purge_task_notifications(db, user_ids=removed_ids, task_id=task.id)
  write_activity(
    db,
    task_id=task.id,
    actor=actor,
    kind=activity.MEMBERS_REMOVED,
    names=[u.username for u in removed],
    title=task.title,
    userIds=removed_ids,
  )
  return removed


async def reassign(db: AsyncSession, task: Task, actor: User, targets: list[str], operation: str | None) -> InviteResult:
  """Apply an ``assignedTo`` change; anything other than add/remove replaces."""
  op = operation if operation in ASSIGN_OPERATIONS else "replace"
  resolved = await _resolve_targets(db, targets)
  current = await member_ids(db, task.id)
  target_ids = {u.id for u in resolved.users}

  to_invite: list[User] = []
  to_remove: list[User] = []
  if op == "add":
    to_invite = [u for u in resolved.users if u.id not in current]
  elif op == "remove":
    to_remove = list(resolved.users)
  else:
    to_invite = [u for u in resolved.users if u.id not in current]
    leaving = [uid for uid in current if uid not in target_ids]
    if leaving:
      res = await db.execute(select(User).where(User.id.in_(leaving)))
      to_remove = list(res.scalars().all())

  result = await _invite_users(db, task, actor, to_invite, resolved.by_email)
  result.removed = await _remove_users(db, task, actor, to_remove)
  result.invalid_emails = resolved.invalid_emails
  return result


async def send_invitation_emails(result: InviteResult, task_title: str) -> None:
  """Mail join links; the first failure aborts the rest with DependencyError."""
  for address, token in result.emails:
    await send_invitation_email(address, task_title, invitation_link(token))


async def _close_invitation(db: AsyncSession, *, user_id: str, task_id: str, status: str) -> None:
  res = await db.execute(
    update(Invitation)
    .where(Invitation.user_id == user_id, Invitation.task_id == task_id, Invitation.status == "pending")
    .values(status=status, token=None, responded_at=utcnow())
  )
  if (res.rowcount or 0) != 1:
    raise NotFoundError(NO_PENDING_INVITATION)


async def respond(db: AsyncSession, user: User, task_id: str, decision: str, *, via_link: bool = False) -> Task:
  """Accept or decline the caller's pending invitation for ``task_id``."""
  task = await get_task_or_404(db, task_id)
  status = "accepted" if decision == "accept" else "declined"
  await _close_invitation(db, user_id=user.id, task_id=task.id, status=status)
  await mark_task_notifications_read(db, user_id=user.id, task_id=task.id)
  if status == "declined":
    kind = activity.INVITATION_DECLINED
  elif via_link:
    kind = activity.INVITATION_JOINED
  else:
    kind = activity.INVITATION_ACCEPTED
  write_activity(db, task_id=task.id, actor=user, kind=kind, title=task.title)
  return task


async def join_by_token(db: AsyncSession, token: str) -> tuple[User, Task]:
  """Accept the pending invitation holding ``token`` on behalf of its holder."""
  res = await db.execute(select(Invitation).where(Invitation.token == token, Invitation.status == "pending"))
  inv = res.scalar_one_or_none()
  if not inv:
    raise NotFoundError(NO_PENDING_INVITATION)
  ures = await db.execute(select(User).where(User.id == inv.user_id))
  holder = ures.scalar_one()
  task = await respond(db, holder, inv.task_id, "accept", via_link=True)
  return holder, task
