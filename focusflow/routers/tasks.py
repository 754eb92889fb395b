from __future__ import annotations

import json
import logging
import os
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow import activity
from focusflow.activity import render_activity, write_activity
from focusflow.deps import get_current_user, get_db
from focusflow.errors import AuthorizationError, DependencyError, NotFoundError, ValidationError
from focusflow.membership import invite, reassign, send_invitation_emails
from focusflow.models import (
  ActivityEntry,
  Attachment,
  Comment,
  CommentReply,
  Invitation,
  Notification,
  Task,
  User,
  new_id,
  utcnow,
)
from focusflow.notifications.events import NotificationEvent, deliver_notifications
from focusflow.schemas import (
  TASK_PRIORITIES,
  TASK_STATUSES,
  ActivityFileOut,
  MessageOut,
  RecentActivityOut,
  TaskOut,
  parse_dt_utc,
)
from focusflow.storage import PendingUpload, delete_quietly, file_type_for, get_storage, read_uploads, size_in_mb
from focusflow.task_view import (
  get_task_or_404,
  member_ids,
  require_member,
  task_out,
  visible_task_or_404,
  visible_tasks_query,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

MAX_RECENT_ACTIVITY = 100


def _json_list(raw: str | None, field: str) -> list | None:
  if raw is None:
    return None
  s = raw.strip()
  if not s:
    return []
  try:
    value = json.loads(s)
  except ValueError as e:
    raise ValidationError(f"Invalid {field} format") from e
  if not isinstance(value, list):
    raise ValidationError(f"Invalid {field} format")
  return value


def _targets(raw: str | None) -> list[str] | None:
  items = _json_list(raw, "assignedTo")
  if items is None:
    return None
  return [str(i) for i in items if isinstance(i, str) and i.strip()]


def _subtasks(raw: str | None) -> list[dict] | None:
  items = _json_list(raw, "subtask")
  if items is None:
    return None
  out: list[dict] = []
  for sub in items:
    if not isinstance(sub, dict):
      continue
    title = sub.get("title")
    if not isinstance(title, str) or not title.strip():
      continue
    completed = sub.get("completed")
    out.append({"title": title.strip(), "completed": completed if isinstance(completed, bool) else False})
  return out


def _tags(raw: list[str] | None) -> list[str] | None:
  if raw is None:
    return None
  # Either repeated form fields or a single JSON array.
  if len(raw) == 1 and raw[0].strip().startswith("["):
    return [str(t) for t in (_json_list(raw[0], "tags") or [])]
  return [t for t in raw if t]


def _date(raw: str | None, field: str) -> datetime | None:
  try:
    return parse_dt_utc(raw)
  except ValueError as e:
    raise ValidationError(f"Invalid {field}") from e


def _choice(raw: str | None, allowed: tuple[str, ...], field: str) -> str | None:
  if raw is None or not raw.strip():
    return None
  if raw not in allowed:
    raise ValidationError(f"Invalid {field}; expected one of {', '.join(allowed)}")
  return raw


def _store_attachments(db: AsyncSession, task_id: str, uploads: list[PendingUpload], *, start: int) -> list[Attachment]:
  storage = get_storage()
  saved: list[Attachment] = []
  try:
    for i, up in enumerate(uploads):
      stored = storage.save(up)
      a = Attachment(
        id=new_id(),
        task_id=task_id,
        url=stored.url,
        original_name=stored.original_name,
        public_id=stored.public_id,
        type=file_type_for(stored.mimetype),
        mime=stored.mimetype,
        size_mb=size_in_mb(stored.size_bytes),
        position=start + i,
        uploaded_at=utcnow(),
      )
      db.add(a)
      saved.append(a)
  except DependencyError:
    delete_quietly([a.public_id for a in saved])
    raise
  return saved


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  title: str | None = Form(None),
  description: str | None = Form(None),
  status_: str | None = Form(None, alias="status"),
  priority: str | None = Form(None),
  tags: list[str] | None = Form(None),
  startDate: str | None = Form(None),
  dueDate: str | None = Form(None),
  assignedTo: str | None = Form(None),
  subtask: str | None = Form(None),
  attachment: list[UploadFile] | None = File(None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  if not title or not title.strip():
    raise ValidationError("Title is required")
  uploads = await read_uploads(attachment)
  targets = _targets(assignedTo) or []

  t = Task(
    id=new_id(),
    title=title,
    description=description,
    status=_choice(status_, TASK_STATUSES, "status") or "pending",
    priority=_choice(priority, TASK_PRIORITIES, "priority") or "low",
    tags=_tags(tags) or [],
    start_date=_date(startDate, "startDate"),
    due_date=_date(dueDate, "dueDate"),
    owner_id=user.id,
    subtasks=_subtasks(subtask) or [],
  )
  db.add(t)
  await db.flush()
  write_activity(db, task_id=t.id, actor=user, kind=activity.TASK_CREATED, title=t.title)

  saved = _store_attachments(db, t.id, uploads, start=0)
  if saved:
    write_activity(
      db,
      task_id=t.id,
      actor=user,
      kind=activity.FILES_UPLOADED,
      names=[a.original_name for a in saved],
      attachmentIds=[a.id for a in saved],
    )

  invited = await invite(db, t, user, targets)
  await db.commit()

  await send_invitation_emails(invited, t.title)
  return await task_out(db, t, invalid_emails=invited.invalid_emails)


@router.get("", response_model=list[TaskOut])
async def list_tasks(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  res = await db.execute(visible_tasks_query(user.id).order_by(Task.created_at.asc()))
  return [await task_out(db, t) for t in res.scalars().all()]


@router.get("/recent-activity", response_model=list[RecentActivityOut])
async def recent_activity(
  limit: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[RecentActivityOut]:
  try:
    n = int(limit) if limit is not None else 10
  except ValueError:
    n = 10
  if n <= 0:
    n = 10
  n = min(n, MAX_RECENT_ACTIVITY)

  visible = visible_tasks_query(user.id).with_only_columns(Task.id)
  res = await db.execute(
    select(ActivityEntry, Task.title)
    .join(Task, Task.id == ActivityEntry.task_id)
    .where(ActivityEntry.task_id.in_(visible))
    .order_by(ActivityEntry.created_at.desc(), ActivityEntry.id.desc())
    .limit(n)
  )
  rows = res.all()

  actor_ids = {e.actor_id for e, _ in rows if e.actor_id}
  actors: dict[str, User] = {}
  if actor_ids:
    ures = await db.execute(select(User).where(User.id.in_(actor_ids)))
    actors = {u.id: u for u in ures.scalars().all()}

  attachment_ids = [
    aid for e, _ in rows if e.kind in activity.UPLOAD_KINDS for aid in (e.payload or {}).get("attachmentIds", [])
  ]
  files: dict[str, Attachment] = {}
  if attachment_ids:
    ares = await db.execute(select(Attachment).where(Attachment.id.in_(attachment_ids)))
    files = {a.id: a for a in ares.scalars().all()}

  out: list[RecentActivityOut] = []
  for e, title in rows:
    actor = actors.get(e.actor_id) if e.actor_id else None
    payload = e.payload or {}
    entry_files: list[ActivityFileOut] = []
    if e.kind in activity.UPLOAD_KINDS:
      for aid in payload.get("attachmentIds", []):
        a = files.get(aid)
        if a is not None:
          entry_files.append(ActivityFileOut(name=a.original_name, url=a.url, size=a.size_mb))
    out.append(
      RecentActivityOut(
        taskId=e.task_id,
        taskTitle=title,
        user=actor.username if actor else payload.get("user") or "Unknown",
        avatar=(actor.avatar_url if actor else None) or "",
        kind=e.kind,
        action=render_activity(e.kind, payload),
        createdAt=e.created_at,
        files=entry_files,
      )
    )
  return out


@router.get("/download/{task_id}/{file_name}")
async def download_file(
  task_id: str,
  file_name: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> FileResponse:
  t = await visible_task_or_404(db, task_id, user, message="Task not found or you are not authorized to access it")
  res = await db.execute(
    select(Attachment)
    .where(Attachment.task_id == t.id, Attachment.original_name == file_name)
    .order_by(Attachment.position.asc())
  )
  a = res.scalars().first()
  if not a or not a.public_id:
    raise NotFoundError("File not found")
  path = get_storage().path_for(a.public_id)
  if not os.path.isfile(path):
    logger.error("Attachment %s is missing from storage at %s", a.id, path)
    raise DependencyError("Failed to download file")
  return FileResponse(path=path, media_type=a.mime, filename=a.original_name)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await visible_task_or_404(db, task_id, user)
  return await task_out(db, t)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  title: str | None = Form(None),
  description: str | None = Form(None),
  status_: str | None = Form(None, alias="status"),
  priority: str | None = Form(None),
  tags: list[str] | None = Form(None),
  startDate: str | None = Form(None),
  dueDate: str | None = Form(None),
  assignedTo: str | None = Form(None),
  assignedToOperation: str | None = Form(None),
  subtask: str | None = Form(None),
  attachmentOperation: str | None = Form(None),
  attachment: list[UploadFile] | None = File(None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_member(db, t, user, "Not authorized to update this task")

  uploads = await read_uploads(attachment)
  new_status = _choice(status_, TASK_STATUSES, "status")
  new_priority = _choice(priority, TASK_PRIORITIES, "priority")
  new_tags = _tags(tags)
  new_start = _date(startDate, "startDate") if startDate is not None else None
  new_due = _date(dueDate, "dueDate") if dueDate is not None else None
  targets = _targets(assignedTo)
  subtasks = _subtasks(subtask)

  # Audience for image updates is the membership before this request.
  audience = [t.owner_id, *await member_ids(db, t.id)]

  new_events: list[NotificationEvent] = []
  stale_files: list[str | None] = []
  if uploads:
    if attachmentOperation == "append":
      pres = await db.execute(select(func.max(Attachment.position)).where(Attachment.task_id == t.id))
      top = pres.scalar_one()
      start = (top + 1) if top is not None else 0
    else:
      ores = await db.execute(select(Attachment.public_id).where(Attachment.task_id == t.id))
      stale_files = list(ores.scalars().all())
      await db.execute(delete(Attachment).where(Attachment.task_id == t.id))
      start = 0
    saved = _store_attachments(db, t.id, uploads, start=start)
    write_activity(
      db,
      task_id=t.id,
      actor=user,
      kind=activity.FILES_UPLOADED,
      names=[a.original_name for a in saved],
      attachmentIds=[a.id for a in saved],
    )
    images = [a.original_name for a in saved if a.type == "image"]
    if images:
      message = f"{user.username} updated image(s) {', '.join(images)} for task {t.title}."
      new_events.extend(
        NotificationEvent(recipient_id=uid, actor_id=user.id, task_id=t.id, message=message)
        for uid in dict.fromkeys(audience)
        if uid != user.id
      )

  if new_status and new_status != t.status:
    write_activity(db, task_id=t.id, actor=user, kind=activity.STATUS_CHANGED, old=t.status, new=new_status)
  if new_priority and new_priority != t.priority:
    write_activity(db, task_id=t.id, actor=user, kind=activity.PRIORITY_CHANGED, old=t.priority, new=new_priority)

  invited = None
  if targets is not None:
    invited = await reassign(db, t, user, targets, assignedToOperation)

  if subtasks is not None:
    t.subtasks = subtasks
  if title is not None and title.strip():
    t.title = title
  if description is not None:
    t.description = description
  if new_status:
    t.status = new_status
  if new_priority:
    t.priority = new_priority
  if new_tags is not None:
    t.tags = new_tags
  if startDate is not None:
    t.start_date = new_start
  if dueDate is not None:
    t.due_date = new_due
  t.updated_at = utcnow()
  await db.commit()

  await deliver_notifications(new_events)
  if stale_files:
    delete_quietly(stale_files)
  if invited is not None:
    await send_invitation_emails(invited, t.title)
  return await task_out(db, t, invalid_emails=invited.invalid_emails if invited else None)


@router.delete("/{task_id}", response_model=MessageOut)
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  t = await get_task_or_404(db, task_id)
  if t.owner_id != user.id:
    raise AuthorizationError("Not authorized to delete this task")

  ares = await db.execute(select(Attachment.public_id).where(Attachment.task_id == t.id))
  files = list(ares.scalars().all())

  await db.execute(delete(CommentReply).where(CommentReply.task_id == t.id))
  await db.execute(delete(Comment).where(Comment.task_id == t.id))
  await db.execute(delete(ActivityEntry).where(ActivityEntry.task_id == t.id))
  await db.execute(delete(Attachment).where(Attachment.task_id == t.id))
  await db.execute(delete(Invitation).where(Invitation.task_id == t.id))
  await db.execute(update(Notification).where(Notification.task_id == t.id).values(task_id=None))
  await db.execute(delete(Task).where(Task.id == t.id))
  await db.commit()

  # The task's own history goes with it; the deletion line survives in the log.
  logger.info("%s (%s)", render_activity(activity.TASK_DELETED, {"user": user.username, "title": t.title}), t.id)
  delete_quietly(files)
  return MessageOut(message="Task deleted successfully")
