from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.activity import render_activity
from focusflow.errors import AuthorizationError, NotFoundError
from focusflow.models import ActivityEntry, Attachment, Comment, CommentReply, Invitation, Task, User
from focusflow.schemas import ActivityOut, AttachmentOut, CommentOut, ReplyOut, Subtask, TaskOut, UserRef

NOT_VISIBLE = "Task not found or you are not authorized to view it"


def user_ref(u: User | None) -> UserRef | None:
  if u is None:
    return None
  return UserRef(id=u.id, username=u.username, email=u.email, avatar=u.avatar_url)


async def member_ids(db: AsyncSession, task_id: str) -> list[str]:
  """Users holding an accepted invitation, in acceptance order."""
  res = await db.execute(
    select(Invitation.user_id)
    .where(Invitation.task_id == task_id, Invitation.status == "accepted")
    .order_by(Invitation.responded_at.asc(), Invitation.invited_at.asc())
  )
  return list(res.scalars().all())


async def is_member(db: AsyncSession, task: Task, user_id: str) -> bool:
  if task.owner_id == user_id:
    return True
  res = await db.execute(
    select(Invitation.id).where(
      Invitation.task_id == task.id, Invitation.user_id == user_id, Invitation.status == "accepted"
    )
  )
  return res.scalar_one_or_none() is not None


def visible_tasks_query(user_id: str):
  accepted = select(Invitation.task_id).where(Invitation.user_id == user_id, Invitation.status == "accepted")
  return select(Task).where(or_(Task.owner_id == user_id, Task.id.in_(accepted)))


async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFoundError("Task not found")
  return t


async def visible_task_or_404(db: AsyncSession, task_id: str, user: User, *, message: str = NOT_VISIBLE) -> Task:
  res = await db.execute(visible_tasks_query(user.id).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFoundError(message)
  return t


async def require_member(db: AsyncSession, task: Task, user: User, message: str) -> None:
  if not await is_member(db, task, user.id):
    raise AuthorizationError(message)


async def _users_by_id(db: AsyncSession, ids: set[str]) -> dict[str, User]:
  ids = {i for i in ids if i}
  if not ids:
    return {}
  res = await db.execute(select(User).where(User.id.in_(ids)))
  return {u.id: u for u in res.scalars().all()}


def attachment_out(a: Attachment) -> AttachmentOut:
  return AttachmentOut(
    id=a.id,
    url=a.url,
    originalName=a.original_name,
    publicId=a.public_id,
    type=a.type,
    size=a.size_mb,
    uploadedAt=a.uploaded_at,
  )


async def task_out(db: AsyncSession, t: Task, *, invalid_emails: list[str] | None = None) -> TaskOut:
  """Load the full task aggregate with every user reference populated."""
  assignee_ids = await member_ids(db, t.id)

  ares = await db.execute(select(Attachment).where(Attachment.task_id == t.id).order_by(Attachment.position.asc()))
  attachments = list(ares.scalars().all())

  acres = await db.execute(
    select(ActivityEntry).where(ActivityEntry.task_id == t.id).order_by(ActivityEntry.id.asc())
  )
  activity = list(acres.scalars().all())

  cres = await db.execute(select(Comment).where(Comment.task_id == t.id).order_by(Comment.created_at.asc()))
  comments = list(cres.scalars().all())

  rres = await db.execute(
    select(CommentReply).where(CommentReply.task_id == t.id).order_by(CommentReply.created_at.asc())
  )
  replies_by_comment: dict[str, list[CommentReply]] = {}
  for r in rres.scalars().all():
    replies_by_comment.setdefault(r.comment_id, []).append(r)

  wanted = {t.owner_id, *assignee_ids}
  wanted.update(e.actor_id for e in activity if e.actor_id)
  wanted.update(c.author_id for c in comments)
  wanted.update(r.author_id for rs in replies_by_comment.values() for r in rs)
  users = await _users_by_id(db, wanted)

  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description,
    status=t.status,
    priority=t.priority,
    tags=list(t.tags or []),
    startDate=t.start_date,
    dueDate=t.due_date,
    owner=user_ref(users.get(t.owner_id)),
    assignedTo=[user_ref(users[uid]) for uid in assignee_ids if uid in users],
    subtask=[Subtask(**s) for s in (t.subtasks or [])],
    attachment=[attachment_out(a) for a in attachments],
    activity=[
      ActivityOut(
        id=e.id,
        user=user_ref(users.get(e.actor_id)) if e.actor_id else None,
        kind=e.kind,
        action=render_activity(e.kind, e.payload),
        createdAt=e.created_at,
      )
      for e in activity
    ],
    comments=[
      CommentOut(
        id=c.id,
        user=user_ref(users.get(c.author_id)),
        comment=c.body,
        createdAt=c.created_at,
        updatedAt=c.updated_at,
        replies=[
          ReplyOut(
            id=r.id,
            user=user_ref(users.get(r.author_id)),
            comment=r.body,
            createdAt=r.created_at,
            updatedAt=r.updated_at,
          )
          for r in replies_by_comment.get(c.id, [])
        ],
      )
      for c in comments
    ],
    createdAt=t.created_at,
    updatedAt=t.updated_at,
    invalidEmails=list(invalid_emails or []),
  )
