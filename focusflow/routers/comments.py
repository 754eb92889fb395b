from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow import activity
from focusflow.activity import write_activity
from focusflow.deps import get_current_user, get_db
from focusflow.errors import AuthorizationError, NotFoundError
from focusflow.mentions import extract_mentions, mention_events, new_mentions
from focusflow.models import Comment, CommentReply, Task, User, new_id, utcnow
from focusflow.notifications.events import deliver_notifications
from focusflow.schemas import CommentIn, TaskOut
from focusflow.task_view import get_task_or_404, require_member, task_out

router = APIRouter(prefix="/tasks", tags=["comments"])


async def _comment_or_404(db: AsyncSession, task: Task, comment_id: str) -> Comment:
  res = await db.execute(select(Comment).where(Comment.id == comment_id, Comment.task_id == task.id))
  c = res.scalar_one_or_none()
  if not c:
    raise NotFoundError("Comment not found")
  return c


async def _reply_or_404(db: AsyncSession, comment: Comment, reply_id: str) -> CommentReply:
  res = await db.execute(select(CommentReply).where(CommentReply.id == reply_id, CommentReply.comment_id == comment.id))
  r = res.scalar_one_or_none()
  if not r:
    raise NotFoundError("Reply not found")
  return r


async def _finish(db: AsyncSession, task: Task, actor: User, usernames: list[str], text: str) -> TaskOut:
  """Commit, then notify mentioned users outside the request transaction."""
  events = await mention_events(db, usernames=usernames, actor=actor, task=task, text=text)
  await db.commit()
  await deliver_notifications(events)
  return await task_out(db, task)


@router.post("/{task_id}/comments", response_model=TaskOut)
async def add_comment(
  task_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  await require_member(db, t, user, "Not authorized to add comment to this task")
  c = Comment(id=new_id(), task_id=t.id, author_id=user.id, body=payload.comment)
  db.add(c)
  write_activity(db, task_id=t.id, actor=user, kind=activity.COMMENT_ADDED, text=payload.comment, commentId=c.id)
  return await _finish(db, t, user, extract_mentions(payload.comment), payload.comment)


@router.patch("/{task_id}/comments/{comment_id}", response_model=TaskOut)
async def edit_comment(
  task_id: str,
  comment_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  c = await _comment_or_404(db, t, comment_id)
  if c.author_id != user.id:
    raise AuthorizationError("Not authorized to edit this comment")
  old = c.body
  c.body = payload.comment
  c.updated_at = utcnow()
  write_activity(db, task_id=t.id, actor=user, kind=activity.COMMENT_EDITED, old=old, new=payload.comment, commentId=c.id)
  return await _finish(db, t, user, new_mentions(old, payload.comment), payload.comment)


@router.delete("/{task_id}/comments/{comment_id}", response_model=TaskOut)
async def delete_comment(
  task_id: str,
  comment_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  c = await _comment_or_404(db, t, comment_id)
  if c.author_id != user.id and t.owner_id != user.id:
    raise AuthorizationError("Not authorized to delete this comment")
  await db.execute(delete(CommentReply).where(CommentReply.comment_id == c.id))
  await db.execute(delete(Comment).where(Comment.id == c.id))
  write_activity(db, task_id=t.id, actor=user, kind=activity.COMMENT_DELETED, text=c.body, commentId=c.id)
  await db.commit()
  return await task_out(db, t)


@router.post("/{task_id}/comments/{comment_id}/replies", response_model=TaskOut)
async def add_reply(
  task_id: str,
  comment_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  c = await _comment_or_404(db, t, comment_id)
  await require_member(db, t, user, "Not authorized to reply to this comment")
  r = CommentReply(id=new_id(), comment_id=c.id, task_id=t.id, author_id=user.id, body=payload.comment)
  db.add(r)
  write_activity(
    db, task_id=t.id, actor=user, kind=activity.REPLY_ADDED, text=payload.comment, commentId=c.id, replyId=r.id
  )
  return await _finish(db, t, user, extract_mentions(payload.comment), payload.comment)


@router.patch("/{task_id}/comments/{comment_id}/replies/{reply_id}", response_model=TaskOut)
async def edit_reply(
  task_id: str,
  comment_id: str,
  reply_id: str,
  payload: CommentIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  c = await _comment_or_404(db, t, comment_id)
  r = await _reply_or_404(db, c, reply_id)
  if r.author_id != user.id:
    raise AuthorizationError("Not authorized to edit this reply")
  old = r.body
  r.body = payload.comment
  r.updated_at = utcnow()
  write_activity(
    db, task_id=t.id, actor=user, kind=activity.REPLY_EDITED, old=old, new=payload.comment, commentId=c.id, replyId=r.id
  )
  return await _finish(db, t, user, new_mentions(old, payload.comment), payload.comment)


@router.delete("/{task_id}/comments/{comment_id}/replies/{reply_id}", response_model=TaskOut)
async def delete_reply(
  task_id: str,
  comment_id: str,
  reply_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  c = await _comment_or_404(db, t, comment_id)
  r = await _reply_or_404(db, c, reply_id)
  if r.author_id != user.id and t.owner_id != user.id:
    raise AuthorizationError("Not authorized to delete this reply")
  await db.execute(delete(CommentReply).where(CommentReply.id == r.id))
  write_activity(db, task_id=t.id, actor=user, kind=activity.REPLY_DELETED, text=r.body, commentId=c.id, replyId=r.id)
  await db.commit()
  return await task_out(db, t)
