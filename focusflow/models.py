from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  username: Mapped[str] = mapped_column(String, nullable=False, index=True)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  is_new_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  firstname: Mapped[str] = mapped_column(String, nullable=False, default="")
  lastname: Mapped[str] = mapped_column(String, nullable=False, default="")
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  avatar_public_id: Mapped[str | None] = mapped_column(String, nullable=True)
  otp_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  otp_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Invitation(Base):
  """A user's membership offer for one task.

  Accepted rows are the membership itself: ``Task.assignedTo`` and
  ``User.assignedTasks`` are both read from them.
  """

  __tablename__ = "task_invitations"
  __table_args__ = (UniqueConstraint("user_id", "task_id", name="ux_task_invitations_user_task"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending | accepted | declined
  token: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
  invited_by_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  invited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
  priority: Mapped[str] = mapped_column(String, nullable=False, default="low")
  tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  subtasks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "task_attachments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  url: Mapped[str] = mapped_column(String, nullable=False)
  original_name: Mapped[str] = mapped_column(String, nullable=False)
  public_id: Mapped[str | None] = mapped_column(String, nullable=True)
  type: Mapped[str] = mapped_column(String, nullable=False, default="other")  # image | pdf | document | other
  mime: Mapped[str] = mapped_column(String, nullable=False, default="application/octet-stream")
  size_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ActivityEntry(Base):
  __tablename__ = "task_activity"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class Comment(Base):
  __tablename__ = "task_comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CommentReply(Base):
  __tablename__ = "task_comment_replies"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  comment_id: Mapped[str] = mapped_column(String(36), ForeignKey("task_comments.id"), nullable=False, index=True)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  task_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id"), nullable=True, index=True)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
