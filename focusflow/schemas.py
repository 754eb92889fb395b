from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TaskStatus = Literal["pending", "inProgress", "completed"]
TaskPriority = Literal["low", "medium", "high"]
TASK_STATUSES = ("pending", "inProgress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")


def parse_dt_utc(value: object) -> datetime | None:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    raise ValueError("Invalid datetime")

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class UserRef(BaseModel):
  id: str
  username: str
  email: str
  avatar: str | None = None


class InvitationOut(BaseModel):
  taskId: str
  status: Literal["pending", "accepted", "declined"]
  invitedAt: datetime


class UserOut(BaseModel):
  id: str
  username: str
  email: str
  firstname: str = ""
  lastname: str = ""
  avatar: str | None = None
  isVerified: bool = False
  assignedTasks: list[str] = []
  invitations: list[InvitationOut] = []
  createdAt: datetime


class RegisterIn(BaseModel):
  username: str = Field(min_length=1, max_length=64)
  email: str = Field(min_length=3, max_length=320)
  password: str


class RegisterOut(BaseModel):
  success: bool = True
  message: str
  userId: str
  welcomeMessage: str


class VerifyOtpIn(BaseModel):
  email: str
  otp: str


class ResendOtpIn(BaseModel):
  email: str


class LoginIn(BaseModel):
  email: str
  password: str


class LoginOut(BaseModel):
  success: bool = True
  message: str
  token: str
  user: UserOut


class AuthMessageOut(BaseModel):
  success: bool = True
  message: str


class UserEnvelopeOut(BaseModel):
  success: bool = True
  message: str | None = None
  data: UserOut


class UserListOut(BaseModel):
  success: bool = True
  data: list[UserOut]


class Subtask(BaseModel):
  title: str
  completed: bool = False


class AttachmentOut(BaseModel):
  id: str
  url: str
  originalName: str
  publicId: str | None = None
  type: Literal["image", "pdf", "document", "other"]
  size: float
  uploadedAt: datetime


class ActivityOut(BaseModel):
  id: int
  user: UserRef | None = None
  kind: str
  action: str
  createdAt: datetime


class ReplyOut(BaseModel):
  id: str
  user: UserRef | None = None
  comment: str
  createdAt: datetime
  updatedAt: datetime | None = None


class CommentOut(BaseModel):
  id: str
  user: UserRef | None = None
  comment: str
  createdAt: datetime
  updatedAt: datetime | None = None
  replies: list[ReplyOut] = []


class TaskOut(BaseModel):
  id: str
  title: str
  description: str | None = None
  status: TaskStatus
  priority: TaskPriority
  tags: list[str] = []
  startDate: datetime | None = None
  dueDate: datetime | None = None
  owner: UserRef | None = None
  assignedTo: list[UserRef] = []
  subtask: list[Subtask] = []
  attachment: list[AttachmentOut] = []
  activity: list[ActivityOut] = []
  comments: list[CommentOut] = []
  createdAt: datetime
  updatedAt: datetime
  invalidEmails: list[str] = []


class CommentIn(BaseModel):
  comment: str = Field(min_length=1, max_length=20000)

  @field_validator("comment")
  @classmethod
  def _not_blank(cls, v: str) -> str:
    if not v.strip():
      raise ValueError("Comment is required")
    return v


class ActivityFileOut(BaseModel):
  name: str
  url: str
  size: float


class RecentActivityOut(BaseModel):
  taskId: str
  taskTitle: str
  user: str
  avatar: str = ""
  kind: str
  action: str
  createdAt: datetime
  files: list[ActivityFileOut] = []


class NotificationTaskRef(BaseModel):
  id: str
  title: str


class NotificationOut(BaseModel):
  id: str
  user: UserRef | None = None
  actor: UserRef | None = None
  task: NotificationTaskRef | None = None
  message: str
  read: bool
  createdAt: datetime


class NotificationCreateIn(BaseModel):
  user: str
  task: str
  message: str
  actionBy: str


class MarkAllReadOut(BaseModel):
  modifiedCount: int
  message: str


class MessageOut(BaseModel):
  message: str
