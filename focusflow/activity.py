from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.models import ActivityEntry, User

TASK_CREATED = "task.created"
TASK_DELETED = "task.deleted"
FILES_UPLOADED = "files.uploaded"
STATUS_CHANGED = "status.changed"
PRIORITY_CHANGED = "priority.changed"
MEMBERS_INVITED = "members.invited"
MEMBERS_REMOVED = "members.removed"
INVITATION_ACCEPTED = "invitation.accepted"
INVITATION_JOINED = "invitation.joined"
INVITATION_DECLINED = "invitation.declined"
COMMENT_ADDED = "comment.added"
COMMENT_EDITED = "comment.edited"
COMMENT_DELETED = "comment.deleted"
REPLY_ADDED = "reply.added"
REPLY_EDITED = "reply.edited"
REPLY_DELETED = "reply.deleted"

# Clients parse these strings; keep them byte-for-byte stable.
_TEMPLATES: dict[str, str] = {
  TASK_CREATED: "{user} created task {title}",
  TASK_DELETED: "{user} deleted task {title}",
  FILES_UPLOADED: "{user} uploaded file(s): {names}",
  STATUS_CHANGED: "{user} changed status from {old} to {new}",
  PRIORITY_CHANGED: "{user} changed priority from {old} to {new}",
  MEMBERS_INVITED: "{user} invited {names} to join {title}",
  MEMBERS_REMOVED: "{user} removed {names} from {title}",
  INVITATION_ACCEPTED: "{user} accepted invitation to join {title}",
  INVITATION_JOINED: "{user} accepted invitation to join {title} via invitation link",
  INVITATION_DECLINED: "{user} declined invitation to join {title}",
  COMMENT_ADDED: "{user} added comment {text}",
  COMMENT_EDITED: '{user} edited comment from "{old}" to "{new}"',
  COMMENT_DELETED: '{user} deleted comment: "{text}"',
  REPLY_ADDED: "{user} replied comment {text}",
  REPLY_EDITED: '{user} edited reply from "{old}" to "{new}"',
  REPLY_DELETED: '{user} deleted reply: "{text}"',
}

UPLOAD_KINDS = frozenset({FILES_UPLOADED})


class _Fields(dict):
  def __missing__(self, key: str) -> str:
    return ""


def render_activity(kind: str, payload: dict[str, Any] | None) -> str:
  """Render a stored entry as its human-readable action line."""
  fields = _Fields(payload or {})
  fields.setdefault("user", "Unknown")
  names = fields.get("names")
  if isinstance(names, list):
    fields["names"] = ", ".join(str(n) for n in names)
  template = _TEMPLATES.get(kind)
  if template is None:
    return f"{fields['user']} {kind}"
  return template.format_map(fields)


def write_activity(
  db: AsyncSession,
  *,
  task_id: str,
  actor: User,
  kind: str,
  **fields: Any,
) -> ActivityEntry:
  payload = jsonable_encoder({"user": actor.username, **fields})
  entry = ActivityEntry(task_id=task_id, actor_id=actor.id, kind=kind, payload=payload)
  db.add(entry)
  return entry
