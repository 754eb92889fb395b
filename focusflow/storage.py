from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass

from fastapi import UploadFile

from focusflow.config import settings
from focusflow.errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "pdf", "doc", "docx"})
ALLOWED_MIMES = frozenset(
  {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
  }
)


@dataclass(frozen=True)
class PendingUpload:
  filename: str
  mime: str
  data: bytes


@dataclass(frozen=True)
class StoredFile:
  url: str
  public_id: str
  original_name: str
  mimetype: str
  size_bytes: int


def file_type_for(mime: str) -> str:
  if mime.startswith("image/"):
    return "image"
  if mime == "application/pdf":
    return "pdf"
  return "document"


def size_in_mb(size_bytes: int) -> float:
  return round(size_bytes / (1024 * 1024), 2)


async def read_uploads(files: list[UploadFile] | None, *, image_only: bool = False) -> list[PendingUpload]:
  files = [f for f in (files or []) if f is not None and (f.filename or "")]
  if len(files) > int(settings.max_attachments):
    raise ValidationError(f"Upload error: at most {settings.max_attachments} files are allowed")
  out: list[PendingUpload] = []
  limit = int(settings.max_attachment_bytes)
  for f in files:
    name = f.filename or ""
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    mime = (f.content_type or "").lower()
    if ext not in ALLOWED_EXTENSIONS or mime not in ALLOWED_MIMES:
      raise ValidationError("Upload error: unsupported file type; only JPEG, PNG, PDF, DOC, DOCX are allowed")
    if image_only and not mime.startswith("image/"):
      raise ValidationError("Upload error: only image files are allowed")
    data = await f.read(limit + 1)
    if len(data) > limit:
      raise ValidationError(f"Upload error: {name} is larger than {limit // (1024 * 1024)}MB")
    out.append(PendingUpload(filename=name, mime=mime, data=data))
  return out


class LocalStorage:
  def __init__(self, root: str) -> None:
    self.root = root

  def path_for(self, public_id: str) -> str:
    return os.path.join(self.root, os.path.basename(public_id))

  def save(self, upload: PendingUpload) -> StoredFile:
    stem, ext = os.path.splitext(os.path.basename(upload.filename))
    public_id = f"{stem}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext.lower()}"
    path = self.path_for(public_id)
    try:
      os.makedirs(self.root, exist_ok=True)
      with open(path, "wb") as f:
        f.write(upload.data)
    except OSError as e:
      raise DependencyError(f"Failed to store {upload.filename}") from e
    return StoredFile(
      url=f"{settings.storage_public_url.rstrip('/')}/{public_id}",
      public_id=public_id,
      original_name=upload.filename,
      mimetype=upload.mime,
      size_bytes=len(upload.data),
    )

  def delete(self, public_id: str) -> None:
    os.remove(self.path_for(public_id))


def get_storage() -> LocalStorage:
  return LocalStorage(settings.upload_dir)


def delete_quietly(public_ids: list[str | None]) -> int:
  """Remove stored files; failures are logged, never raised."""
  storage = get_storage()
  n = 0
  for public_id in public_ids:
    if not public_id:
      continue
    try:
      storage.delete(public_id)
      n += 1
    except OSError as e:
      logger.warning("Storage delete failed for %s: %s", public_id, e)
  return n
