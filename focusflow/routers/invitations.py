from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from focusflow.deps import get_current_user, get_db
from focusflow.membership import join_by_token, respond
from focusflow.models import User
from focusflow.schemas import MessageOut, TaskOut
from focusflow.task_view import task_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["invitations"])


@router.post("/invitations/accept/{task_id}", response_model=TaskOut)
async def accept_invitation(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await respond(db, user, task_id, "accept")
  await db.commit()
  return await task_out(db, t)


@router.post("/invitations/decline/{task_id}", response_model=MessageOut)
async def decline_invitation(
  task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> MessageOut:
  await respond(db, user, task_id, "decline")
  await db.commit()
  return MessageOut(message="Invitation declined successfully")


@router.get("/join/{token}", response_model=TaskOut)
async def join_task(token: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  holder, t = await join_by_token(db, token)
  await db.commit()
  if holder.id != user.id:
    logger.info("Invitation link for %s opened by %s", holder.id, user.id)
  return await task_out(db, t)
