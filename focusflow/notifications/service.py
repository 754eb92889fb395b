from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from focusflow.config import settings
from focusflow.errors import DependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
  to: str
  subject: str
  html: str


class MailProvider(Protocol):
  async def send(self, msg: MailMessage) -> None: ...


# Messages accepted by the local provider, newest last.
LOCAL_OUTBOX: list[MailMessage] = []


class LocalMailProvider:
  async def send(self, msg: MailMessage) -> None:
    LOCAL_OUTBOX.append(msg)
    logger.info("Local mail to %s: %s", msg.to, msg.subject)


class SmtpMailProvider:
  async def send(self, msg: MailMessage) -> None:
    host = (settings.smtp_host or "").strip()
    if not host:
      raise ValueError("SMTP host is not configured")

    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = msg.subject
      m["From"] = settings.mail_from
      m["To"] = msg.to
      m.set_content(msg.html, subtype="html")
      with smtplib.SMTP(host=host, port=int(settings.smtp_port), timeout=15) as s:
        s.ehlo()
        if settings.smtp_starttls:
          s.starttls()
          s.ehlo()
        if settings.smtp_username and settings.smtp_password:
          s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(m)

    await asyncio.to_thread(_send_sync)


def provider_for(provider: str) -> MailProvider:
  if provider == "smtp":
    return SmtpMailProvider()
  return LocalMailProvider()


async def send_mail(msg: MailMessage) -> None:
  try:
    await provider_for(settings.mail_provider).send(msg)
  except (OSError, smtplib.SMTPException, ValueError) as e:
    logger.error("Mail to %s failed: %s", msg.to, e)
    raise DependencyError(f"Failed to send email to {msg.to}") from e


def invitation_link(token: str) -> str:
  return f"{settings.invite_link_base.rstrip('/')}/{token}"


async def send_invitation_email(to: str, task_title: str, link: str) -> None:
  html = (
    "<h3>You have been invited to join a task!</h3>"
    f"<p>Task: <strong>{task_title}</strong></p>"
    "<p>Click the link below to join the task:</p>"
    f'<a href="{link}">Join Task</a>'
    "<p>If you did not expect this invitation, please ignore this email.</p>"
  )
  await send_mail(MailMessage(to=to, subject=f"Invitation to Join Task: {task_title}", html=html))


async def send_otp_email(to: str, username: str, otp: str) -> None:
  html = (
    f"<p>Hi {username},</p>"
    f"<p>Your FocusFlow verification code is <strong>{otp}</strong>.</p>"
    f"<p>It expires in {settings.otp_ttl_minutes} minutes.</p>"
  )
  await send_mail(MailMessage(to=to, subject="Email Verification", html=html))
