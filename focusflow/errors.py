from __future__ import annotations


class AppError(Exception):
  """Base for errors rendered as ``{"detail": message}`` at the HTTP boundary."""

  status_code = 500

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class ValidationError(AppError):
  status_code = 400


class AuthError(AppError):
  status_code = 401


class NotFoundError(AppError):
  status_code = 404


class AuthorizationError(AppError):
  # 401 rather than 403; clients already branch on it.
  status_code = 401


class DependencyError(AppError):
  """A storage, email or directory call failed.

  Writes that were already committed before the failure stay in place.
  """

  status_code = 500
