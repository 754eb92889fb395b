from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://focusflow:focusflow@db:5432/focusflow"
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"
  log_level: str = "INFO"
  api_docs_enabled: bool = True

  jwt_secret: str = "dev-secret-change-me"
  jwt_algorithm: str = "HS256"
  jwt_expire_days: int = 30

  cookie_name: str = "jwt"
  cookie_max_age_days: int = 5
  cookie_secure: bool = True
  cookie_domain: str | None = None

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  redis_url: str | None = None
  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_otp_email_per_minute: int = 5

  otp_ttl_minutes: int = 10

  mail_provider: str = "local"  # local | smtp
  mail_from: str = "FocusFlow <no-reply@focusflow.local>"
  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_starttls: bool = True
  invite_link_base: str = "http://localhost:3000/tasks/join"

  upload_dir: str = "data/uploads"
  storage_public_url: str = "/uploads"
  max_attachment_bytes: int = 5 * 1024 * 1024
  max_attachments: int = 10

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
