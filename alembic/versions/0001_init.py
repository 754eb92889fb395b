"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("is_new_user", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("firstname", sa.String(), nullable=False, server_default=""),
    sa.Column("lastname", sa.String(), nullable=False, server_default=""),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("avatar_public_id", sa.String(), nullable=True),
    sa.Column("otp_hash", sa.String(), nullable=True),
    sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_username", "users", ["username"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("status", sa.String(), nullable=False, server_default="pending"),
    sa.Column("priority", sa.String(), nullable=False, server_default="low"),
    sa.Column("tags", sa.JSON(), nullable=False),
    sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("subtasks", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_owner_id", "tasks", ["owner_id"], unique=False)

  op.create_table(
    "task_invitations",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="pending"),
    sa.Column("token", sa.String(), nullable=True),
    sa.Column("invited_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("invited_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    sa.UniqueConstraint("user_id", "task_id", name="ux_task_invitations_user_task"),
    sa.UniqueConstraint("token", name="ux_task_invitations_token"),
  )
  op.create_index("ix_task_invitations_user_id", "task_invitations", ["user_id"], unique=False)
  op.create_index("ix_task_invitations_task_id", "task_invitations", ["task_id"], unique=False)

  op.create_table(
    "task_attachments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("url", sa.String(), nullable=False),
    sa.Column("original_name", sa.String(), nullable=False),
    sa.Column("public_id", sa.String(), nullable=True),
    sa.Column("type", sa.String(), nullable=False, server_default="other"),
    sa.Column("mime", sa.String(), nullable=False),
    sa.Column("size_mb", sa.Float(), nullable=False, server_default="0"),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_attachments_task_id", "task_attachments", ["task_id"], unique=False)

  op.create_table(
    "task_activity",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_task_activity_task_id", "task_activity", ["task_id"], unique=False)
  op.create_index("ix_task_activity_created_at", "task_activity", ["created_at"], unique=False)

  op.create_table(
    "task_comments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_task_comments_task_id", "task_comments", ["task_id"], unique=False)

  op.create_table(
    "task_comment_replies",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("comment_id", sa.String(36), sa.ForeignKey("task_comments.id"), nullable=False),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_task_comment_replies_comment_id", "task_comment_replies", ["comment_id"], unique=False)
  op.create_index("ix_task_comment_replies_task_id", "task_comment_replies", ["task_id"], unique=False)

  op.create_table(
    "notifications",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=True),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
  op.create_index("ix_notifications_task_id", "notifications", ["task_id"], unique=False)


def downgrade() -> None:
  op.drop_table("notifications")
  op.drop_table("task_comment_replies")
  op.drop_table("task_comments")
  op.drop_table("task_activity")
  op.drop_table("task_attachments")
  op.drop_table("task_invitations")
  op.drop_table("tasks")
  op.drop_table("users")
