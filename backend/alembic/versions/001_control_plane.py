"""create control plane tables (hosts, managed_services, actions)

Revision ID: 001_control_plane
Revises:
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_control_plane"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # hosts 表
    op.create_table(
        "hosts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("agent_token_hash", sa.String(64), nullable=False),
        sa.Column("agent_token_prefix", sa.String(8), nullable=False),
        sa.Column("token_rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_hosts_name", "hosts", ["name"], unique=True)
    op.create_index("ix_hosts_agent_token_hash", "hosts", ["agent_token_hash"], unique=True)

    # managed_services 表
    op.create_table(
        "managed_services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("hosts.id"), nullable=False),
        sa.Column("unit_name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("card_id", sa.String(64), nullable=True),
        sa.Column("allow_start", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("allow_stop", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("allow_restart", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("host_id", "unit_name", name="uq_managed_service_host_unit"),
    )
    op.create_index("ix_managed_services_host_id", "managed_services", ["host_id"])

    # actions 表
    op.create_table(
        "actions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("host_id", sa.Integer(), sa.ForeignKey("hosts.id"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("managed_services.id"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exit_code", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("requested_by", sa.String(255), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.UniqueConstraint("host_id", "idempotency_key", name="uq_action_host_idempotency_key"),
    )
    op.create_index("ix_actions_host_id", "actions", ["host_id"])
    op.create_index("ix_actions_service_id", "actions", ["service_id"])
    op.create_index("ix_actions_status", "actions", ["status"])
    op.create_index("ix_actions_requested_at", "actions", ["requested_at"])
    # 队列领取按 (host_id, status, requested_at) 过滤排序
    op.create_index("ix_actions_host_status_requested", "actions", ["host_id", "status", "requested_at"])


def downgrade() -> None:
    op.drop_table("actions")
    op.drop_table("managed_services")
    op.drop_table("hosts")
