"""change control: users, change requests, approvals, audit, attachments, notifications

Revision ID: 3b9d1e7a4c20
Revises:
Create Date: 2026-10-18 09:12:44.503117
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b9d1e7a4c20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(bind, name: str) -> bool:
    insp = sa.inspect(bind)
    return name in insp.get_table_names()


def _index_exists(bind, table: str, name: str) -> bool:
    insp = sa.inspect(bind)
    for ix in insp.get_indexes(table_name=table):
        if ix.get("name") in {name, op.f(name)}:
            return True
    return False


def _create_index(bind, table: str, column: str, unique: bool = False) -> None:
    name = f"ix_{table}_{column}"
    if not _index_exists(bind, table, name):
        op.create_index(op.f(name), table, [column], unique=unique)


def upgrade() -> None:
    """Create required tables/indexes if they don't already exist."""
    bind = op.get_bind()

    # ---- USERS ----
    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False),
            sa.Column("department", sa.String(length=100), nullable=False),
            sa.Column("employee_id", sa.String(length=64), nullable=True),
            sa.Column("position", sa.String(length=100), nullable=True),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            sa.Column("signature", sa.String(), nullable=True),
            sa.Column("permissions", sa.JSON(), nullable=True),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id", name=op.f("users_pkey")),
            sa.UniqueConstraint("employee_id", name=op.f("users_employee_id_key")),
        )
    _create_index(bind, "users", "id")
    _create_index(bind, "users", "email", unique=True)
    _create_index(bind, "users", "role")
    _create_index(bind, "users", "department")
    _create_index(bind, "users", "is_active")

    # ---- CHANGE REQUESTS ----
    if not _table_exists(bind, "change_requests"):
        op.create_table(
            "change_requests",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("change_control_number", sa.String(length=32), nullable=True),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("change_type", sa.String(length=16), nullable=False),
            sa.Column("category", sa.String(length=32), nullable=False),
            sa.Column("priority", sa.String(length=16), nullable=False),
            sa.Column("requester_id", sa.Integer(), nullable=False),
            sa.Column("department", sa.String(length=100), nullable=False),
            sa.Column("request_date", sa.DateTime(), nullable=False),
            sa.Column("current_state", sa.Text(), nullable=False),
            sa.Column("proposed_change", sa.Text(), nullable=False),
            sa.Column("justification", sa.Text(), nullable=False),
            sa.Column("impact_assessment", sa.JSON(), nullable=True),
            sa.Column("proposed_implementation_date", sa.DateTime(), nullable=False),
            sa.Column("action_plan", sa.JSON(), nullable=True),
            sa.Column("effectiveness_check", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=40), nullable=False),
            sa.Column("current_approver_id", sa.Integer(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False),
            sa.Column("deleted_by", sa.Integer(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            sa.Column("version_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], name=op.f("change_requests_requester_id_fkey")),
            sa.ForeignKeyConstraint(["current_approver_id"], ["users.id"], name=op.f("change_requests_current_approver_id_fkey")),
            sa.ForeignKeyConstraint(["deleted_by"], ["users.id"], name=op.f("change_requests_deleted_by_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("change_requests_pkey")),
        )
    _create_index(bind, "change_requests", "id")
    _create_index(bind, "change_requests", "change_control_number", unique=True)
    for col in ("change_type", "category", "priority", "requester_id", "department",
                "request_date", "proposed_implementation_date", "status",
                "current_approver_id", "is_deleted"):
        _create_index(bind, "change_requests", col)

    # ---- APPROVALS (append-only) ----
    if not _table_exists(bind, "change_request_approvals"):
        op.create_table(
            "change_request_approvals",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("change_request_id", sa.Integer(), nullable=False),
            sa.Column("approver_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False),
            sa.Column("action", sa.String(length=32), nullable=False),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("signature", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["change_request_id"], ["change_requests.id"], name=op.f("change_request_approvals_change_request_id_fkey")),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], name=op.f("change_request_approvals_approver_id_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("change_request_approvals_pkey")),
        )
    _create_index(bind, "change_request_approvals", "change_request_id")

    # ---- AUDIT LOG (append-only) ----
    if not _table_exists(bind, "change_request_audit_log"):
        op.create_table(
            "change_request_audit_log",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("change_request_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(length=128), nullable=True),
            sa.Column("performed_by", sa.Integer(), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["change_request_id"], ["change_requests.id"], name=op.f("change_request_audit_log_change_request_id_fkey")),
            sa.ForeignKeyConstraint(["performed_by"], ["users.id"], name=op.f("change_request_audit_log_performed_by_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("change_request_audit_log_pkey")),
        )
    _create_index(bind, "change_request_audit_log", "change_request_id")
    _create_index(bind, "change_request_audit_log", "action")

    # ---- ATTACHMENTS ----
    if not _table_exists(bind, "attachments"):
        op.create_table(
            "attachments",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("change_request_id", sa.Integer(), nullable=False),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.Column("original_name", sa.String(length=255), nullable=False),
            sa.Column("mimetype", sa.String(length=128), nullable=True),
            sa.Column("size", sa.Integer(), nullable=False),
            sa.Column("uploaded_by", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=32), nullable=False),
            sa.Column("upload_date", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["change_request_id"], ["change_requests.id"], name=op.f("attachments_change_request_id_fkey")),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], name=op.f("attachments_uploaded_by_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("attachments_pkey")),
        )
    _create_index(bind, "attachments", "change_request_id")

    # ---- NOTIFICATIONS ----
    if not _table_exists(bind, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("change_request_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=32), nullable=False),
            sa.Column("subject", sa.String(length=300), nullable=False),
            sa.Column("message", sa.String(length=2000), nullable=False),
            sa.Column("read", sa.Boolean(), nullable=False),
            sa.Column("sent_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], name=op.f("notifications_recipient_id_fkey")),
            sa.ForeignKeyConstraint(["change_request_id"], ["change_requests.id"], name=op.f("notifications_change_request_id_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("notifications_pkey")),
        )
    _create_index(bind, "notifications", "recipient_id")
    _create_index(bind, "notifications", "change_request_id")

    # ---- CONTROL NUMBER COUNTERS ----
    if not _table_exists(bind, "control_number_counters"):
        op.create_table(
            "control_number_counters",
            sa.Column("year", sa.Integer(), autoincrement=False, nullable=False),
            sa.Column("last_value", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("year", name=op.f("control_number_counters_pkey")),
        )


def downgrade() -> None:
    """Drop the same objects (guarded) to roll back this revision."""
    # Drop in reverse dependency order
    op.execute("DROP TABLE IF EXISTS control_number_counters")
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TABLE IF EXISTS attachments")
    op.execute("DROP TABLE IF EXISTS change_request_audit_log")
    op.execute("DROP TABLE IF EXISTS change_request_approvals")
    op.execute("DROP TABLE IF EXISTS change_requests")
    op.execute("DROP TABLE IF EXISTS users")
