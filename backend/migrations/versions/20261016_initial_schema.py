"""Initial schema: employees, sessions, settings, tickets, audit and rate limiting

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_initial"
down_revision = None
branch_labels = None
depends_on = None


TICKET_STATUSES = "'intake', 'in_progress', 'waiting_on_parts', 'ready_for_pickup', 'closed', 'archived'"


def upgrade():
    op.create_table(
        "employees",
        sa.Column("employee_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("pin_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("role IN ('staff', 'admin')", name="ck_employees_role"),
        sa.PrimaryKeyConstraint("employee_id"),
    )
    with op.batch_alter_table("employees", schema=None) as batch_op:
        batch_op.create_index("ix_employees_active", ["is_active"], unique=False)

    for table in ("admin_sessions", "employee_sessions"):
        columns = [
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("token_hash", sa.String(64), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("last_activity_at", sa.DateTime(), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
        ]
        constraints = [
            sa.PrimaryKeyConstraint("session_id"),
            sa.UniqueConstraint("token_hash"),
        ]
        if table == "employee_sessions":
            columns.append(sa.Column("employee_id", sa.String(36), nullable=False))
            constraints.append(
                sa.ForeignKeyConstraint(["employee_id"], ["employees.employee_id"], ondelete="CASCADE")
            )
        op.create_table(table, *columns, *constraints, sqlite_autoincrement=True)
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table}_expires_at", ["expires_at"], unique=False)
            if table == "employee_sessions":
                batch_op.create_index("ix_employee_sessions_employee", ["employee_id"], unique=False)

    op.create_table(
        "store_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_name", sa.String(255), nullable=False),
        sa.Column("store_phone", sa.String(50), nullable=True),
        sa.Column("store_address", sa.Text(), nullable=True),
        sa.Column("ticket_prefix", sa.String(10), nullable=False),
        sa.Column("next_ticket_number", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(10), nullable=False),
        sa.Column("max_photos_per_ticket", sa.Integer(), nullable=False),
        sa.Column("admin_pin_hash", sa.String(255), nullable=True),
        sa.Column("min_pin_length", sa.Integer(), nullable=False),
        sa.Column("setup_complete", sa.Boolean(), nullable=False),
        sa.Column("setup_deadline", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "storage_locations",
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("location_id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "customers",
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("customer_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_phone", ["phone"], unique=False)

    op.create_table(
        "tickets",
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("friendly_code", sa.String(20), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(100), nullable=False),
        sa.Column("item_description", sa.Text(), nullable=False),
        sa.Column("condition_notes", sa.Text(), nullable=False),
        sa.Column("requested_work", sa.Text(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("is_rush", sa.Boolean(), nullable=False),
        sa.Column("promise_date", sa.Date(), nullable=True),
        sa.Column("storage_location_id", sa.Integer(), nullable=False),
        sa.Column("quote_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("actual_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("taken_in_by", sa.String(36), nullable=False),
        sa.Column("worked_by", sa.String(36), nullable=True),
        sa.Column("closed_by", sa.String(36), nullable=True),
        sa.Column("last_modified_by", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by", sa.String(36), nullable=True),
        sa.CheckConstraint(f"status IN ({TICKET_STATUSES})", name="ck_tickets_status"),
        sa.CheckConstraint(
            "(deleted_at IS NULL AND deleted_by IS NULL) OR "
            "(deleted_at IS NOT NULL AND deleted_by IS NOT NULL)",
            name="ck_tickets_deleted_pair",
        ),
        sa.CheckConstraint("quote_amount IS NULL OR quote_amount >= 0", name="ck_tickets_quote_nonneg"),
        sa.CheckConstraint("actual_amount IS NULL OR actual_amount >= 0", name="ck_tickets_actual_nonneg"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.customer_id"]),
        sa.ForeignKeyConstraint(["storage_location_id"], ["storage_locations.location_id"]),
        sa.ForeignKeyConstraint(["taken_in_by"], ["employees.employee_id"]),
        sa.ForeignKeyConstraint(["worked_by"], ["employees.employee_id"]),
        sa.ForeignKeyConstraint(["closed_by"], ["employees.employee_id"]),
        sa.ForeignKeyConstraint(["last_modified_by"], ["employees.employee_id"]),
        sa.ForeignKeyConstraint(["deleted_by"], ["employees.employee_id"]),
        sa.PrimaryKeyConstraint("ticket_id"),
        sa.UniqueConstraint("friendly_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tickets", schema=None) as batch_op:
        batch_op.create_index("ix_tickets_status", ["status"], unique=False)
        batch_op.create_index("ix_tickets_deleted_at", ["deleted_at"], unique=False)
        batch_op.create_index("ix_tickets_taken_in_by", ["taken_in_by"], unique=False)
        batch_op.create_index("ix_tickets_worked_by", ["worked_by"], unique=False)

    # Audit trail: RESTRICT keeps a ticket with history from being hard deleted.
    op.create_table(
        "ticket_status_history",
        sa.Column("history_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(32), nullable=True),
        sa.Column("to_status", sa.String(32), nullable=False),
        sa.Column("changed_by", sa.String(36), nullable=False),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.ticket_id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["changed_by"], ["employees.employee_id"]),
        sa.PrimaryKeyConstraint("history_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ticket_status_history", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_status_history_ticket", ["ticket_id", "changed_at"], unique=False)

    op.create_table(
        "ticket_field_history",
        sa.Column("history_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(36), nullable=False),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.ticket_id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["changed_by"], ["employees.employee_id"]),
        sa.PrimaryKeyConstraint("history_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ticket_field_history", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_field_history_ticket", ["ticket_id", "changed_at"], unique=False)

    op.create_table(
        "ticket_notes",
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.ticket_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["employees.employee_id"]),
        sa.PrimaryKeyConstraint("note_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ticket_notes", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_notes_ticket", ["ticket_id"], unique=False)

    op.create_table(
        "ticket_photos",
        sa.Column("photo_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("storage_key", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(32), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("uploaded_by", sa.String(36), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.ticket_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["employees.employee_id"]),
        sa.PrimaryKeyConstraint("photo_id"),
        sa.UniqueConstraint("storage_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ticket_photos", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_photos_ticket", ["ticket_id"], unique=False)

    op.create_table(
        "security_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.String(36), nullable=True),
        sa.Column("principal_kind", sa.String(16), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("resource", sa.String(128), nullable=True),
        sa.Column("action", sa.String(64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("security_events", schema=None) as batch_op:
        batch_op.create_index("ix_security_events_employee_id", ["employee_id"], unique=False)
        batch_op.create_index("ix_security_events_success", ["success"], unique=False)
        batch_op.create_index("ix_security_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_security_events_type_occurred", ["event_type", "occurred_at"], unique=False)

    op.create_table(
        "rate_limit_records",
        sa.Column("source_key", sa.String(128), nullable=False),
        sa.Column("consecutive_failures", sa.Integer(), nullable=False),
        sa.Column("last_failure_at", sa.DateTime(), nullable=True),
        sa.Column("next_allowed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("source_key"),
    )

    op.create_table(
        "rate_limit_attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source_key", sa.String(128), nullable=False),
        sa.Column("attempted_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("rate_limit_attempts", schema=None) as batch_op:
        batch_op.create_index("ix_rate_limit_attempts_key_at", ["source_key", "attempted_at"], unique=False)


def downgrade():
    op.drop_table("rate_limit_attempts")
    op.drop_table("rate_limit_records")
    op.drop_table("security_events")
    op.drop_table("ticket_photos")
    op.drop_table("ticket_notes")
    op.drop_table("ticket_field_history")
    op.drop_table("ticket_status_history")
    op.drop_table("tickets")
    op.drop_table("customers")
    op.drop_table("storage_locations")
    op.drop_table("store_settings")
    op.drop_table("employee_sessions")
    op.drop_table("admin_sessions")
    op.drop_table("employees")
