"""Initial schema — organizations, users, policies, portals, acknowledgments, audit.

Revision ID: 001_initial_schema
Revises:
"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ── tenants ──
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_table(
        "organization_settings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("setting_key", sa.String(100), nullable=False),
        sa.Column("setting_value", sa.JSON),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "setting_key", name="uq_org_setting_key"),
    )
    op.create_table(
        "organization_variables",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("variable_name", sa.String(100), nullable=False),
        sa.Column("variable_value", sa.Text),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "variable_name", name="uq_org_variable_name"),
    )

    # ── users & sessions ──
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE")),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("admin", "editor", "user", name="user_role"), nullable=False, server_default="user"),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("is_super_admin", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("has_logged_in", sa.Boolean, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_table(
        "user_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("last_accessed_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "login_attempts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("attempt_type", sa.String(50), nullable=False, server_default="login"),
        sa.Column("success", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("attempted_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "superadmin_impersonation_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("super_admin_user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime),
        sa.Column("end_reason", sa.String(20)),
    )

    # ── policies ──
    op.create_table(
        "policies",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("status", sa.Enum("draft", "published", "archived", name="policy_status"), nullable=False, server_default="draft"),
        sa.Column("author_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("current_version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("tags", sa.JSON),
        sa.Column("department", sa.String(100)),
        sa.Column("category", sa.String(100)),
        sa.Column("effective_date", sa.Date),
        sa.Column("expiration_date", sa.Date),
        sa.Column("review_date", sa.Date),
        sa.Column("published_at", sa.DateTime),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_table(
        "policy_versions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("policy_id", sa.Integer, sa.ForeignKey("policies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("change_summary", sa.String(500)),
        sa.Column("effective_date", sa.Date),
        sa.Column("expiration_date", sa.Date),
        sa.Column("review_date", sa.Date),
        sa.Column("tags", sa.JSON),
        sa.Column("department", sa.String(100)),
        sa.Column("category", sa.String(100)),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("policy_id", "version_number", name="uq_policy_version"),
    )
    op.create_table(
        "policy_acknowledgments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("policy_id", sa.Integer, sa.ForeignKey("policies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("policy_version", sa.Integer),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("acknowledged_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("policy_id", "user_id", name="uq_policy_ack_user"),
    )

    # ── portals ──
    op.create_table(
        "portals",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("label", sa.String(100)),
        sa.Column("description", sa.Text),
        sa.Column(
            "access_type",
            sa.Enum("public", "password", "authenticated", "role_based", name="portal_access_type"),
            nullable=False, server_default="public",
        ),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("allowed_roles", sa.JSON),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("requires_acknowledgment", sa.Boolean, nullable=False, server_default="0"),
        sa.Column(
            "acknowledgment_mode",
            sa.Enum("simple", "confirmed_understanding", "email", name="portal_ack_mode"),
            nullable=False, server_default="simple",
        ),
        sa.Column("acknowledgment_due_days", sa.Integer),
        sa.Column("acknowledgment_reminder_days", sa.Integer),
        sa.Column("minimum_reading_time_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("require_full_scroll", sa.Boolean, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "slug", name="uq_portal_org_slug"),
    )
    op.create_table(
        "policy_portal_assignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("policy_id", sa.Integer, sa.ForeignKey("policies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("portal_id", sa.Integer, sa.ForeignKey("portals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("policy_id", "portal_id", name="uq_policy_portal"),
    )
    op.create_table(
        "portal_email_recipients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("portal_id", sa.Integer, sa.ForeignKey("portals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("portal_id", "email", name="uq_portal_recipient"),
    )
    op.create_table(
        "portal_settings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("portal_id", sa.Integer, sa.ForeignKey("portals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("setting_key", sa.String(100), nullable=False),
        sa.Column("setting_value", sa.JSON),
        *_timestamps(),
        sa.UniqueConstraint("portal_id", "setting_key", name="uq_portal_setting_key"),
    )

    # ── e-mail acknowledgments ──
    op.create_table(
        "email_based_acknowledgments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("portal_id", sa.Integer, sa.ForeignKey("portals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("policy_id", sa.Integer, sa.ForeignKey("policies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.String(500)),
        sa.UniqueConstraint("portal_id", "policy_id", "email", name="uq_email_ack"),
    )
    op.create_table(
        "acknowledgment_confirmation_codes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("portal_id", sa.Integer, sa.ForeignKey("portals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("policy_id", sa.Integer, sa.ForeignKey("policies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("used", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_ack_codes_lookup", "acknowledgment_confirmation_codes",
        ["portal_id", "policy_id", "email", "code"],
    )

    # ── audit ──
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.Integer, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("module", sa.String(50), nullable=False),
        sa.Column(
            "action",
            sa.Enum("create", "update", "delete", "publish", "rollback", "acknowledge", "assign", name="audit_action"),
            nullable=False,
        ),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("field_name", sa.String(100)),
        sa.Column("old_value", sa.Text),
        sa.Column("new_value", sa.Text),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "security_audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(50), nullable=False, index=True),
        sa.Column("email", sa.String(255)),
        sa.Column("user_id", sa.Integer),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.String(500)),
        sa.Column("details", sa.JSON),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in (
        "security_audit_log",
        "audit_log",
        "acknowledgment_confirmation_codes",
        "email_based_acknowledgments",
        "portal_settings",
        "portal_email_recipients",
        "policy_portal_assignments",
        "portals",
        "policy_acknowledgments",
        "policy_versions",
        "policies",
        "superadmin_impersonation_logs",
        "login_attempts",
        "user_sessions",
        "users",
        "organization_variables",
        "organization_settings",
        "organizations",
    ):
        op.drop_table(table)
