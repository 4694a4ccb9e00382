"""initial cms schema

Revision ID: 5e1a7c3b9d20
Revises:
Create Date: 2026-10-19 09:12:41.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1a7c3b9d20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_LIVE = sa.text("deleted_at IS NULL")


def upgrade() -> None:
    """Create users, role_mappings, pages, content_revisions, site_settings and audit_events."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "uq_users_username_live", "users", ["username"], unique=True, postgresql_where=_LIVE, sqlite_where=_LIVE
    )
    op.create_index(
        "uq_users_email_live", "users", ["email"], unique=True, postgresql_where=_LIVE, sqlite_where=_LIVE
    )

    op.create_table(
        "role_mappings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_role_mappings_user_role"),
    )
    op.create_index("ix_role_mappings_user_id", "role_mappings", ["user_id"])

    # published_revision_id FK is added below, once content_revisions exists.
    op.create_table(
        "pages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("published_revision_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "content_revisions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("page_id", sa.Integer(), sa.ForeignKey("pages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rendered_html", sa.Text(), nullable=False),
        sa.Column("rendered_css", sa.Text(), nullable=False),
        sa.Column("editor_content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column(
            "created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
    )
    op.create_index("ix_content_revisions_page_id", "content_revisions", ["page_id"])

    with op.batch_alter_table("pages") as batch_op:
        batch_op.create_foreign_key(
            "fk_pages_published_revision",
            "content_revisions",
            ["published_revision_id"],
            ["id"],
            ondelete="SET NULL",
        )
    # After the batch op: on SQLite it rebuilds the table.
    op.create_index("uq_pages_title_live", "pages", ["title"], unique=True, postgresql_where=_LIVE, sqlite_where=_LIVE)
    op.create_index("ix_pages_updated_at", "pages", ["updated_at"])

    op.create_table(
        "site_settings",
        sa.Column("active", sa.Boolean(), primary_key=True),
        sa.Column("site_name", sa.String(100), nullable=False),
        sa.Column("image_directory_path", sa.String(255), nullable=False, server_default=""),
        sa.Column("smtp_server", sa.String(255), nullable=False, server_default=""),
        sa.Column("smtp_username", sa.String(255), nullable=False, server_default=""),
        sa.Column("smtp_password", sa.String(255), nullable=False, server_default=""),
        sa.Column("smtp_port", sa.String(16), nullable=False, server_default=""),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(45), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("site_settings")
    op.drop_index("ix_pages_updated_at", table_name="pages")
    op.drop_index("uq_pages_title_live", table_name="pages")
    with op.batch_alter_table("pages") as batch_op:
        batch_op.drop_constraint("fk_pages_published_revision", type_="foreignkey")
    op.drop_index("ix_content_revisions_page_id", table_name="content_revisions")
    op.drop_table("content_revisions")
    op.drop_table("pages")
    op.drop_index("ix_role_mappings_user_id", table_name="role_mappings")
    op.drop_table("role_mappings")
    op.drop_index("uq_users_email_live", table_name="users")
    op.drop_index("uq_users_username_live", table_name="users")
    op.drop_table("users")
