"""Create resume access tables.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_subject", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_external_subject", "users", ["external_subject"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_companies_user_id", "companies", ["user_id"], unique=True)

    op.create_table(
        "postings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_postings_company_id", "postings", ["company_id"])

    op.create_table(
        "resumes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("object_key", sa.String(length=512), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("visibility", sa.String(length=20), nullable=False, server_default="private"),
        sa.Column("scan_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("scan_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scan_message", sa.String(length=1024), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("downloads_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_downloaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("visibility IN ('private', 'public', 'restricted')", name="ck_resumes_visibility"),
        sa.CheckConstraint("scan_status IN ('pending', 'clean', 'rejected')", name="ck_resumes_scan_status"),
    )
    op.create_index("ix_resumes_owner_id", "resumes", ["owner_id"])
    op.create_index("ix_resumes_object_key", "resumes", ["object_key"], unique=True)
    op.create_index("ix_resumes_uploaded_at", "resumes", ["uploaded_at"])
    op.create_index("ix_resumes_visibility_scan", "resumes", ["visibility", "scan_status"])
    # At most one primary resume per owner.
    op.create_index(
        "uq_resumes_owner_primary",
        "resumes",
        ["owner_id"],
        unique=True,
        postgresql_where=sa.text("is_primary IS TRUE"),
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("posting_id", sa.Integer(), nullable=False),
        sa.Column("student_user_id", sa.Integer(), nullable=False),
        sa.Column("resume_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="applied"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["posting_id"], ["postings.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resume_id"], ["resumes.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_applications_posting_id", "applications", ["posting_id"])
    op.create_index("ix_applications_student_user_id", "applications", ["student_user_id"])
    op.create_index("ix_applications_resume_id", "applications", ["resume_id"])

    op.create_table(
        "resume_shares",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("resume_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("access_level", sa.String(length=20), nullable=False, server_default="download"),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="manual"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["resume_id"], ["resumes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("resume_id", "company_id", name="uq_resume_shares_resume_company"),
        sa.CheckConstraint("access_level IN ('view', 'download')", name="ck_resume_shares_access_level"),
    )
    op.create_index("ix_resume_shares_resume_id", "resume_shares", ["resume_id"])
    op.create_index("ix_resume_shares_owner_id", "resume_shares", ["owner_id"])
    op.create_index("ix_resume_shares_company_id", "resume_shares", ["company_id"])

    op.create_table(
        "resume_access_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("resume_id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("access_type", sa.String(length=20), nullable=False),
        sa.Column("accessed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("signed_url_hash", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["resume_id"], ["resumes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("access_type IN ('view', 'download')", name="ck_resume_access_logs_access_type"),
    )
    op.create_index("ix_resume_access_logs_resume_id", "resume_access_logs", ["resume_id"])
    op.create_index("ix_resume_access_logs_company_id", "resume_access_logs", ["company_id"])
    op.create_index("ix_resume_access_logs_accessed_at", "resume_access_logs", ["accessed_at"])
    op.create_index(
        "ix_resume_access_logs_window",
        "resume_access_logs",
        ["resume_id", "company_id", "accessed_at"],
    )

    op.create_table(
        "resume_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("resume_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("total_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_downloads", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_company_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_company_downloads", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_downloaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("viewers", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["resume_id"], ["resumes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_resume_stats_resume_id", "resume_stats", ["resume_id"], unique=True)
    op.create_index("ix_resume_stats_owner_id", "resume_stats", ["owner_id"])

    op.create_table(
        "upload_tokens",
        sa.Column("token_hash", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("object_key", sa.String(length=512), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_upload_tokens_owner_id", "upload_tokens", ["owner_id"])
    op.create_index("ix_upload_tokens_expires_at", "upload_tokens", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_upload_tokens_expires_at", table_name="upload_tokens")
    op.drop_index("ix_upload_tokens_owner_id", table_name="upload_tokens")
    op.drop_table("upload_tokens")

    op.drop_index("ix_resume_stats_owner_id", table_name="resume_stats")
    op.drop_index("ix_resume_stats_resume_id", table_name="resume_stats")
    op.drop_table("resume_stats")

    op.drop_index("ix_resume_access_logs_window", table_name="resume_access_logs")
    op.drop_index("ix_resume_access_logs_accessed_at", table_name="resume_access_logs")
    op.drop_index("ix_resume_access_logs_company_id", table_name="resume_access_logs")
    op.drop_index("ix_resume_access_logs_resume_id", table_name="resume_access_logs")
    op.drop_table("resume_access_logs")

    op.drop_index("ix_resume_shares_company_id", table_name="resume_shares")
    op.drop_index("ix_resume_shares_owner_id", table_name="resume_shares")
    op.drop_index("ix_resume_shares_resume_id", table_name="resume_shares")
    op.drop_table("resume_shares")

    op.drop_index("ix_applications_resume_id", table_name="applications")
    op.drop_index("ix_applications_student_user_id", table_name="applications")
    op.drop_index("ix_applications_posting_id", table_name="applications")
    op.drop_table("applications")

    op.drop_index("uq_resumes_owner_primary", table_name="resumes")
    op.drop_index("ix_resumes_visibility_scan", table_name="resumes")
    op.drop_index("ix_resumes_uploaded_at", table_name="resumes")
    op.drop_index("ix_resumes_object_key", table_name="resumes")
    op.drop_index("ix_resumes_owner_id", table_name="resumes")
    op.drop_table("resumes")

    op.drop_index("ix_postings_company_id", table_name="postings")
    op.drop_table("postings")

    op.drop_index("ix_companies_user_id", table_name="companies")
    op.drop_table("companies")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_external_subject", table_name="users")
    op.drop_table("users")
