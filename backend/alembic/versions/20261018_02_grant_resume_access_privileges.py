"""Grant resume access table privileges to app user.

Revision ID: 20261018_02
Revises: 20261018_01
Create Date: 2026-10-18 09:30:00
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

from app.core.config import settings

revision: str = "20261018_02"
down_revision: Union[str, None] = "20261018_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TABLES = (
    "users",
    "companies",
    "postings",
    "applications",
    "resumes",
    "resume_shares",
    "resume_access_logs",
    "resume_stats",
)


def _quote_ident(identifier: str) -> str:
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def upgrade() -> None:
    app_user = (settings.DB_APP_USER or "").strip()
    if not app_user:
        return
    quoted = _quote_ident(app_user)

    for table in _TABLES:
        op.execute(f"GRANT SELECT, INSERT, UPDATE, DELETE ON {table} TO {quoted}")
        op.execute(f"GRANT USAGE, SELECT ON SEQUENCE {table}_id_seq TO {quoted}")
    # Natural primary key, no sequence.
    op.execute(f"GRANT SELECT, INSERT, UPDATE, DELETE ON upload_tokens TO {quoted}")


def downgrade() -> None:
    app_user = (settings.DB_APP_USER or "").strip()
    if not app_user:
        return
    quoted = _quote_ident(app_user)

    op.execute(f"REVOKE SELECT, INSERT, UPDATE, DELETE ON upload_tokens FROM {quoted}")
    for table in reversed(_TABLES):
        op.execute(f"REVOKE USAGE, SELECT ON SEQUENCE {table}_id_seq FROM {quoted}")
        op.execute(f"REVOKE SELECT, INSERT, UPDATE, DELETE ON {table} FROM {quoted}")
