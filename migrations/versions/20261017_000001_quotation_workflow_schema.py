"""Quotation workflow schema baseline from quotation_engine.db

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from quotation_engine.db import _convert_qmark_to_pg, _split_sql_statements, init_db_postgres, init_db_sqlite


# revision identifiers, used by Alembic.
revision: str = "20261017_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


class _AlembicDbAdapter:
    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return self._connection.exec_driver_sql(sql)
        statement = _convert_qmark_to_pg(sql) if self.backend == "postgres" else sql
        return self._connection.exec_driver_sql(statement, tuple(params))

    def executescript(self, sql: str):
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        # Alembic owns the transaction of the migration.
        return None


def _resolve_backend(connection: Connection) -> str:
    dialect = (connection.dialect.name or "").lower()
    if dialect.startswith("postgres"):
        return "postgres"
    return "sqlite"


def upgrade() -> None:
    connection = op.get_bind()
    adapter = _AlembicDbAdapter(connection, _resolve_backend(connection))
    if adapter.backend == "postgres":
        init_db_postgres(adapter)
        return
    init_db_sqlite(adapter)


def downgrade() -> None:
    connection = op.get_bind()
    backend = _resolve_backend(connection)

    if backend == "postgres":
        op.execute("DROP FUNCTION IF EXISTS reject_append_only_change() CASCADE")
    else:
        for trigger in (
            "trg_quotation_revisions_no_update",
            "trg_quotation_revisions_no_delete",
            "trg_approvals_no_delete",
        ):
            op.execute(f"DROP TRIGGER IF EXISTS {trigger}")

    for table in (
        "status_events",
        "quotation_comments",
        "quotation_revisions",
        "approvals",
        "quotations",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table}")
