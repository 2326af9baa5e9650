import contextlib
import sqlite3
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extensions
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from quotation_engine.errors import ConcurrentUpdateError


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._in_transaction = False

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextlib.contextmanager
    def transaction(self):
        """Run the enclosed block as one unit: everything is committed or nothing is.

        Nested calls join the outer transaction. SQLite takes the write lock up
        front (BEGIN IMMEDIATE) so two workflow writers never interleave their
        read-modify-write; PostgreSQL runs SERIALIZABLE and serialization
        failures surface as ConcurrentUpdateError.
        """
        if self._in_transaction:
            yield self
            return

        if self.backend == "postgres":
            self.execute("BEGIN ISOLATION LEVEL SERIALIZABLE")
        else:
            try:
                self.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                raise ConcurrentUpdateError(details=str(exc)) from exc
        self._in_transaction = True
        try:
            yield self
        except Exception as exc:
            self._in_transaction = False
            self._rollback_quietly()
            if _is_serialization_failure(exc):
                raise ConcurrentUpdateError(details=str(exc)) from exc
            raise
        else:
            self._in_transaction = False
            try:
                self.execute("COMMIT")
            except Exception as exc:
                self._rollback_quietly()
                if _is_serialization_failure(exc):
                    raise ConcurrentUpdateError(details=str(exc)) from exc
                raise

    def _rollback_quietly(self) -> None:
        try:
            self.execute("ROLLBACK")
        except Exception:  # noqa: BLE001
            # Connection already aborted the transaction on its own.
            pass

    def commit(self):
        self._conn.commit()

    def close(self):
        self._conn.close()


def _is_serialization_failure(exc: Exception) -> bool:
    if psycopg2 is not None and isinstance(exc, psycopg2.extensions.TransactionRollbackError):
        return True
    if isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower():
        return True
    return False


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_dollar = False
    i = 0
    while i < len(sql):
        ch = sql[i]
        if not in_single and sql[i : i + 2] == "$$":
            in_dollar = not in_dollar
            current.append("$$")
            i += 2
            continue
        if not in_dollar:
            if ch == "'":
                in_single = not in_single
            elif ch == ";" and not in_single:
                statements.append("".join(current))
                current = []
                i += 1
                continue
        current.append(ch)
        i += 1
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str, *, busy_timeout_seconds: int = 15) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(
        db_path,
        timeout=float(max(1, busy_timeout_seconds)),
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db() -> Database:
    if "db" not in g:
        g.db = connect_database(
            current_app.config["DB_PATH"],
            busy_timeout_seconds=int(current_app.config.get("DB_BUSY_TIMEOUT_SECONDS", 15) or 15),
        )
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db(db: Database | None = None):
    db = db or get_db()
    if db.backend == "postgres":
        init_db_postgres(db)
        return
    init_db_sqlite(db)


QUOTATION_STATUSES_SQL = (
    "'draft','submitted','under_review','approved','rejected','revision_requested','negotiating'"
)
COMMENT_KINDS_SQL = "'general','revision_request','counter_offer','clarification'"


def init_db_sqlite(db):
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            full_name TEXT,
            role TEXT NOT NULL CHECK (role IN ('admin','vendor','approver')),
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS quotations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            rfq_id INTEGER NOT NULL,
            vendor_id INTEGER NOT NULL,
            quote_number TEXT NOT NULL UNIQUE,
            total_amount TEXT NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            line_items TEXT NOT NULL,
            terms_conditions TEXT,
            encrypted_data TEXT,
            encryption_key_hash TEXT,
            digital_signature TEXT,
            public_key TEXT,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ({QUOTATION_STATUSES_SQL})),
            row_version INTEGER NOT NULL DEFAULT 1,
            submitted_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS approvals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            approver_id INTEGER NOT NULL,
            level INTEGER NOT NULL CHECK (level >= 1),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','approved','rejected')),
            comments TEXT,
            decided_at TEXT,
            decision_digest TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (quotation_id, level)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS quotation_revisions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            version INTEGER NOT NULL CHECK (version >= 1),
            total_amount TEXT NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            line_items TEXT NOT NULL,
            delivery_time TEXT,
            validity_period INTEGER,
            notes TEXT,
            changed_by INTEGER NOT NULL,
            change_reason TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (quotation_id, version)
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS quotation_comments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            user_id INTEGER NOT NULL,
            comment TEXT NOT NULL,
            comment_type TEXT NOT NULL DEFAULT 'general' CHECK (comment_type IN ({COMMENT_KINDS_SQL})),
            is_internal INTEGER NOT NULL DEFAULT 0,
            parent_comment_id INTEGER REFERENCES quotation_comments(id),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS status_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entity TEXT NOT NULL CHECK (entity IN ('quotation','approval')),
            entity_id INTEGER NOT NULL,
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT,
            actor_user_id INTEGER,
            occurred_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_quotation_revisions_no_update
        BEFORE UPDATE ON quotation_revisions
        BEGIN
            SELECT RAISE(ABORT, 'quotation_revisions is append-only');
        END
        """
    )
    db.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_quotation_revisions_no_delete
        BEFORE DELETE ON quotation_revisions
        BEGIN
            SELECT RAISE(ABORT, 'quotation_revisions is append-only');
        END
        """
    )
    db.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_approvals_no_delete
        BEFORE DELETE ON approvals
        BEGIN
            SELECT RAISE(ABORT, 'approvals cannot be deleted');
        END
        """
    )

    _create_indexes(db)
    db.commit()


def init_db_postgres(db) -> None:
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            full_name TEXT,
            role TEXT NOT NULL CHECK (role IN ('admin','vendor','approver')),
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS quotations (
            id SERIAL PRIMARY KEY,
            rfq_id INTEGER NOT NULL,
            vendor_id INTEGER NOT NULL,
            quote_number TEXT NOT NULL UNIQUE,
            total_amount TEXT NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            line_items TEXT NOT NULL,
            terms_conditions TEXT,
            encrypted_data TEXT,
            encryption_key_hash TEXT,
            digital_signature TEXT,
            public_key TEXT,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ({QUOTATION_STATUSES_SQL})),
            row_version INTEGER NOT NULL DEFAULT 1,
            submitted_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS approvals (
            id SERIAL PRIMARY KEY,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            approver_id INTEGER NOT NULL,
            level INTEGER NOT NULL CHECK (level >= 1),
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending','approved','rejected')),
            comments TEXT,
            decided_at TEXT,
            decision_digest TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (quotation_id, level)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS quotation_revisions (
            id SERIAL PRIMARY KEY,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            version INTEGER NOT NULL CHECK (version >= 1),
            total_amount TEXT NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            line_items TEXT NOT NULL,
            delivery_time TEXT,
            validity_period INTEGER,
            notes TEXT,
            changed_by INTEGER NOT NULL,
            change_reason TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (quotation_id, version)
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS quotation_comments (
            id SERIAL PRIMARY KEY,
            quotation_id INTEGER NOT NULL REFERENCES quotations(id),
            user_id INTEGER NOT NULL,
            comment TEXT NOT NULL,
            comment_type TEXT NOT NULL DEFAULT 'general' CHECK (comment_type IN ({COMMENT_KINDS_SQL})),
            is_internal INTEGER NOT NULL DEFAULT 0,
            parent_comment_id INTEGER REFERENCES quotation_comments(id),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS status_events (
            id SERIAL PRIMARY KEY,
            entity TEXT NOT NULL CHECK (entity IN ('quotation','approval')),
            entity_id INTEGER NOT NULL,
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT,
            actor_user_id INTEGER,
            occurred_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.executescript(
        """
        CREATE OR REPLACE FUNCTION reject_append_only_change() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;

        DROP TRIGGER IF EXISTS trg_quotation_revisions_append_only ON quotation_revisions;
        CREATE TRIGGER trg_quotation_revisions_append_only
            BEFORE UPDATE OR DELETE ON quotation_revisions
            FOR EACH ROW EXECUTE FUNCTION reject_append_only_change();

        DROP TRIGGER IF EXISTS trg_approvals_no_delete ON approvals;
        CREATE TRIGGER trg_approvals_no_delete
            BEFORE DELETE ON approvals
            FOR EACH ROW EXECUTE FUNCTION reject_append_only_change();
        """
    )

    _create_indexes(db)


def _create_indexes(db) -> None:
    db.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role, is_active)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_quotations_rfq ON quotations(rfq_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_quotations_vendor ON quotations(vendor_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_approvals_quotation ON approvals(quotation_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_approvals_approver ON approvals(approver_id, status)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_quotation_revisions_quotation ON quotation_revisions(quotation_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_quotation_comments_quotation ON quotation_comments(quotation_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events(entity, entity_id)")
