from __future__ import annotations

from typing import List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


class UserDirectoryRepository(BaseRepository):
    """Local projection of the identity provider: who can approve and where to notify."""

    def create(self, db, *, email: str, full_name: str | None, role: str, is_active: bool = True) -> int:
        cursor = db.execute(
            """
            INSERT INTO users (email, full_name, role, is_active, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (email.strip().lower(), full_name, role, 1 if is_active else 0, utc_now_iso()),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, user_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, email, full_name, role, is_active FROM users WHERE id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            "SELECT id, email, full_name, role, is_active FROM users WHERE email = ? LIMIT 1",
            (str(email or "").strip().lower(),),
        ).fetchone()
        return self.row_to_dict(row)

    def list_eligible_approvers(self, db, *, limit: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, email, full_name, role
            FROM users
            WHERE role = 'approver' AND is_active = 1
            ORDER BY id ASC
            LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_directory(self, db, *, role: str | None = None) -> List[dict]:
        role_sql = " WHERE role = ?" if role else ""
        rows = db.execute(
            f"SELECT id, email, full_name, role, is_active FROM users{role_sql} ORDER BY id ASC",
            (role,) if role else (),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def set_active(self, db, *, email: str, is_active: bool) -> bool:
        cursor = db.execute(
            "UPDATE users SET is_active = ? WHERE email = ?",
            (1 if is_active else 0, str(email or "").strip().lower()),
        )
        return int(cursor.rowcount or 0) == 1

    def emails_for(self, db, user_ids: List[int]) -> List[str]:
        ids = [int(user_id) for user_id in user_ids if user_id]
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = db.execute(
            f"SELECT email FROM users WHERE is_active = 1 AND id IN ({placeholders}) ORDER BY id",
            tuple(ids),
        ).fetchall()
        return [str(row["email"]) for row in rows if row["email"]]
