from __future__ import annotations

from typing import List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


class CommentRepository(BaseRepository):
    def insert(
        self,
        db,
        *,
        quotation_id: int,
        user_id: int,
        comment: str,
        comment_type: str,
        is_internal: bool,
        parent_comment_id: int | None,
    ) -> dict:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO quotation_comments (
                quotation_id, user_id, comment, comment_type, is_internal, parent_comment_id, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (quotation_id, user_id, comment, comment_type, 1 if is_internal else 0, parent_comment_id, now),
        )
        return {
            "id": self.inserted_id(cursor),
            "quotation_id": quotation_id,
            "user_id": user_id,
            "comment": comment,
            "comment_type": comment_type,
            "is_internal": bool(is_internal),
            "parent_comment_id": parent_comment_id,
            "created_at": now,
        }

    def get_by_id(self, db, comment_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM quotation_comments WHERE id = ? LIMIT 1",
            (comment_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def list_for_quotation(self, db, quotation_id: int, *, include_internal: bool = True) -> List[dict]:
        internal_sql = "" if include_internal else " AND c.is_internal = 0"
        rows = db.execute(
            f"""
            SELECT c.*, u.full_name AS author_name, u.role AS author_role
            FROM quotation_comments c
            LEFT JOIN users u ON u.id = c.user_id
            WHERE c.quotation_id = ?{internal_sql}
            ORDER BY c.created_at ASC, c.id ASC
            """,
            (quotation_id,),
        ).fetchall()
        comments = self.rows_to_dicts(rows)
        for item in comments:
            item["is_internal"] = bool(item.get("is_internal"))
        return comments
