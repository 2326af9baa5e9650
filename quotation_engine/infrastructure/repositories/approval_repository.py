from __future__ import annotations

from typing import Any, List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


_APPROVAL_WITH_QUOTATION = """
    SELECT a.*, q.quote_number, q.total_amount, q.currency, q.vendor_id, q.rfq_id,
           q.status AS quotation_status
    FROM approvals a
    JOIN quotations q ON q.id = a.quotation_id
"""


class ApprovalRepository(BaseRepository):
    def create(self, db, *, quotation_id: int, approver_id: int, level: int) -> dict:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO approvals (quotation_id, approver_id, level, status, created_at)
            VALUES (?, ?, ?, 'pending', ?)
            RETURNING id
            """,
            (quotation_id, approver_id, level, now),
        )
        approval_id = self.inserted_id(cursor)
        return {
            "id": approval_id,
            "quotation_id": quotation_id,
            "approver_id": approver_id,
            "level": level,
            "status": "pending",
            "comments": None,
            "decided_at": None,
            "decision_digest": None,
            "created_at": now,
        }

    def list_for_quotation(self, db, quotation_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM approvals
            WHERE quotation_id = ?
            ORDER BY level ASC, id ASC
            """,
            (quotation_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, approval_id: int) -> dict | None:
        row = db.execute(
            f"{_APPROVAL_WITH_QUOTATION} WHERE a.id = ? LIMIT 1",
            (approval_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def decide(
        self,
        db,
        *,
        approval_id: int,
        status: str,
        comments: str | None,
        decided_at: str,
        decision_digest: str,
    ) -> bool:
        cursor = db.execute(
            """
            UPDATE approvals
            SET status = ?, comments = ?, decided_at = ?, decision_digest = ?
            WHERE id = ? AND status = 'pending'
            """,
            (status, comments, decided_at, decision_digest, approval_id),
        )
        return int(cursor.rowcount or 0) == 1

    def reject_pending_siblings(self, db, *, quotation_id: int, exclude_id: int, reason: str) -> int:
        cursor = db.execute(
            """
            UPDATE approvals
            SET status = 'rejected', comments = ?, decided_at = ?
            WHERE quotation_id = ? AND id <> ? AND status = 'pending'
            """,
            (reason, utc_now_iso(), quotation_id, exclude_id),
        )
        return int(cursor.rowcount or 0)

    def list_for_approver(self, db, *, approver_id: int, status: str | None = None) -> List[dict]:
        params: List[Any] = [approver_id]
        status_sql = ""
        if status:
            status_sql = " AND a.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            {_APPROVAL_WITH_QUOTATION}
            WHERE a.approver_id = ?{status_sql}
            ORDER BY a.created_at DESC, a.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_all(self, db, *, status: str | None = None, limit: int = 20, offset: int = 0) -> tuple[List[dict], int]:
        params: List[Any] = []
        where_sql = ""
        if status:
            where_sql = "WHERE a.status = ?"
            params.append(status)
        total_row = db.execute(
            f"SELECT COUNT(*) AS total FROM approvals a {where_sql}",
            tuple(params),
        ).fetchone()
        rows = db.execute(
            f"""
            {_APPROVAL_WITH_QUOTATION}
            {where_sql}
            ORDER BY a.created_at DESC, a.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, int(limit), int(offset)),
        ).fetchall()
        return self.rows_to_dicts(rows), self.count_value(total_row)
