from __future__ import annotations

from typing import Any, Dict, List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


class QuotationRepository(BaseRepository):
    def insert(self, db, *, fields: Dict[str, Any]) -> int:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO quotations (
                rfq_id, vendor_id, quote_number, total_amount, currency, line_items,
                terms_conditions, encrypted_data, encryption_key_hash, digital_signature,
                public_key, status, row_version, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            RETURNING id
            """,
            (
                fields["rfq_id"],
                fields["vendor_id"],
                fields["quote_number"],
                fields["total_amount"],
                fields["currency"],
                fields["line_items"],
                fields.get("terms_conditions"),
                fields.get("encrypted_data"),
                fields.get("encryption_key_hash"),
                fields.get("digital_signature"),
                fields.get("public_key"),
                fields.get("status") or "draft",
                now,
                now,
            ),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, quotation_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM quotations WHERE id = ? LIMIT 1",
            (quotation_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def list(
        self,
        db,
        *,
        vendor_id: int | None = None,
        rfq_id: int | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[List[dict], int]:
        where: List[str] = []
        params: List[Any] = []
        if vendor_id is not None:
            where.append("vendor_id = ?")
            params.append(vendor_id)
        if rfq_id is not None:
            where.append("rfq_id = ?")
            params.append(rfq_id)
        if status:
            where.append("status = ?")
            params.append(status)
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        total_row = db.execute(
            f"SELECT COUNT(*) AS total FROM quotations {where_sql}",
            tuple(params),
        ).fetchone()
        rows = db.execute(
            f"""
            SELECT id, rfq_id, vendor_id, quote_number, total_amount, currency, status,
                   row_version, submitted_at, created_at, updated_at
            FROM quotations
            {where_sql}
            ORDER BY created_at DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, int(limit), int(offset)),
        ).fetchall()
        return self.rows_to_dicts(rows), self.count_value(total_row)

    def compare_and_set_status(
        self,
        db,
        *,
        quotation_id: int,
        expected_row_version: int,
        status: str,
        mark_submitted: bool = False,
    ) -> bool:
        now = utc_now_iso()
        submitted_sql = ", submitted_at = ?" if mark_submitted else ""
        params: List[Any] = [status, now]
        if mark_submitted:
            params.append(now)
        params.extend([quotation_id, expected_row_version])
        cursor = db.execute(
            f"""
            UPDATE quotations
            SET status = ?, row_version = row_version + 1, updated_at = ?{submitted_sql}
            WHERE id = ? AND row_version = ?
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0) == 1

    def compare_and_set_terms(
        self,
        db,
        *,
        quotation_id: int,
        expected_row_version: int,
        status: str,
        total_amount: str,
        line_items: str,
        digital_signature: str | None = None,
    ) -> bool:
        # New terms invalidate the previous signature; an unsigned revision stores NULL.
        cursor = db.execute(
            """
            UPDATE quotations
            SET status = ?, total_amount = ?, line_items = ?, row_version = row_version + 1,
                updated_at = ?, digital_signature = ?
            WHERE id = ? AND row_version = ?
            """,
            (
                status,
                total_amount,
                line_items,
                utc_now_iso(),
                digital_signature or None,
                quotation_id,
                expected_row_version,
            ),
        )
        return int(cursor.rowcount or 0) == 1

    def status_counts(self, db) -> Dict[str, int]:
        rows = db.execute(
            "SELECT status, COUNT(*) AS total FROM quotations GROUP BY status",
        ).fetchall()
        return {str(row["status"]): int(row["total"]) for row in rows}
