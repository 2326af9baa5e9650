from __future__ import annotations

from typing import Any, Dict, List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


class RevisionRepository(BaseRepository):
    def next_version(self, db, quotation_id: int) -> int:
        row = db.execute(
            "SELECT MAX(version) AS max_version FROM quotation_revisions WHERE quotation_id = ?",
            (quotation_id,),
        ).fetchone()
        current = row["max_version"] if row else None
        return int(current or 0) + 1

    def insert(self, db, *, fields: Dict[str, Any]) -> dict:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO quotation_revisions (
                quotation_id, version, total_amount, currency, line_items, delivery_time,
                validity_period, notes, changed_by, change_reason, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                fields["quotation_id"],
                fields["version"],
                fields["total_amount"],
                fields["currency"],
                fields["line_items"],
                fields.get("delivery_time"),
                fields.get("validity_period"),
                fields.get("notes"),
                fields["changed_by"],
                fields.get("change_reason"),
                now,
            ),
        )
        revision_id = self.inserted_id(cursor)
        return {**fields, "id": revision_id, "created_at": now}

    def get_version(self, db, quotation_id: int, version: int) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM quotation_revisions
            WHERE quotation_id = ? AND version = ?
            LIMIT 1
            """,
            (quotation_id, version),
        ).fetchone()
        return self.row_to_dict(row)

    def list_for_quotation(self, db, quotation_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM quotation_revisions
            WHERE quotation_id = ?
            ORDER BY version DESC
            """,
            (quotation_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)
