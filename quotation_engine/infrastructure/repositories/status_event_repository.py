from __future__ import annotations

from typing import List

from quotation_engine.infrastructure.repositories.base import BaseRepository, utc_now_iso


class StatusEventRepository(BaseRepository):
    def record(
        self,
        db,
        *,
        entity: str,
        entity_id: int,
        from_status: str | None,
        to_status: str,
        reason: str,
        actor_user_id: int | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, actor_user_id, occurred_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (entity, entity_id, from_status, to_status, reason, actor_user_id, utc_now_iso()),
        )

    def list_for(self, db, *, entity: str, entity_id: int, limit: int = 200) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_user_id, occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ?
            ORDER BY occurred_at ASC, id ASC
            LIMIT ?
            """,
            (entity, entity_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
