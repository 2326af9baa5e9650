from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BaseRepository:
    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return dict(row) if row else None

    @staticmethod
    def inserted_id(cursor) -> int:
        # fetchall drains the RETURNING statement so sqlite can commit afterwards.
        row = cursor.fetchall()[0]
        return int(row["id"] if isinstance(row, dict) else row[0])

    @staticmethod
    def count_value(row: Any) -> int:
        if not row:
            return 0
        return int(row["total"] if isinstance(row, dict) else row[0])
