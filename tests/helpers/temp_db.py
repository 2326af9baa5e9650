from __future__ import annotations

import shutil
import sqlite3
import tempfile
from pathlib import Path


_REPO_ROOT = Path(__file__).resolve().parents[2]
_TEMP_ROOT = Path(tempfile.gettempdir()).resolve()


def assert_safe_temp_db_path(db_path: str) -> None:
    """Refuse any sqlite file outside the system temp dir or inside the checkout."""
    resolved = Path(db_path).resolve()
    if not resolved.is_relative_to(_TEMP_ROOT):
        raise ValueError(f"Temporary DB must live under TEMP: {resolved}")
    if resolved.is_relative_to(_REPO_ROOT):
        raise ValueError(f"Temporary DB cannot live inside repository: {resolved}")


class TempDbSandbox:
    """Throwaway directory holding one sqlite file for a test case."""

    def __init__(self, prefix: str = "quotation_engine_tests", db_name: str = "quotation_engine_test.db") -> None:
        self.temp_dir = tempfile.mkdtemp(prefix=f"{prefix}_", dir=_TEMP_ROOT)
        self.db_path = str(Path(self.temp_dir) / db_name)
        assert_safe_temp_db_path(self.db_path)
        # Rollback journal keeps every test db a single file.
        sqlite3.connect(self.db_path, isolation_level=None).execute("PRAGMA journal_mode=DELETE").connection.close()

    def make_config(self, base_config, **overrides):
        attrs = {
            "DATABASE_DIR": self.temp_dir,
            "DB_PATH": self.db_path,
            "LOG_JSON": False,
            "MAIL_ENABLED": False,
            "RATE_LIMIT_ENABLED": False,
            **overrides,
        }
        return type("TempConfig", (base_config,), attrs)

    def cleanup(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def __enter__(self) -> "TempDbSandbox":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()
