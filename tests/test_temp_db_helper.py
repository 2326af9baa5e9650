import os
import tempfile
import unittest

from quotation_engine.config import Config
from quotation_engine.db import connect_database, init_db
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(temp_dir))
        self.assertTrue(db_path.startswith(tempfile.gettempdir()))

        db = connect_database(db_path)
        try:
            init_db(db)
            row = db.execute("SELECT COUNT(*) AS total FROM quotations").fetchone()
            self.assertEqual(int(row["total"]), 0)
        finally:
            db.close()

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_make_config_points_at_sandbox(self) -> None:
        with TempDbSandbox(prefix="temp_db_config") as sandbox:
            cfg = sandbox.make_config(Config, AUTH_ENABLED=False)
            self.assertEqual(cfg.DB_PATH, sandbox.db_path)
            self.assertFalse(cfg.AUTH_ENABLED)
            self.assertFalse(cfg.MAIL_ENABLED)
            self.assertTrue(issubclass(cfg, Config))
        self.assertFalse(os.path.exists(sandbox.temp_dir))

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.getcwd(), "quotation_engine_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
