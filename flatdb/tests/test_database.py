#!/usr/bin/env python3
"""
Database facade tests: messages, sessions, multi-statement and script runs

Run: python -m pytest flatdb/tests/test_database.py -v
"""

import os
import sys
import shutil
import tempfile
import unittest

# Add parent directories to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from flatdb import Database, FlatDBError, PermissionDenied, Role, UserSession
from flatdb.errors import DataTypeError, ParseError, SchemaError


class DatabaseTestCase(unittest.TestCase):
    """Temporary data directory with a 'school' database"""

    def setUp(self):
        """Create a temporary database for each test"""
        self.test_dir = tempfile.mkdtemp()
        self.db = Database(self.test_dir, database="school")

    def tearDown(self):
        """Clean up temporary database"""
        self.db.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)


class TestStatements(DatabaseTestCase):
    """Results and messages of single statements"""

    def test_database_created_on_open(self):
        """Opening a missing database creates and selects it"""
        self.assertEqual(self.db.current_database, "school")
        self.assertEqual(self.db.databases(), ["school"])

    def test_messages(self):
        """Every statement reports what it did"""
        result = self.db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name STRING)")
        self.assertEqual(result.message, "Table 'users' created")

        result = self.db.execute("INSERT INTO users VALUES (1, 'Alice');")
        self.assertEqual(result.affected_rows, 1)
        self.assertEqual(result.message, "1 row(s) inserted")

        self.db.execute("INSERT INTO users VALUES (2, 'Bob')")
        self.assertEqual(self.db.execute("UPDATE users SET name = 'Bo' WHERE id = 2").message,
                         "1 row(s) updated")
        self.assertEqual(self.db.execute("SELECT * FROM users").message, "2 row(s) returned")
        self.assertEqual(self.db.execute("DELETE FROM users").message, "2 row(s) deleted")
        self.assertEqual(self.db.execute("DROP TABLE users").message, "Table 'users' dropped")
        self.assertEqual(self.db.execute("DROP TABLE users").message,
                         "Table 'users' does not exist")

    def test_select_rows(self):
        """SELECT returns headers and string rows"""
        self.db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name STRING)")
        self.db.execute("INSERT INTO users VALUES (1, 'Alice')")
        result = self.db.execute("SELECT name FROM users WHERE id = 1")
        self.assertEqual(result.columns, ["name"])
        self.assertEqual(result.as_dicts(), [{"name": "Alice"}])
        self.assertEqual(len(result), 1)

    def test_show_and_describe(self):
        """SHOW TABLES, SHOW DATABASES and DESCRIBE"""
        self.db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(10))")
        self.assertEqual(self.db.execute("SHOW TABLES").rows, [["users"]])
        self.assertEqual(self.db.execute("SHOW DATABASES").rows, [["school"]])

        result = self.db.execute("DESCRIBE users")
        self.assertEqual(result.columns[0], "column_name")
        self.assertEqual(result.rows[0][:2], ["id", "INTEGER"])
        self.assertEqual(result.rows[1][:2], ["name", "VARCHAR(10)"])
        self.assertEqual(self.db.describe("users")[0]["key"], "PRI")

    def test_count(self):
        """count() reports rows of one table"""
        self.db.execute("CREATE TABLE t (a INTEGER)")
        self.db.execute("INSERT INTO t VALUES (1)")
        self.assertEqual(self.db.count("t"), 1)
        with self.assertRaises(SchemaError):
            self.db.count("missing")

    def test_database_statements(self):
        """CREATE DATABASE switches, USE switches back"""
        self.db.execute("CREATE TABLE t (a INTEGER)")
        self.assertEqual(self.db.execute("CREATE DATABASE other").message,
                         "Database 'other' created")
        self.assertEqual(self.db.current_database, "other")
        self.assertEqual(self.db.tables(), [])

        self.assertEqual(self.db.execute("USE school").message, "Using database 'school'")
        self.assertEqual(self.db.tables(), ["t"])
        self.assertEqual(self.db.execute("CREATE DATABASE school").message,
                         "Database 'school' already exists")
        with self.assertRaises(SchemaError):
            self.db.execute("USE nowhere")

    def test_index_statements(self):
        """CREATE INDEX / DROP INDEX"""
        self.db.execute("CREATE TABLE t (a INTEGER, b STRING)")
        self.assertEqual(self.db.execute("CREATE INDEX idx_b ON t(b)").message,
                         "Index created on t(b)")
        self.assertEqual(self.db.execute("DROP INDEX idx_b ON t(b)").message,
                         "Index dropped from t(b)")
        self.assertEqual(self.db.execute("DROP INDEX idx_b ON t(b)").message,
                         "No index on t(b)")

    def test_error_classes(self):
        """Failures surface as FlatDBError subclasses"""
        self.db.execute("CREATE TABLE t (a INTEGER PRIMARY KEY)")
        with self.assertRaises(ParseError):
            self.db.execute("SELEKT * FROM t")
        with self.assertRaises(DataTypeError):
            self.db.execute("INSERT INTO t VALUES ('x')")
        with self.assertRaises(SchemaError):
            self.db.execute("SELECT * FROM nope")

    def test_persisted_between_instances(self):
        """A second Database on the same directory sees the data"""
        self.db.execute("CREATE TABLE t (a INTEGER)")
        self.db.execute("INSERT INTO t VALUES (7)")
        with Database(self.test_dir, database="school") as other:
            self.assertEqual(other.execute("SELECT a FROM t").rows, [["7"]])


class TestExecuteMany(DatabaseTestCase):
    """Semicolon-separated statements"""

    def test_semicolon_inside_quotes(self):
        """A ';' inside a string does not end the statement"""
        results = self.db.execute_many(
            "CREATE TABLE t (a STRING); INSERT INTO t VALUES ('x;y'); SELECT * FROM t;"
        )
        self.assertEqual(len(results), 3)
        self.assertEqual(results[-1].rows, [["x;y"]])

    def test_stops_at_first_error(self):
        """A failing statement aborts the rest"""
        with self.assertRaises(FlatDBError):
            self.db.execute_many("CREATE TABLE t (a INTEGER); INSERT INTO t VALUES ('x'); "
                                 "INSERT INTO t VALUES (1)")
        self.assertEqual(self.db.count("t"), 0)


class TestExecuteScript(DatabaseTestCase):
    """Batch execution from a file"""

    def write_script(self, text):
        path = os.path.join(self.test_dir, "script.sql")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_script_carries_on_after_errors(self):
        """Comments are skipped, failures recorded, the rest still runs"""
        path = self.write_script(
            "-- set up\n"
            "CREATE TABLE t (a INTEGER,\n"
            "  b STRING);\n"
            "\n"
            "INSERT INTO t VALUES ('bad', 'x');\n"
            "INSERT INTO t VALUES (1, 'ok');\n"
        )
        log_path = os.path.join(self.test_dir, "batch.log")
        report = self.db.execute_script(path, log_path)

        self.assertEqual(report.succeeded, 2)
        self.assertEqual(report.failed, 1)
        self.assertFalse(report.ok)
        self.assertEqual(report.summary(), "2 statement(s) succeeded, 1 failed")
        self.assertEqual(report.failures[0][0], "INSERT INTO t VALUES ('bad', 'x')")
        self.assertEqual(self.db.count("t"), 1)

        with open(log_path, encoding="utf-8") as f:
            log = f.read().splitlines()
        self.assertEqual(len(log), 5)
        self.assertRegex(log[0], r"^\[\d{4}-\d\d-\d\d \d\d:\d\d:\d\d\] Batch started: ")
        self.assertIn("OK: CREATE TABLE t (a INTEGER, b STRING) -> Table 't' created", log[1])
        self.assertIn("ERROR: INSERT INTO t VALUES ('bad', 'x')", log[2])
        self.assertIn("OK: INSERT INTO t VALUES (1, 'ok') -> 1 row(s) inserted", log[3])
        self.assertIn("Batch finished", log[4])

    def test_unterminated_tail(self):
        """A last statement without ';' still runs"""
        path = self.write_script("CREATE TABLE t (a INTEGER);\nINSERT INTO t VALUES (1)")
        report = self.db.execute_script(path)
        self.assertTrue(report.ok)
        self.assertEqual(self.db.count("t"), 1)

    def test_missing_script(self):
        """An unreadable script is a StorageError"""
        with self.assertRaises(FlatDBError):
            self.db.execute_script(os.path.join(self.test_dir, "missing.sql"))


class TestSessions(unittest.TestCase):
    """Permissions and database selection through a session"""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        admin = UserSession.login("root", Role.ADMIN)
        setup = Database(self.test_dir, session=admin)
        setup.execute_many("CREATE DATABASE school; CREATE TABLE t (a INTEGER); "
                           "INSERT INTO t VALUES (1)")
        self.admin = admin

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_create_database_selects_in_session(self):
        """CREATE DATABASE is remembered by the session"""
        self.assertEqual(self.admin.current_database(), "school")

    def test_viewer_reads_only(self):
        """A viewer may SELECT but not change data"""
        viewer = UserSession.login("guest", Role.VIEWER, database="school")
        db = Database(self.test_dir, session=viewer)
        self.assertEqual(db.execute("SELECT * FROM t").rows, [["1"]])
        with self.assertRaises(PermissionDenied):
            db.execute("INSERT INTO t VALUES (2)")
        with self.assertRaises(PermissionDenied):
            db.execute("CREATE DATABASE mine")
        self.assertEqual(db.count("t"), 1)

    def test_editor_may_write(self):
        """An editor may change data"""
        editor = UserSession.login("ed", Role.EDITOR, database="school")
        db = Database(self.test_dir, session=editor)
        self.assertEqual(db.execute("INSERT INTO t VALUES (2)").affected_rows, 1)

    def test_logged_out(self):
        """Nothing runs without a login"""
        user = UserSession.login("ed", Role.EDITOR, database="school")
        user.logout()
        db = Database(self.test_dir, session=user)
        with self.assertRaises(PermissionDenied):
            db.execute("SELECT * FROM t")

    def test_use_updates_session(self):
        """USE stores the choice in the session"""
        viewer = UserSession.login("guest", Role.VIEWER)
        db = Database(self.test_dir, session=viewer)
        db.execute("USE school")
        self.assertEqual(viewer.current_database(), "school")

    def test_session_database_missing(self):
        """A session pointing at a missing database fails"""
        viewer = UserSession.login("guest", Role.VIEWER, database="gone")
        db = Database(self.test_dir, session=viewer)
        with self.assertRaises(SchemaError):
            db.execute("SHOW TABLES")

    def test_role_parse(self):
        """Roles parse case-insensitively"""
        self.assertEqual(Role.parse(" Editor "), Role.EDITOR)
        with self.assertRaises(ValueError):
            Role.parse("superuser")
        with self.assertRaises(ValueError):
            UserSession.login("  ")


if __name__ == '__main__':
    unittest.main()
