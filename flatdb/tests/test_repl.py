#!/usr/bin/env python3
"""
REPL and command-line tests

Run: python -m pytest flatdb/tests/test_repl.py -v
"""

import io
import os
import sys
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout

# Add parent directories to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from flatdb.core.repl import REPL, format_table, main
from flatdb.core.result import QueryResult


class TestREPL(unittest.TestCase):
    """Line feeding, dot commands and output"""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.out = io.StringIO()
        self.repl = REPL(self.test_dir, database="school", history_size=2, out=self.out)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def output(self):
        text = self.out.getvalue()
        self.out.seek(0)
        self.out.truncate()
        return text

    def test_multi_line_statement(self):
        """A statement runs once its ';' arrives"""
        self.repl.feed("CREATE TABLE t (a INTEGER,")
        self.assertEqual(self.output(), "")
        self.assertEqual(self.repl._get_prompt(), "   ...> ")
        self.repl.feed("b STRING);")
        self.assertIn("Table 't' created", self.output())
        self.assertEqual(self.repl._get_prompt(), "flatdb:school> ")

    def test_select_output(self):
        """SELECT prints an aligned table and a row count"""
        self.repl.feed("CREATE TABLE t (a INTEGER, name STRING);")
        self.repl.feed("INSERT INTO t VALUES (1, 'Alice');")
        self.output()
        self.repl.feed("SELECT * FROM t;")
        text = self.output()
        self.assertIn("a | name", text)
        self.assertIn("1 | Alice", text)
        self.assertIn("(1 row(s))", text)

        self.repl.feed("SELECT * FROM t WHERE a = 2;")
        self.assertIn("(0 rows)", self.output())

    def test_errors_are_printed(self):
        """Failures print a message and the shell keeps going"""
        self.repl.feed("SELECT * FROM missing;")
        self.assertIn("Error: ", self.output())
        self.repl.feed(".bogus")
        self.assertIn("Unknown command: .bogus", self.output())

    def test_tables_and_count(self):
        """.tables, .count and .schema"""
        self.repl.feed(".tables")
        self.assertIn("No tables found.", self.output())
        self.repl.feed("CREATE TABLE t (id INTEGER PRIMARY KEY, name STRING NOT NULL);")
        self.repl.feed("INSERT INTO t VALUES (1, 'x');")
        self.output()

        self.repl.feed(".tables")
        self.assertIn("t (1 rows)", self.output())
        self.repl.feed(".count t")
        self.assertIn("t: 1 rows", self.output())
        self.repl.feed(".schema t")
        text = self.output()
        self.assertIn("PRIMARY KEY", text)
        self.assertIn("NOT NULL", text)
        self.repl.feed(".schema nope")
        self.assertIn("Error: ", self.output())

    def test_indexes(self):
        """.indexes lists the primary key index"""
        self.repl.feed("CREATE TABLE t (id INTEGER PRIMARY KEY);")
        self.output()
        self.repl.feed(".indexes t")
        self.assertIn("INDEX on id", self.output())

    def test_databases_and_use(self):
        """.databases marks the current one, .use switches"""
        self.repl.feed("CREATE DATABASE other;")
        self.output()
        self.repl.feed(".databases")
        text = self.output()
        self.assertIn(" * other", text)
        self.assertIn("   school", text)
        self.repl.feed(".use school")
        self.assertIn("Using database 'school'", self.output())
        self.repl.feed(".use")
        self.assertIn("Usage: .use", self.output())

    def test_history_is_bounded(self):
        """Only the most recent statements are kept"""
        self.repl.feed("SHOW TABLES;")
        self.repl.feed("SHOW DATABASES;")
        self.repl.feed("CREATE TABLE t (a INTEGER);")
        self.output()
        self.repl.feed(".history")
        text = self.output()
        self.assertNotIn("SHOW TABLES;", text)
        self.assertIn("SHOW DATABASES;", text)
        self.assertIn("CREATE TABLE t (a INTEGER);", text)

    def test_login_roles(self):
        """A viewer session blocks writes, logout blocks everything"""
        self.repl.feed(".login guest viewer")
        self.assertIn("Logged in as guest (viewer)", self.output())
        self.repl.feed("CREATE TABLE t (a INTEGER);")
        self.assertIn("Error: ", self.output())
        self.repl.feed("SHOW TABLES;")
        self.assertIn("(0 rows)", self.output())

        self.repl.feed(".logout")
        self.output()
        self.repl.feed("SHOW TABLES;")
        self.assertIn("Not logged in", self.output())

        self.repl.feed(".login root")
        self.assertIn("(admin)", self.output())
        self.repl.feed(".login root superuser")
        self.assertIn("Unknown role", self.output())

    def test_quit(self):
        """.quit stops the loop"""
        self.repl.running = True
        self.repl.feed(".quit")
        self.assertFalse(self.repl.running)
        self.assertIn("Goodbye!", self.output())


class TestFormatTable(unittest.TestCase):
    """Text table rendering"""

    def test_alignment_and_truncation(self):
        """Columns are padded to the widest value and capped"""
        result = QueryResult(["id", "name"], [["1", "Al"], ["22", "x" * 50]])
        lines = format_table(result, max_width=5).split("\n")
        self.assertEqual(lines[0], "id | name ")
        self.assertEqual(lines[1], "---+------")
        self.assertEqual(lines[2], "1  | Al   ")
        self.assertEqual(lines[3], "22 | xxxxx")


class TestMain(unittest.TestCase):
    """Non-interactive entry points"""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def run_main(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            main(["-d", self.test_dir, "-D", "school", "--log-level", "ERROR"] + list(argv))
        return out.getvalue()

    def test_execute(self):
        """-e runs one statement"""
        self.run_main("-e", "CREATE TABLE t (a INTEGER)")
        self.run_main("-e", "INSERT INTO t VALUES (5)")
        text = self.run_main("-e", "SELECT a FROM t")
        self.assertIn("5", text)
        self.assertIn("1 row(s) returned", text)

    def test_execute_error_exits(self):
        """A failing statement exits with status 1"""
        with self.assertRaises(SystemExit) as ctx:
            self.run_main("-e", "SELECT * FROM nope")
        self.assertEqual(ctx.exception.code, 1)

    def test_script_with_log(self):
        """-f runs a script and --batch-log records it"""
        script = os.path.join(self.test_dir, "setup.sql")
        with open(script, "w", encoding="utf-8") as f:
            f.write("CREATE TABLE t (a INTEGER);\nINSERT INTO t VALUES (1);\n")
        log_path = os.path.join(self.test_dir, "run.log")
        text = self.run_main("-f", script, "--batch-log", log_path)
        self.assertIn("2 statement(s) succeeded, 0 failed", text)
        self.assertTrue(os.path.exists(log_path))


if __name__ == '__main__':
    unittest.main()
