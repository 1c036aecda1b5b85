#!/usr/bin/env python3
"""
DatabaseManager and storage tests: databases, persistence, multi-table SELECT

Run: python -m pytest flatdb/tests/test_manager.py -v
"""

import os
import sys
import shutil
import tempfile
import unittest

# Add parent directories to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from flatdb.errors import SchemaError, StorageError
from flatdb.core.manager import DatabaseManager
from flatdb.core.schema import ColumnDef
from flatdb.core.table import NULL_MARKER
from flatdb.parser.parser import parse_sql
from flatdb.storage.engine import decode_row, encode_row


class TestRowCodec(unittest.TestCase):
    """Row line encoding"""

    def test_commas_and_backslashes(self):
        """Commas are escaped, backslashes doubled"""
        self.assertEqual(encode_row(["a,b", "c\\d", ""]), "a\\,b,c\\\\d,")
        self.assertEqual(decode_row("a\\,b,c\\\\d,"), ["a,b", "c\\d", ""])

    def test_single_empty_value(self):
        """An empty line is one NULL value"""
        self.assertEqual(decode_row(""), [""])


class ManagerTestCase(unittest.TestCase):
    """Temporary data directory with a selected database"""

    def setUp(self):
        """Create a temporary data directory for each test"""
        self.test_dir = tempfile.mkdtemp()
        self.manager = DatabaseManager(self.test_dir)
        self.manager.create_database("school")

    def tearDown(self):
        """Clean up temporary data directory"""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def run_sql(self, *statements):
        results = []
        for sql in statements:
            query = parse_sql(sql)
            if query.type.name == 'SELECT':
                results.append(self.manager.execute_select(query))
            else:
                results.append(self.manager.execute_non_query(query))
        return results[-1]


class TestDatabases(ManagerTestCase):
    """create/use/drop database"""

    def test_create_selects_database(self):
        """The new database is current and empty"""
        self.assertEqual(self.manager.current_database(), "school")
        self.assertEqual(self.manager.list_tables(), [])
        self.assertTrue(os.path.isdir(os.path.join(self.test_dir, "school")))

    def test_create_existing(self):
        """Creating an existing database reports False"""
        self.assertFalse(self.manager.create_database("school"))

    def test_list_and_use(self):
        """use_database switches table sets"""
        self.run_sql("CREATE TABLE a (x INTEGER)")
        self.manager.create_database("other")
        self.assertEqual(self.manager.list_databases(), ["other", "school"])
        self.assertEqual(self.manager.list_tables(), [])
        self.assertTrue(self.manager.use_database("school"))
        self.assertEqual(self.manager.list_tables(), ["a"])
        self.assertFalse(self.manager.use_database("missing"))
        self.assertEqual(self.manager.current_database(), "school")

    def test_drop_current_database(self):
        """Dropping the current database deselects it"""
        self.assertTrue(self.manager.drop_database("school"))
        self.assertIsNone(self.manager.current_database())
        self.assertFalse(self.manager.drop_database("school"))

    def test_requires_database(self):
        """Table statements need a selected database"""
        manager = DatabaseManager(self.test_dir)
        with self.assertRaises(SchemaError):
            manager.execute_non_query(parse_sql("CREATE TABLE t (a INTEGER)"))

    def test_invalid_database_name(self):
        """Names must be usable as directory names"""
        with self.assertRaises(SchemaError):
            self.manager.create_database("../escape")


class TestTablesAndPersistence(ManagerTestCase):
    """Table lifecycle and the on-disk format"""

    def test_round_trip(self):
        """Reloading reproduces schema and rows, commas included"""
        self.run_sql(
            "CREATE TABLE notes (id INTEGER PRIMARY KEY, body STRING, score FLOAT NOT NULL)",
            "INSERT INTO notes VALUES (1, 'hello, world', 1.5)",
            "INSERT INTO notes VALUES (2, 'back\\slash', 2)",
            "INSERT INTO notes VALUES (3, NULL, 0)",
        )
        before = self.manager.get_table("notes").snapshot()

        reloaded = DatabaseManager(self.test_dir)
        self.assertTrue(reloaded.use_database("school"))
        self.assertEqual(reloaded.get_table("notes").snapshot(), before)

    def test_file_format(self):
        """Schema line then one escaped row per line"""
        self.run_sql("CREATE TABLE notes (id INTEGER PRIMARY KEY, body VARCHAR(20))",
                     "INSERT INTO notes VALUES (1, 'a,b')")
        with open(os.path.join(self.test_dir, "school", "notes.txt"), encoding="utf-8") as f:
            lines = f.read().splitlines()
        self.assertEqual(lines, ["id:INTEGER:0:1,body:VARCHAR(20):1:0", "1,a\\,b"])

    def test_foreign_key_round_trip(self):
        """Foreign key metadata survives a reload"""
        self.run_sql(
            "CREATE TABLE Students (ID INTEGER PRIMARY KEY, Name STRING)",
            "CREATE TABLE Enroll (sid INTEGER, FOREIGN KEY (sid) REFERENCES Students(ID))",
        )
        reloaded = DatabaseManager(self.test_dir)
        reloaded.use_database("school")
        column = reloaded.get_table("Enroll").columns[0]
        self.assertTrue(column.is_foreign_key)
        self.assertEqual((column.reference_table, column.reference_column), ("Students", "ID"))

    def test_duplicate_table(self):
        """Creating a table twice is a SchemaError"""
        self.run_sql("CREATE TABLE t (a INTEGER)")
        with self.assertRaises(SchemaError):
            self.run_sql("CREATE TABLE T (a INTEGER)")

    def test_drop_missing_table(self):
        """Dropping a nonexistent table reports failure, not an error"""
        self.run_sql("CREATE TABLE t (a INTEGER)")
        self.assertFalse(self.manager.drop_table("nope"))
        self.assertEqual(self.run_sql("DROP TABLE nope"), 0)
        self.assertEqual(self.manager.list_tables(), ["t"])

    def test_drop_table_removes_file(self):
        """The table file is deleted"""
        self.run_sql("CREATE TABLE t (a INTEGER)")
        path = os.path.join(self.test_dir, "school", "t.txt")
        self.assertTrue(os.path.exists(path))
        self.assertEqual(self.run_sql("DROP TABLE t"), 1)
        self.assertFalse(os.path.exists(path))
        self.assertIsNone(self.manager.find_table("t"))

    def test_affected_counts(self):
        """execute_non_query reports affected rows"""
        self.run_sql("CREATE TABLE t (a INTEGER, b STRING)")
        self.assertEqual(self.run_sql("INSERT INTO t VALUES (1, 'x')"), 1)
        self.run_sql("INSERT INTO t VALUES (2, 'x')")
        self.assertEqual(self.run_sql("UPDATE t SET b = 'y' WHERE b = 'x'"), 2)
        self.assertEqual(self.run_sql("DELETE FROM t WHERE a = 1"), 1)
        self.assertEqual(self.run_sql("DELETE FROM t WHERE a = 7"), 0)

    def test_python_api(self):
        """create_table and insert_into save immediately"""
        self.manager.create_table("t", [ColumnDef.build("id", "INTEGER", primary_key=True)])
        self.assertEqual(self.manager.insert_into("t", ["1"]), 1)
        self.manager.create_index("t", "id")

        reloaded = DatabaseManager(self.test_dir)
        reloaded.use_database("school")
        self.assertEqual(reloaded.get_table("t").rows, [["1"]])

    def test_keyword_column_names(self):
        """Columns named after keywords work end to end"""
        self.run_sql("CREATE TABLE settings (key STRING PRIMARY KEY, desc STRING)",
                     "INSERT INTO settings VALUES ('a', 'first')",
                     "INSERT INTO settings VALUES ('b', 'second')")
        result = self.run_sql("SELECT desc FROM settings WHERE key = 'b'")
        self.assertEqual(result.rows, [["second"]])

        reloaded = DatabaseManager(self.test_dir)
        reloaded.use_database("school")
        self.assertEqual(reloaded.get_table("settings").column_names, ["key", "desc"])

    def test_get_and_find_table(self):
        """find_table returns None, get_table raises"""
        self.assertIsNone(self.manager.find_table("ghost"))
        with self.assertRaises(SchemaError):
            self.manager.get_table("ghost")

    def test_corrupt_file(self):
        """An unreadable table file is a StorageError"""
        with open(os.path.join(self.test_dir, "school", "bad.txt"), "w", encoding="utf-8") as f:
            f.write("a:NOPE:1:0\n")
        with self.assertRaises(StorageError):
            self.manager.use_database("school")

    def test_errors_carry_context(self):
        """Failures keep their class and gain a prefix"""
        with self.assertRaises(SchemaError) as ctx:
            self.run_sql("SELECT * FROM ghost")
        self.assertIn("Query execution failed", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, SchemaError)


class TestSelectPaths(ManagerTestCase):
    """Single and multi-table SELECT"""

    def setUp(self):
        super().setUp()
        self.run_sql(
            "CREATE TABLE Students (ID INTEGER PRIMARY KEY, Name STRING)",
            "CREATE TABLE Courses (StudentID INTEGER, Course STRING)",
            "INSERT INTO Students VALUES (1, 'A')",
            "INSERT INTO Students VALUES (2, 'B')",
            "INSERT INTO Courses VALUES (1, 'X')",
        )

    def test_single_table(self):
        """Headers follow the projection"""
        result = self.run_sql("SELECT Name AS student FROM Students WHERE ID = 2")
        self.assertEqual(result.columns, ["student"])
        self.assertEqual(result.rows, [["B"]])

    def test_order_by_alias_and_limit(self):
        """ORDER BY may name a projection alias"""
        result = self.run_sql("SELECT Name AS n FROM Students ORDER BY n DESC LIMIT 1")
        self.assertEqual(result.rows, [["B"]])

    def test_inner_join(self):
        """Students JOIN Courses yields one row"""
        result = self.run_sql("SELECT * FROM Students s JOIN Courses c ON s.ID = c.StudentID")
        self.assertEqual(result.columns, ["ID", "Name", "StudentID", "Course"])
        self.assertEqual(result.rows, [["1", "A", "1", "X"]])

    def test_left_join(self):
        """LEFT JOIN pads the unmatched student"""
        result = self.run_sql(
            "SELECT * FROM Students s LEFT JOIN Courses c ON s.ID = c.StudentID"
        )
        self.assertEqual(result.rows, [["1", "A", "1", "X"],
                                       ["2", "B", NULL_MARKER, NULL_MARKER]])

    def test_comma_join_with_where(self):
        """Cartesian product filtered by WHERE, projected by alias"""
        result = self.run_sql(
            "SELECT s.Name, c.Course FROM Students s, Courses c WHERE s.ID = c.StudentID"
        )
        self.assertEqual(result.rows, [["A", "X"]])

        result = self.run_sql("SELECT s.Name FROM Students s, Courses c")
        self.assertEqual(len(result.rows), 2)

    def test_join_order_and_limit(self):
        """ORDER BY and LIMIT over joined rows"""
        result = self.run_sql(
            "SELECT s.Name FROM Students s LEFT JOIN Courses c ON s.ID = c.StudentID "
            "ORDER BY s.ID DESC LIMIT 1"
        )
        self.assertEqual(result.rows, [["B"]])

    def test_join_aggregate(self):
        """GROUP BY over joined rows"""
        result = self.run_sql(
            "SELECT s.Name, COUNT(*) AS n FROM Students s JOIN Courses c "
            "ON s.ID = c.StudentID GROUP BY s.Name"
        )
        self.assertEqual(result.columns, ["Name", "n"])
        self.assertEqual(result.rows, [["A", "1"]])

    def test_unknown_alias_and_column(self):
        """Unresolvable names fail the query"""
        with self.assertRaises(SchemaError):
            self.run_sql("SELECT z.Name FROM Students s, Courses c")
        with self.assertRaises(SchemaError):
            self.run_sql("SELECT s.Missing FROM Students s, Courses c")
        with self.assertRaises(SchemaError):
            self.run_sql("SELECT z.Name FROM Students s")

    def test_repeated_alias(self):
        """The same alias twice is rejected"""
        with self.assertRaises(SchemaError):
            self.run_sql("SELECT * FROM Students s, Courses s")

    def test_aggregate_order_by_header(self):
        """ORDER BY on aggregate output uses the column header"""
        self.run_sql(
            "CREATE TABLE T (dept STRING, score INTEGER)",
            "INSERT INTO T VALUES ('CS', 80)",
            "INSERT INTO T VALUES ('CS', 90)",
            "INSERT INTO T VALUES ('EE', 70)",
        )
        result = self.run_sql(
            "SELECT dept, AVG(score) FROM T GROUP BY dept ORDER BY AVG(score) DESC"
        )
        self.assertEqual(result.columns, ["dept", "AVG(score)"])
        self.assertEqual(result.rows, [["CS", "85"], ["EE", "70"]])

        result = self.run_sql(
            "SELECT dept, AVG(score) FROM T GROUP BY dept HAVING AVG(score) > 75"
        )
        self.assertEqual(result.rows, [["CS", "85"]])

    def test_join_group_by_uses_projected_table(self):
        """GROUP BY follows the qualifier of the projected column"""
        self.run_sql(
            "CREATE TABLE a (id INTEGER, dept STRING)",
            "CREATE TABLE c (aid INTEGER, dept STRING)",
            "INSERT INTO a VALUES (1, 'X')",
            "INSERT INTO c VALUES (1, 'P')",
            "INSERT INTO c VALUES (1, 'Q')",
        )
        result = self.run_sql(
            "SELECT c.dept, COUNT(*) FROM a JOIN c ON a.id = c.aid GROUP BY c.dept"
        )
        self.assertEqual(result.rows, [["P", "1"], ["Q", "1"]])

        result = self.run_sql(
            "SELECT a.dept, COUNT(*) FROM a JOIN c ON a.id = c.aid GROUP BY a.dept"
        )
        self.assertEqual(result.rows, [["X", "2"]])

        with self.assertRaises(SchemaError):
            self.run_sql("SELECT a.dept, c.dept, COUNT(*) FROM a JOIN c "
                         "ON a.id = c.aid GROUP BY dept")

    def test_order_by_aggregate_ignores_spacing(self):
        """ORDER BY AVG( score ) matches the AVG(score) column"""
        self.run_sql(
            "CREATE TABLE T (dept STRING, score INTEGER)",
            "INSERT INTO T VALUES ('CS', 80)",
            "INSERT INTO T VALUES ('EE', 90)",
        )
        result = self.run_sql(
            "SELECT dept, AVG(score) FROM T GROUP BY dept ORDER BY AVG( score ) DESC"
        )
        self.assertEqual(result.rows, [["EE", "90"], ["CS", "80"]])

    def test_indices_not_persisted_but_rebuilt(self):
        """Primary key indices come back after a reload"""
        reloaded = DatabaseManager(self.test_dir)
        reloaded.use_database("school")
        table = reloaded.get_table("Students")
        self.assertEqual(table.index_positions("ID", "2"), frozenset({1}))


if __name__ == '__main__':
    unittest.main()
