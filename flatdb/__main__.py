#!/usr/bin/env python3
"""
FlatDB - a small SQL engine over flat text files
Entry point script

Run the REPL:
    python -m flatdb

Or use as a library:
    from flatdb import Database
    db = Database("./data", database="school")
    db.execute("SELECT * FROM students;")
"""

from flatdb.core.repl import main

if __name__ == '__main__':
    main()
