"""
Shared fixtures for database-backed tests.
Each test case gets its own SQLite file in a temporary directory.
"""

import os
import shutil
import tempfile
import unittest

from gridbase.cells import ColumnType
from gridbase.database.connection import DatabaseConnection
from gridbase.database.metadata import MetadataStore

OWNER = 'user-1'


class DatabaseTestCase(unittest.TestCase):
    """Creates a fresh schema per test and removes it afterwards."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp(prefix='gridbase-test-')
        self.db = DatabaseConnection(f"sqlite:///{os.path.join(self.tmpdir, 'gridbase.db')}")
        self.db.create_schema()
        self.metadata = MetadataStore(self.db)

    def tearDown(self):
        self.db.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def make_table(self, columns=(('Name', ColumnType.TEXT), ('Score', ColumnType.NUMBER)), owner=OWNER):
        """
        Create a base, a table and its columns.

        Returns:
            (table_id, [column ids in declaration order])
        """
        base = self.metadata.create_base(owner, 'Test Base')
        table = self.metadata.create_table(base.id, 'Test Table')
        column_ids = [
            self.metadata.create_column(table.id, name, column_type, display_order=i).id
            for i, (name, column_type) in enumerate(columns)
        ]
        return table.id, column_ids
