"""
Integration Tests for the Row Store
Compiled plans executed as SQL against a temporary SQLite database.
"""

import random
import unittest

from support import DatabaseTestCase

from gridbase.cells import ColumnType
from gridbase.database.row_store import RowStore
from gridbase.errors import NotFoundError
from gridbase.ingestion.encoder import encode_batch
from gridbase.query import compile_filter, compile_query


class RowStoreTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.store = RowStore(self.db)
        self.table_id, (self.c1, self.c2) = self.make_table()
        self.columns = {self.c1: ColumnType.TEXT, self.c2: ColumnType.NUMBER}

    def append(self, rows, start=0, batch_index=0, job_id=None):
        payload = encode_batch(rows, start_position=start, batch_index=batch_index, job_id=job_id)
        return self.store.bulk_append(self.table_id, payload)

    def scan_data(self, filter_config=None, sort_config=None, **kwargs):
        plan = compile_query(filter_config, sort_config, self.columns)
        return [r.data for r in self.store.scan(self.table_id, plan, **kwargs)]


class TestBulkAppend(RowStoreTestCase):
    """Test idempotent bulk append."""

    def test_count_job_rows_only_counts_that_job(self):
        self.append([{self.c1: 'adhoc'} for _ in range(5)])
        self.append([{self.c1: 'a'} for _ in range(7)], start=5, job_id='job_a')
        self.append([{self.c1: 'b'} for _ in range(3)], start=12, job_id='job_ab')
        self.assertEqual(self.store.count_job_rows(self.table_id, 'job_a'), 7)
        self.assertEqual(self.store.count_job_rows(self.table_id, 'job_ab'), 3)
        self.assertEqual(self.store.count_job_rows(self.table_id, 'job_c'), 0)

    def test_append_and_count(self):
        inserted = self.append([{self.c1: f'r{i}', self.c2: i} for i in range(100)])
        self.assertEqual(inserted, 100)
        self.assertEqual(self.store.count(self.table_id), 100)
        self.assertEqual(self.store.next_position(self.table_id), 100)

    def test_same_batch_twice_is_idempotent(self):
        rows = [{self.c1: f'r{i}'} for i in range(50)]
        self.append(rows, batch_index=3, job_id='job_abc')
        self.append(rows, batch_index=3, job_id='job_abc')
        self.assertEqual(self.store.count(self.table_id), 50)

    def test_empty_batch(self):
        self.assertEqual(self.append([]), 0)
        self.assertEqual(self.store.next_position(self.table_id), 0)

    def test_positions_follow_start_position(self):
        self.append([{self.c1: 'a'}, {self.c1: 'b'}], start=10)
        rows = self.store.all_rows(self.table_id)
        self.assertEqual([r.position for r in rows], [10, 11])


class TestScan(RowStoreTestCase):
    """Test SQL rendering of filters and sorts."""

    def setUp(self):
        super().setUp()
        self.append([
            {self.c1: 'Apple', self.c2: 10},
            {self.c1: 'banana', self.c2: 2},
            {self.c1: '', self.c2: 7},
            {self.c2: 100},
            {self.c1: 'cherry'},
            {self.c1: None, self.c2: None},
        ])

    def test_default_order_is_position(self):
        data = self.scan_data()
        self.assertEqual(len(data), 6)
        self.assertEqual(data[0][self.c1], 'Apple')

    def test_numeric_greater_than(self):
        data = self.scan_data({'conditions': [{'columnId': self.c2, 'operator': 'greaterThan', 'value': 5}]})
        self.assertEqual(sorted(d[self.c2] for d in data), [7, 10, 100])

    def test_contains_is_case_insensitive(self):
        data = self.scan_data({'conditions': [{'columnId': self.c1, 'operator': 'contains', 'value': 'AN'}]})
        self.assertEqual([d[self.c1] for d in data], ['banana'])

    def test_contains_treats_like_wildcards_literally(self):
        self.append([{self.c1: '100%'}], start=6)
        data = self.scan_data({'conditions': [{'columnId': self.c1, 'operator': 'contains', 'value': '%'}]})
        self.assertEqual([d[self.c1] for d in data], ['100%'])

    def test_is_empty_matches_absent_null_and_blank(self):
        empty = self.scan_data({'conditions': [{'columnId': self.c1, 'operator': 'isEmpty'}]})
        not_empty = self.scan_data({'conditions': [{'columnId': self.c1, 'operator': 'isNotEmpty'}]})
        self.assertEqual(len(empty), 3)
        self.assertEqual(len(not_empty), 3)
        self.assertEqual(len(empty) + len(not_empty), self.store.count(self.table_id))

    def test_or_logic(self):
        data = self.scan_data({
            'conditions': [
                {'columnId': self.c1, 'operator': 'equals', 'value': 'cherry'},
                {'columnId': self.c2, 'operator': 'lessThan', 'value': 5},
            ],
            'logic': 'OR',
        })
        self.assertEqual(len(data), 2)

    def test_sort_desc_puts_empty_last(self):
        data = self.scan_data(sort_config=[{'columnId': self.c2, 'direction': 'desc'}])
        values = [d.get(self.c2) for d in data]
        self.assertEqual(values[:4], [100, 10, 7, 2])
        self.assertTrue(all(v is None for v in values[4:]))

    def test_sort_asc_puts_empty_last(self):
        data = self.scan_data(sort_config=[{'columnId': self.c1, 'direction': 'asc'}])
        values = [d.get(self.c1) for d in data]
        self.assertEqual(values[:3], ['Apple', 'banana', 'cherry'])
        self.assertTrue(all(v in (None, '') for v in values[3:]))

    def test_limit_and_offset(self):
        data = self.scan_data(sort_config=[{'columnId': self.c2}], limit=2, offset=1)
        self.assertEqual([d[self.c2] for d in data], [7, 10])

    def test_count_with_filter(self):
        compiled = compile_filter(
            {'conditions': [{'columnId': self.c2, 'operator': 'isNotEmpty'}]}, self.columns
        )
        self.assertEqual(self.store.count(self.table_id, compiled), 4)


class TestSqlMatchesMemory(RowStoreTestCase):
    """The SQL and in-memory renderings of a plan agree."""

    def test_greater_than_500(self):
        rng = random.Random(3)
        rows = [{self.c1: f'r{i}', self.c2: rng.randrange(1000)} for i in range(500)]
        self.append(rows)

        raw_filter = {'conditions': [{'columnId': self.c2, 'operator': 'greaterThan', 'value': 500}]}
        raw_sort = [{'columnId': self.c2, 'direction': 'desc'}]
        from_sql = self.scan_data(raw_filter, raw_sort)

        plan = compile_query(raw_filter, raw_sort, self.columns)
        in_memory = plan.apply(rows)

        self.assertTrue(all(d[self.c2] > 500 for d in from_sql))
        self.assertEqual([d[self.c2] for d in from_sql], [d[self.c2] for d in in_memory])


class TestMutations(RowStoreTestCase):

    def test_update_cell(self):
        self.append([{self.c1: 'a'}])
        row = self.store.all_rows(self.table_id)[0]
        updated = self.store.update_cell(row.id, self.c2, 42)
        self.assertEqual(updated.data, {self.c1: 'a', self.c2: 42})
        self.assertEqual(self.store.get_row(row.id).data[self.c2], 42)

    def test_update_missing_row(self):
        with self.assertRaises(NotFoundError):
            self.store.update_cell('row_missing', self.c1, 'x')

    def test_remove_key_from_every_row(self):
        self.append([{self.c1: f'r{i}', self.c2: i} for i in range(20)])
        self.append([{self.c2: 99}], start=20)

        rewritten = self.store.remove_key(self.table_id, self.c1)

        self.assertEqual(rewritten, 20)
        for row in self.store.all_rows(self.table_id):
            self.assertNotIn(self.c1, row.data)
            self.assertIn(self.c2, row.data)

    def test_remove_key_with_no_references(self):
        self.append([{self.c2: 1}])
        self.assertEqual(self.store.remove_key(self.table_id, self.c1), 0)

    def test_delete_row(self):
        self.append([{self.c1: 'a'}, {self.c1: 'b'}])
        row = self.store.all_rows(self.table_id)[0]
        self.store.delete_row(row.id)
        self.assertEqual(self.store.count(self.table_id), 1)
        with self.assertRaises(NotFoundError):
            self.store.get_row(row.id)


class TestSearch(RowStoreTestCase):

    def test_search_values_case_insensitively(self):
        self.append([{self.c1: 'Hello World'}, {self.c1: 'nothing'}, {self.c2: 12345}])
        found = self.store.search([self.table_id], 'WORLD', limit=10)
        self.assertEqual([r.data[self.c1] for r in found], ['Hello World'])
        found = self.store.search([self.table_id], '234', limit=10)
        self.assertEqual(len(found), 1)

    def test_search_does_not_match_column_ids(self):
        self.append([{self.c1: 'x'}])
        self.assertEqual(self.store.search([self.table_id], self.c1, limit=10), [])

    def test_search_matches_characters_json_escapes(self):
        self.append([{self.c1: 'say "hi" now'}, {self.c1: 'back\\slash'}, {self.c1: 'plain'}])
        quoted = compile_filter({'conditions': [
            {'columnId': self.c1, 'operator': 'contains', 'value': '"hi"'}
        ]}, self.columns)
        self.assertEqual(self.store.count(self.table_id, quoted), 1)

        found = self.store.search([self.table_id], '"HI"', limit=10)
        self.assertEqual([r.data[self.c1] for r in found], ['say "hi" now'])
        found = self.store.search([self.table_id], 'k\\s', limit=10)
        self.assertEqual([r.data[self.c1] for r in found], ['back\\slash'])

    def test_search_respects_limit_and_tables(self):
        self.append([{self.c1: 'match'} for _ in range(5)])
        self.assertEqual(len(self.store.search([self.table_id], 'match', limit=3)), 3)
        self.assertEqual(self.store.search([], 'match', limit=3), [])


if __name__ == '__main__':
    unittest.main()
