"""
API Tests using the Flask test client
"""

import json
import unittest
from unittest.mock import patch

from support import OWNER, DatabaseTestCase

from gridbase.app import create_app
from gridbase.database.connection import set_db
from gridbase.ingestion.ledger import JobStatus


class ApiTestCase(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.app = create_app(self.db, configure_logging=False)
        self.client = self.app.test_client()
        self.headers = {'X-Actor-Id': OWNER}

    def tearDown(self):
        set_db(None)
        super().tearDown()

    def post(self, url, body, actor=OWNER):
        return self.client.post(url, json=body, headers={'X-Actor-Id': actor})

    def make_table(self):
        base = self.post('/api/bases', {'name': 'Base'}).get_json()['base']
        created = self.post('/api/tables', {'base_id': base['id'], 'name': 'Table'}).get_json()
        return created['table']['id'], [c['id'] for c in created['columns']]


class TestMeta(ApiTestCase):

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['database'], 'connected')

    def test_root_lists_endpoints(self):
        self.assertIn('/api/ingestion/jobs', self.client.get('/').get_json()['endpoints'])

    def test_missing_actor(self):
        response = self.client.get('/api/bases')
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()['success'])

    def test_unknown_route(self):
        self.assertEqual(self.client.get('/api/nothing-here').status_code, 404)


class TestWorkspaceRoutes(ApiTestCase):
    """Test table, column and row endpoints."""

    def test_create_and_list(self):
        table_id, columns = self.make_table()
        self.assertEqual(len(columns), 5)

        response = self.client.get(f'/api/tables/{table_id}/rows?limit=10', headers=self.headers)
        body = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body['count'], 10)

        count = self.client.get(f'/api/tables/{table_id}/count', headers=self.headers).get_json()
        self.assertEqual(count['count'], 50)

    def test_filter_and_sort_query_params(self):
        table_id, _ = self.make_table()
        score = self.post(f'/api/tables/{table_id}/columns', {'name': 'Score', 'type': 'NUMBER'}).get_json()
        score_id = score['column']['id']
        self.post(f'/api/tables/{table_id}/rows', {'rows': [{score_id: v} for v in (10, 600, 900)]})

        params = {
            'filter': json.dumps({'conditions': [{'columnId': score_id, 'operator': 'greaterThan', 'value': 500}]}),
            'sort': json.dumps([{'columnId': score_id, 'direction': 'desc'}]),
        }
        response = self.client.get(f'/api/tables/{table_id}/rows', query_string=params, headers=self.headers)
        values = [r['data'][score_id] for r in response.get_json()['rows']]
        self.assertEqual(values, [900, 600])

        body = self.post(f'/api/tables/{table_id}/rows/query', {
            'filter': {'conditions': [{'columnId': score_id, 'operator': 'lessThan', 'value': 100}]},
        }).get_json()
        self.assertEqual([r['data'][score_id] for r in body['rows']], [10])

    def test_validation_errors_map_to_400(self):
        table_id, columns = self.make_table()
        bad_filter = json.dumps({'conditions': [{'columnId': columns[0], 'operator': 'like', 'value': 'x'}]})
        response = self.client.get(
            f'/api/tables/{table_id}/rows', query_string={'filter': bad_filter}, headers=self.headers
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.get(f'/api/tables/{table_id}/rows?limit=500', headers=self.headers)
        self.assertEqual(response.status_code, 400)

    def test_forbidden_and_not_found(self):
        table_id, _ = self.make_table()
        response = self.client.get(f'/api/tables/{table_id}', headers={'X-Actor-Id': 'intruder'})
        self.assertEqual(response.status_code, 403)
        response = self.client.get('/api/tables/tbl_missing', headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_update_cell_and_delete_column(self):
        table_id, columns = self.make_table()
        row_id = self.client.get(f'/api/tables/{table_id}/rows?limit=1', headers=self.headers).get_json()['rows'][0]['id']

        response = self.client.patch(
            f'/api/rows/{row_id}', json={'column_id': columns[0], 'value': 'edited'}, headers=self.headers
        )
        self.assertEqual(response.get_json()['row']['data'][columns[0]], 'edited')

        response = self.client.delete(f'/api/columns/{columns[0]}', headers=self.headers)
        self.assertEqual(response.get_json()['rows_updated'], 50)

    def test_search(self):
        table_id, columns = self.make_table()
        self.post(f'/api/tables/{table_id}/rows', {'rows': [{columns[0]: 'Findable Text'}]})
        body = self.client.get('/api/search?q=findable', headers=self.headers).get_json()
        self.assertEqual(body['count'], 1)


class TestIngestionRoutes(ApiTestCase):

    def test_start_returns_202_and_status(self):
        table_id, _ = self.make_table()

        response = self.post('/api/ingestion/jobs', {'table_id': table_id, 'total_rows': 1000})
        self.assertEqual(response.status_code, 202)
        job_id = response.get_json()['jobId']

        status = self.client.get(f'/api/ingestion/jobs/{job_id}', headers=self.headers).get_json()
        self.assertEqual(status['status'], JobStatus.PENDING.value)
        self.assertEqual(status['progress'], 0.0)

        listed = self.client.get(f'/api/ingestion/jobs?table_id={table_id}', headers=self.headers).get_json()
        self.assertEqual([j['id'] for j in listed['jobs']], [job_id])

    def test_start_wakes_the_worker(self):
        table_id, _ = self.make_table()
        with patch('gridbase.app.wake_ingestion_worker') as wake:
            self.post('/api/ingestion/jobs', {'table_id': table_id, 'total_rows': 5})
        wake.assert_called_once_with(self.app)

    def test_start_requires_ownership_and_valid_total(self):
        table_id, _ = self.make_table()
        self.assertEqual(
            self.post('/api/ingestion/jobs', {'table_id': table_id, 'total_rows': 5}, actor='intruder').status_code,
            403
        )
        self.assertEqual(
            self.post('/api/ingestion/jobs', {'table_id': table_id, 'total_rows': -5}).status_code, 400
        )
        self.assertEqual(
            self.post('/api/ingestion/jobs', {'table_id': table_id, 'total_rows': '5'}).status_code, 400
        )

    def test_unknown_job(self):
        response = self.client.get('/api/ingestion/jobs/job_missing', headers=self.headers)
        self.assertEqual(response.status_code, 404)


if __name__ == '__main__':
    unittest.main()
