"""Tests for skumatch.routes.jobs — job submission, status, start/cancel/retry, row listing."""
from datetime import timedelta

import pytest
from unittest.mock import patch, MagicMock

from skumatch.models.job import utcnow
from skumatch.pipeline.base import JobStats
from skumatch.services import store


@pytest.fixture
def queue():
    """Stand-in for the RQ 'match' queue."""
    q = MagicMock()
    q.enqueue.return_value = MagicMock(id='rq-job-1')
    with patch('skumatch.pipeline.driver._get_queue', return_value=q):
        yield q


def _finish(job_id, statuses, final='partial'):
    store.claim_job(job_id)
    for row, status in zip(store.list_rows(job_id), statuses):
        store.update_row(row.id, status=status)
    store.finalize_job(job_id, final, JobStats.from_statuses(statuses))


# ---------------------------------------------------------------------------
# POST /api/match/jobs
# ---------------------------------------------------------------------------

class TestCreateJob:

    def test_creates_job(self, client, make_rows):
        resp = client.post('/api/match/jobs', json={
            'tenant_id': 'tenant-1', 'rows': make_rows(3), 'file_name': 'march.csv'})
        assert resp.status_code == 201
        data = resp.get_json()
        assert data['ok'] is True
        job = store.get_job(data['job_id'])
        assert job.status == 'queued'
        assert job.input_count == 3
        assert job.file_name == 'march.csv'
        assert job.created_by == 'api'

    def test_start_flag_enqueues(self, client, make_rows, queue):
        resp = client.post('/api/match/jobs', json={
            'tenant_id': 'tenant-1', 'rows': make_rows(1), 'start': True})
        assert resp.status_code == 201
        assert resp.get_json()['queued_as'] == 'rq-job-1'
        queue.enqueue.assert_called_once()

    def test_enqueue_failure_still_returns_job(self, client, make_rows):
        with patch('skumatch.pipeline.driver._get_queue', side_effect=ConnectionError('redis down')):
            resp = client.post('/api/match/jobs', json={
                'tenant_id': 'tenant-1', 'rows': make_rows(1), 'start': True})
        assert resp.status_code == 201
        data = resp.get_json()
        assert 'enqueue_error' in data
        assert store.get_job(data['job_id']).status == 'queued'

    def test_missing_tenant_400(self, client, make_rows):
        resp = client.post('/api/match/jobs', json={'rows': make_rows(1)})
        assert resp.status_code == 400

    def test_rows_must_be_list_400(self, client):
        resp = client.post('/api/match/jobs', json={'tenant_id': 't', 'rows': {'sku': 'A'}})
        assert resp.status_code == 400

    def test_invalid_rows_400(self, client):
        resp = client.post('/api/match/jobs', json={
            'tenant_id': 't', 'rows': [{'row_id': 'x'}, {'row_id': 'x'}]})
        assert resp.status_code == 400
        assert 'duplicate' in resp.get_json()['error']

    def test_no_body_400(self, client):
        assert client.post('/api/match/jobs').status_code == 400


# ---------------------------------------------------------------------------
# GET endpoints
# ---------------------------------------------------------------------------

class TestReadEndpoints:

    def test_list_jobs_by_tenant(self, client, make_job):
        make_job(1, tenant_id='a')
        make_job(1, tenant_id='b')
        data = client.get('/api/match/jobs?tenant_id=a').get_json()
        assert len(data) == 1
        assert data[0]['tenant_id'] == 'a'

    def test_get_job(self, client, make_job):
        job_id = make_job(2)
        resp = client.get(f'/api/match/jobs/{job_id}')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['status'] == 'queued'
        assert data['input_count'] == 2

    def test_get_job_404(self, client):
        assert client.get('/api/match/jobs/missing').status_code == 404

    def test_rows_paged_with_cursor(self, client, make_job):
        job_id = make_job(5)
        first = client.get(f'/api/match/jobs/{job_id}/rows?limit=2').get_json()
        assert [r['seq'] for r in first['rows']] == [1, 2]
        assert first['next_cursor'] == 2

        second = client.get(f'/api/match/jobs/{job_id}/rows?limit=2&after=2').get_json()
        assert [r['seq'] for r in second['rows']] == [3, 4]

        last = client.get(f'/api/match/jobs/{job_id}/rows?limit=2&after=4').get_json()
        assert [r['seq'] for r in last['rows']] == [5]
        assert last['next_cursor'] is None

    def test_rows_status_filter(self, client, make_job):
        job_id = make_job(3)
        _finish(job_id, ['resolved_confident', 'error', 'error'])
        data = client.get(f'/api/match/jobs/{job_id}/rows?status=error').get_json()
        assert [r['row_id'] for r in data['rows']] == ['r2', 'r3']

    def test_rows_404(self, client):
        assert client.get('/api/match/jobs/missing/rows').status_code == 404


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------

class TestStart:

    def test_start_queued_job(self, client, make_job, queue):
        job_id = make_job(1)
        resp = client.post(f'/api/match/jobs/{job_id}/start')
        assert resp.status_code == 202
        assert resp.get_json()['queued_as'] == 'rq-job-1'

    def test_start_running_job_409(self, client, make_job, queue):
        job_id = make_job(1)
        store.claim_job(job_id)
        resp = client.post(f'/api/match/jobs/{job_id}/start')
        assert resp.status_code == 409
        assert resp.get_json()['status'] == 'running'
        queue.enqueue.assert_not_called()

    def test_start_stale_running_job_requeued(self, client, make_job, queue):
        job_id = make_job(1)
        store.claim_job(job_id)
        store.update_job(job_id, updated_at=utcnow() - timedelta(hours=2))
        resp = client.post(f'/api/match/jobs/{job_id}/start')
        assert resp.status_code == 202
        queue.enqueue.assert_called_once()

    def test_start_finished_job_409(self, client, make_job, queue):
        job_id = make_job(1)
        _finish(job_id, ['unresolved'], final='succeeded')
        assert client.post(f'/api/match/jobs/{job_id}/start').status_code == 409

    def test_start_missing_404(self, client, queue):
        assert client.post('/api/match/jobs/missing/start').status_code == 404


class TestCancel:

    def test_cancel_queued(self, client, make_job):
        job_id = make_job(1)
        resp = client.post(f'/api/match/jobs/{job_id}/cancel')
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'cancelled'

    def test_cancel_running_sets_flag(self, client, make_job):
        job_id = make_job(1)
        store.claim_job(job_id)
        data = client.post(f'/api/match/jobs/{job_id}/cancel').get_json()
        assert data['cancel_requested'] is True
        assert store.get_job(job_id).cancel_requested is True

    def test_cancel_finished_409(self, client, make_job):
        job_id = make_job(1)
        _finish(job_id, ['resolved_confident'], final='succeeded')
        assert client.post(f'/api/match/jobs/{job_id}/cancel').status_code == 409

    def test_cancel_missing_404(self, client):
        assert client.post('/api/match/jobs/missing/cancel').status_code == 404


class TestRetry:

    def test_retry_creates_child_job(self, client, make_job, queue):
        job_id = make_job(3)
        _finish(job_id, ['resolved_confident', 'error', 'unresolved'])

        resp = client.post(f'/api/match/jobs/{job_id}/retry')

        assert resp.status_code == 202
        data = resp.get_json()
        assert data['parent_job_id'] == job_id
        child = store.get_job(data['job_id'])
        assert child.parent_job_id == job_id
        assert child.input_count == 2
        queue.enqueue.assert_called_once()

    def test_retry_selected_statuses_without_start(self, client, make_job, queue):
        job_id = make_job(3)
        _finish(job_id, ['resolved_confident', 'error', 'unresolved'])

        resp = client.post(f'/api/match/jobs/{job_id}/retry', json={'statuses': ['error'], 'start': False})

        child = store.get_job(resp.get_json()['job_id'])
        assert child.input_count == 1
        queue.enqueue.assert_not_called()

    def test_retry_running_409(self, client, make_job, queue):
        job_id = make_job(1)
        store.claim_job(job_id)
        assert client.post(f'/api/match/jobs/{job_id}/retry').status_code == 409

    def test_retry_nothing_to_retry_400(self, client, make_job, queue):
        job_id = make_job(1)
        _finish(job_id, ['resolved_confident'], final='succeeded')
        assert client.post(f'/api/match/jobs/{job_id}/retry').status_code == 400

    def test_retry_missing_404(self, client, queue):
        assert client.post('/api/match/jobs/missing/retry').status_code == 404
