"""
Match job routes — submit, inspect, start, cancel and retry SKU → URL jobs.
"""
import logging

from flask import Blueprint, request, jsonify

from skumatch.errors import JobNotFoundError, JobStateError
from skumatch.pipeline.driver import launch_job, get_job_status
from skumatch.services import store

logger = logging.getLogger('routes.jobs')

bp = Blueprint('jobs', __name__, url_prefix='/api/match/jobs')


@bp.route('', methods=['POST'])
def create_job():
    """Create a job from a list of rows; optionally enqueue it right away."""
    data = request.get_json(silent=True) or {}
    tenant_id = data.get('tenant_id') or data.get('tenantId')
    rows = data.get('rows')

    if not tenant_id:
        return jsonify({'ok': False, 'error': 'tenant_id is required'}), 400
    if not isinstance(rows, list):
        return jsonify({'ok': False, 'error': 'rows must be a list'}), 400

    try:
        job_id = store.create_job(
            tenant_id, rows,
            created_by=data.get('created_by') or 'api',
            source_type=data.get('source_type'),
            file_name=data.get('file_name'),
            meta=data.get('meta'),
        )
    except ValueError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error("Job creation failed for tenant %s", tenant_id, exc_info=True)
        return jsonify({'ok': False, 'error': str(e)}), 500

    body = {'ok': True, 'job_id': job_id}
    if data.get('start'):
        try:
            body['queued_as'] = launch_job(job_id)
        except Exception as e:
            logger.error("Job %s created but could not be enqueued", job_id, exc_info=True)
            body['enqueue_error'] = str(e)
    return jsonify(body), 201


@bp.route('')
def list_jobs():
    """Recent jobs, newest first."""
    limit = max(1, min(request.args.get('limit', 20, type=int), 200))
    jobs = store.list_jobs(tenant_id=request.args.get('tenant_id'), limit=limit)
    return jsonify([job.to_dict() for job in jobs])


@bp.route('/<job_id>')
def get_job(job_id):
    status = get_job_status(job_id)
    if not status:
        return jsonify({'error': 'Job not found'}), 404
    return jsonify(status)


@bp.route('/<job_id>/start', methods=['POST'])
def start_job(job_id):
    """Enqueue a queued job, or take over a running one whose heartbeat went stale."""
    try:
        queued_as = launch_job(job_id)
    except JobNotFoundError:
        return jsonify({'ok': False, 'error': 'Job not found'}), 404
    except JobStateError as e:
        return jsonify({'ok': False, 'error': str(e), 'status': e.status}), 409
    except Exception as e:
        logger.error("Could not enqueue job %s", job_id, exc_info=True)
        return jsonify({'ok': False, 'error': str(e)}), 500
    return jsonify({'ok': True, 'job_id': job_id, 'queued_as': queued_as}), 202


@bp.route('/<job_id>/cancel', methods=['POST'])
def cancel_job(job_id):
    try:
        status = store.request_cancel(job_id)
    except JobNotFoundError:
        return jsonify({'ok': False, 'error': 'Job not found'}), 404
    except JobStateError as e:
        return jsonify({'ok': False, 'error': str(e), 'status': e.status}), 409
    return jsonify({'ok': True, 'job_id': job_id, 'status': status,
                    'cancel_requested': status == 'running'})


@bp.route('/<job_id>/retry', methods=['POST'])
def retry_job(job_id):
    """New job from a finished job's failed rows (error + unresolved by default)."""
    data = request.get_json(silent=True) or {}
    statuses = data.get('statuses') or ['error', 'unresolved']
    try:
        new_job_id = store.create_retry_job(job_id, statuses=tuple(statuses),
                                            created_by=data.get('created_by'))
    except JobNotFoundError:
        return jsonify({'ok': False, 'error': 'Job not found'}), 404
    except JobStateError as e:
        return jsonify({'ok': False, 'error': str(e), 'status': e.status}), 409
    except ValueError as e:
        return jsonify({'ok': False, 'error': str(e)}), 400

    body = {'ok': True, 'job_id': new_job_id, 'parent_job_id': job_id}
    if data.get('start', True):
        try:
            body['queued_as'] = launch_job(new_job_id)
        except Exception as e:
            logger.error("Retry job %s created but could not be enqueued", new_job_id, exc_info=True)
            body['enqueue_error'] = str(e)
    return jsonify(body), 202


@bp.route('/<job_id>/rows')
def list_rows(job_id):
    """Rows of a job in creation order; page with ?after=<next_cursor>."""
    if store.get_job(job_id) is None:
        return jsonify({'error': 'Job not found'}), 404

    limit = max(1, min(request.args.get('limit', 100, type=int), 500))
    after = request.args.get('after', type=int)
    rows = store.list_rows(job_id, status=request.args.get('status'), after=after, limit=limit)
    next_cursor = rows[-1].seq if len(rows) == limit else None
    return jsonify({'rows': [row.to_dict() for row in rows], 'next_cursor': next_cursor})
