"""
Health routes — liveness and circuit breaker state for external services.
"""
from flask import Blueprint, jsonify

from skumatch.services.circuit_breaker import get_all_breakers

bp = Blueprint('health', __name__)


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'})


@bp.route('/api/health')
def api_health():
    """Circuit breaker state per external service."""
    return jsonify({
        'services': {name: breaker.get_health() for name, breaker in get_all_breakers().items()},
    })


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_circuit(service):
    breaker = get_all_breakers().get(service)
    if breaker is None:
        return jsonify({'ok': False, 'error': f'Unknown service: {service}'}), 404
    breaker.reset()
    return jsonify({'ok': True, 'service': service, 'state': breaker.state})
