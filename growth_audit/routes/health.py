"""
Health routes — liveness plus circuit breaker status for external services.
"""
import logging

from flask import Blueprint, jsonify

from growth_audit.services.circuit_breaker import get_all_breakers

logger = logging.getLogger('routes.health')

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    """Liveness check."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def service_health():
    """Breaker state per external service."""
    services = {name: breaker.get_health() for name, breaker in get_all_breakers().items()}
    degraded = any(health['state'] in ('open', 'half_open') for health in services.values())
    return jsonify({'status': 'degraded' if degraded else 'healthy', 'services': services})


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_breaker(service):
    breaker = get_all_breakers().get(service)
    if breaker is None:
        return jsonify({'error': f'Unknown service: {service}'}), 404
    breaker.reset()
    logger.info("Circuit breaker %s reset via API", service)
    return jsonify({'status': 'success', 'service': service, 'health': breaker.get_health()})
