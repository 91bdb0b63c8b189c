"""
Flask application factory.

Creates and configures the app, registers the JSON API blueprints and maps the
pipeline's exception taxonomy onto HTTP status codes.
"""
import logging

from flask import Flask, jsonify

from growth_audit.errors import NotConfiguredError, NotFoundError, ValidationError

logger = logging.getLogger('growth_audit')


def _register_error_handlers(app):

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        body = {'error': str(error)}
        if error.field:
            body['field'] = error.field
        return jsonify(body), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(error):
        return jsonify({'error': str(error)}), 404

    @app.errorhandler(NotConfiguredError)
    def handle_not_configured(error):
        logger.warning("Request refused: %s", error)
        return jsonify({'error': str(error), 'status': 'not_configured'}), 503


def create_app():
    """Create and configure the Flask application."""
    from growth_audit.logging_config import configure_logging

    app = Flask(__name__)
    configure_logging(app)
    app.json.sort_keys = False

    _register_error_handlers(app)

    # Register blueprints
    from growth_audit.routes.health import bp as health_bp
    from growth_audit.routes.scans import bp as scans_bp
    from growth_audit.routes.leads import bp as leads_bp
    from growth_audit.routes.simulator import bp as simulator_bp
    from growth_audit.routes.events import bp as events_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(scans_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(simulator_bp)
    app.register_blueprint(events_bp)

    # Initialize circuit breakers for external API services
    from growth_audit.extensions import redis_client
    from growth_audit.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Postgres schema is managed by Alembic; SQLite is created on first use.
    import importlib
    for module in ('lead', 'audit_run', 'simulator_run', 'generated_message',
                   'automation_task', 'event'):
        importlib.import_module(f'growth_audit.models.{module}')

    return app
