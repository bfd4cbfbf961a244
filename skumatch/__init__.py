"""
Flask application factory.

Creates and configures the app, registers the job API and health blueprints.
"""
from flask import Flask


def create_app():
    """Create and configure the Flask application."""
    from skumatch.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    # Register blueprints
    from skumatch.routes.jobs import bp as jobs_bp
    from skumatch.routes.health import bp as health_bp

    app.register_blueprint(jobs_bp)
    app.register_blueprint(health_bp)

    # Initialize circuit breakers for external services
    from skumatch.extensions import redis_client
    from skumatch.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic — no create_all() call.
    import importlib
    importlib.import_module('skumatch.models.job')
    importlib.import_module('skumatch.models.job_row')

    return app
