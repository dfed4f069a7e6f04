"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""


def create_app():
    """Create and configure the Flask application."""
    from flask import Flask

    from kanban.config import SECRET_KEY
    from kanban.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    app.secret_key = SECRET_KEY

    # Register blueprints
    from kanban.routes.board import bp as board_bp

    app.register_blueprint(board_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic; there is no init_db() call.
    import importlib
    for module in ('pipeline', 'lead', 'service_order', 'tray', 'service', 'event', 'member'):
        importlib.import_module(f'kanban.models.{module}')

    return app
