"""Flask application factory."""
import logging

from flask import Flask, jsonify

from salesorder.database import init_db
from salesorder.exceptions import OrderEngineError


def configure_logging(app):
    """Root log level from LOG_LEVEL."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logging.getLogger().setLevel(level)
    app.logger.setLevel(level)


def register_error_handlers(app):
    """Turn engine errors into JSON responses."""

    @app.errorhandler(OrderEngineError)
    def handle_engine_error(error):
        """Handle custom engine exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"OrderEngineError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"OrderEngineError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Initialize database
    init_db(app)

    register_error_handlers(app)

    # Register CLI commands
    from salesorder.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
