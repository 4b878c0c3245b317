"""Flask application factory."""
from flask import Flask, request, jsonify
from proposaldesk.database import init_db
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.debug and not app.testing:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
        )

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for the offer catalog
    from proposaldesk.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from proposaldesk.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database and the proposal number sequence
    init_db(app)
    from proposaldesk.services.sequence_service import init_sequence
    init_sequence(app)

    from proposaldesk.middleware import load_actor

    @app.before_request
    def before_request_handler():
        """Load the acting user for each request."""
        load_actor()

    # Error Handlers
    from proposaldesk.exceptions import ProposalDeskError

    @app.errorhandler(ProposalDeskError)
    def handle_proposal_error(error):
        """Handle custom application exceptions as {success: false, error}."""
        if error.status_code >= 500:
            app.logger.error(f"ProposalDeskError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"ProposalDeskError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception on {request.method} {request.path}: {error}")
        return jsonify({'success': False, 'error': 'Internal Server Error'}), 500

    # Register blueprints
    from proposaldesk.blueprints.proposals import proposals_bp
    from proposaldesk.blueprints.metrics import metrics_bp

    app.register_blueprint(proposals_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from proposaldesk.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
