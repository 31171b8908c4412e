"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from werkzeug.exceptions import HTTPException
from roomshop.database import init_db
import os

csrf = CSRFProtect()


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection; API clients send the token in the X-CSRFToken header
    csrf.init_app(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({
            'status': 'error',
            'error': 'csrf_failed',
            'message': 'Your session has expired. Reload and try again.'
        }), 400

    # Error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis pub/sub for stock and notification events
    from roomshop.services.broadcast_service import init_broadcast
    init_broadcast(app)

    # Prometheus metrics instrumentation
    from roomshop.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production' or app.config.get('FLASK_ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    from roomshop.middleware import load_user

    @app.before_request
    def before_request_handler():
        """Load user context for each request."""
        load_user()

    # Error Handlers
    from roomshop.exceptions import RoomshopError

    @app.errorhandler(RoomshopError)
    def handle_roomshop_error(error):
        """Handle custom application exceptions."""
        app.logger.info(f"RoomshopError [{error.status_code}] {error.kind}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'error': 'not_found', 'message': 'Not Found'}), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({
            'status': 'error',
            'error': 'http_error',
            'message': error.description or error.name
        }), error.code

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'error': 'internal_error', 'message': 'Internal Server Error'}), 500

    @app.route('/api/csrf-token')
    def csrf_token():
        return jsonify({'csrf_token': generate_csrf()})

    # Register blueprints
    from roomshop.blueprints.cart import cart_bp
    from roomshop.blueprints.orders import orders_bp
    from roomshop.blueprints.rooms import rooms_bp
    from roomshop.blueprints.coins import coins_bp
    from roomshop.blueprints.payments import payments_bp
    from roomshop.blueprints.metrics import metrics_bp

    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(rooms_bp)
    app.register_blueprint(coins_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from roomshop.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
