"""Flask application factory."""
import logging

from flask import Flask, jsonify, request
from atelier.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Fail at startup on a misspelled sale stock policy
    from atelier.services.stock_service import NegativeStockPolicy
    policy = str(app.config.get('SALE_NEGATIVE_STOCK_POLICY', 'ALLOW')).upper()
    if policy not in NegativeStockPolicy.__members__:
        raise ValueError(
            f"Invalid SALE_NEGATIVE_STOCK_POLICY '{policy}', "
            f"expected one of {', '.join(NegativeStockPolicy.__members__)}"
        )
    app.config['SALE_NEGATIVE_STOCK_POLICY'] = policy

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=app.config.get('GIT_COMMIT', 'unknown')
        )

    # Redis cache
    from atelier.services.cache_service import init_cache
    init_cache(app)

    # Prometheus instrumentation
    from atelier.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* headers behind the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load caller identity from the bearer token before each request
    from atelier.middleware import load_user_from_token

    @app.before_request
    def before_request_handler():
        load_user_from_token()

    # Error Handlers
    from atelier.exceptions import AtelierError

    @app.errorhandler(AtelierError)
    def handle_atelier_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"AtelierError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"AtelierError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        original = getattr(error, "original_exception", None)
        app.logger.error(f"Unhandled Exception: {original or error}", exc_info=original)
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    @app.route('/health')
    def health():
        """Liveness probe: database and cache status."""
        from sqlalchemy import text
        from atelier.database import get_session
        from atelier.services.cache_service import get_cache

        database_ok = True
        try:
            get_session().execute(text('SELECT 1'))
        except Exception as e:
            app.logger.error(f"Health check database error: {e}")
            database_ok = False

        status = 'ok' if database_ok else 'degraded'
        return jsonify({
            'status': status,
            'database': database_ok,
            'cache': get_cache().is_available(),
        }), 200 if database_ok else 503

    # Register blueprints
    from atelier.blueprints.record_sale import record_sale_bp
    from atelier.blueprints.sales import sales_bp
    from atelier.blueprints.stock import stock_bp
    from atelier.blueprints.metrics import metrics_bp

    app.register_blueprint(record_sale_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from atelier.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(
        f"Atelier started - env={app.config.get('ENV')}, "
        f"sale stock policy={app.config.get('SALE_NEGATIVE_STOCK_POLICY')}"
    )

    return app
