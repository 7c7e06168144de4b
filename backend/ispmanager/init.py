"""
ISP Manager backend
Main application factory
"""
import logging

from celery import Celery, Task
from flask import Flask, has_app_context, jsonify
from flask_caching import Cache
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from prometheus_flask_exporter import PrometheusMetrics
from werkzeug.exceptions import HTTPException

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
mail = Mail()
cache = Cache()
limiter = Limiter(key_func=get_remote_address)
metrics = PrometheusMetrics.for_app_factory()
celery = Celery('ispmanager', include=['ispmanager.tasks'])

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _resolve_config(config_class):
    if isinstance(config_class, str):
        from ispmanager.config import config as config_map
        return config_map.get(config_class, config_class)
    return config_class


def _configure_logging(app):
    if not app.debug and not app.testing:
        gunicorn_logger = logging.getLogger('gunicorn.error')
        if gunicorn_logger.handlers:
            app.logger.handlers = gunicorn_logger.handlers
            app.logger.setLevel(gunicorn_logger.level)
            logging.getLogger('ispmanager').handlers = gunicorn_logger.handlers
            logging.getLogger('ispmanager').setLevel(gunicorn_logger.level)
            return
    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'), format=LOG_FORMAT)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))


def init_celery(app):
    """Bind the Celery app to Flask so tasks run inside an app context."""

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            if has_app_context():
                return self.run(*args, **kwargs)
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskTask
    celery.conf.update(
        broker_url=app.config.get('CELERY_BROKER_URL'),
        result_backend=app.config.get('CELERY_RESULT_BACKEND'),
        task_serializer='json',
        accept_content=['json'],
        result_serializer='json',
        enable_utc=True,
        task_always_eager=bool(app.config.get('TESTING')),
        beat_schedule={
            'mark-overdue-invoices': {
                'task': 'ispmanager.tasks.mark_overdue_invoices',
                'schedule': float(app.config.get('OVERDUE_SCAN_INTERVAL_SECONDS', 3600)),
            },
            'refresh-router-status': {
                'task': 'ispmanager.tasks.refresh_router_status',
                'schedule': float(app.config.get('ROUTER_STATUS_INTERVAL_SECONDS', 300)),
            },
        },
    )
    app.extensions['celery'] = celery
    return celery


def _register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'No token provided'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid token'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Invalid token'}), 401


def create_app(config_class='default'):
    """Application factory"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(_resolve_config(config_class))
    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)
    cache.init_app(app)
    limiter.init_app(app)
    if app.config.get('METRICS_ENABLED', True):
        metrics.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}})
    init_celery(app)
    _register_jwt_handlers()

    # Register blueprints
    from ispmanager.routes.auth import auth_bp
    from ispmanager.routes.customers import customers_bp
    from ispmanager.routes.dashboard import dashboard_bp
    from ispmanager.routes.invoices import invoices_bp
    from ispmanager.routes.isp_owners import isp_owners_bp
    from ispmanager.routes.payments import payments_bp
    from ispmanager.routes.plans import plans_bp
    from ispmanager.routes.pppoe_users import pppoe_users_bp
    from ispmanager.routes.routers import routers_bp
    from ispmanager.routes.users import users_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(customers_bp, url_prefix='/api/customers')
    app.register_blueprint(plans_bp, url_prefix='/api/plans')
    app.register_blueprint(invoices_bp, url_prefix='/api/invoices')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(routers_bp, url_prefix='/api/routers')
    app.register_blueprint(pppoe_users_bp, url_prefix='/api/pppoe-users')
    app.register_blueprint(isp_owners_bp, url_prefix='/api')
    app.register_blueprint(dashboard_bp, url_prefix='/api')

    from ispmanager.seed import register_commands
    register_commands(app)

    # Health check endpoint
    @app.route('/health')
    def health():
        return jsonify({'status': 'healthy', 'service': 'ispmanager-backend'})

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({'error': 'Rate limit exceeded'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f'Server Error: {error}')
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return jsonify({'error': error.description}), error.code
        db.session.rollback()
        app.logger.exception('Unhandled error: %s', error)
        return jsonify({'error': 'Internal server error'}), 500

    return app
