import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, current_app, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from config import get_config
from errors import TaskFlowError
from extensions import bcrypt, cors, db, jwt, limiter
from models import utcnow


# ============================================
# Application factory
# ============================================

def create_app(config_class=None):
    """
    Build the Flask app

    config_class defaults to the class selected by FLASK_ENV.
    """
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    init_extensions(app)
    setup_logging(app)
    register_blueprints(app)
    register_jwt_callbacks(app)
    register_error_handlers(app)
    register_request_hooks(app)
    register_routes(app)
    register_commands(app)

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app


def init_extensions(app):
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)

    # Only the configured front-end origins, never '*'
    cors.init_app(
        app,
        supports_credentials=True,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )


# ============================================
# Logging
# ============================================

def setup_logging(app):
    """
    Rotating file logs

    app.log takes INFO and up, error.log only errors. Skipped in debug
    and testing where the console is enough.
    """
    if app.debug or app.testing:
        return

    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=app.config['LOG_MAX_BYTES'],
        backupCount=app.config['LOG_BACKUP_COUNT']
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=app.config['LOG_MAX_BYTES'],
        backupCount=app.config['LOG_BACKUP_COUNT']
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # Blueprint modules log through their own module loggers, so attach to
    # the root logger as well as the app logger
    level = getattr(logging, app.config['LOG_LEVEL'].upper(), logging.INFO)
    for target in (app.logger, logging.getLogger()):
        target.addHandler(info_handler)
        target.addHandler(error_handler)
        target.setLevel(level)
    app.logger.propagate = False

    app.logger.info('Application startup')


# ============================================
# Blueprints
# ============================================

def register_blueprints(app):
    from auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    from users import users_bp
    app.register_blueprint(users_bp, url_prefix='/users')

    from tasks import tasks_bp
    app.register_blueprint(tasks_bp, url_prefix='/tasks')

    from comments import comments_bp
    app.register_blueprint(comments_bp)

    from categories import categories_bp
    app.register_blueprint(categories_bp, url_prefix='/categories')

    from notifications import notifications_bp
    app.register_blueprint(notifications_bp, url_prefix='/api')


# ============================================
# JWT errors
# ============================================

def register_jwt_callbacks(app):

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        current_app.logger.warning(f"Expired token from {request.remote_addr}")
        return jsonify({
            'error': 'token_expired',
            'message': 'Access token expired, log in again'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        current_app.logger.warning(f"Invalid token from {request.remote_addr}: {error}")
        return jsonify({
            'error': 'invalid_token',
            'message': 'Access token could not be decoded'
        }), 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        current_app.logger.warning(f"No token from {request.remote_addr}: {error}")
        return jsonify({
            'error': 'authorization_required',
            'message': 'Missing Bearer access token'
        }), 401

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': 'token_revoked',
            'message': 'Access token has been revoked'
        }), 401


# ============================================
# Error handlers
# ============================================

def register_error_handlers(app):

    @app.errorhandler(TaskFlowError)
    def handle_taskflow_error(error):
        """Domain errors raised by rules and blueprints"""
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error(f"{error!r}", exc_info=True)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'error': 'bad_request',
            'message': 'Malformed request',
            'status': 400
        }), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'not_found',
            'message': 'No such endpoint or resource',
            'status': 404
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'method_not_allowed',
            'message': 'Method not supported on this endpoint',
            'status': 405
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limited: {request.remote_addr} {request.path}")
        return jsonify({
            'error': 'rate_limit_exceeded',
            'message': 'Rate limit reached, retry later',
            'status': 429
        }), 429

    @app.errorhandler(500)
    def internal_server_error(error):
        """Log the stack trace, return a generic body"""
        db.session.rollback()
        app.logger.error(f"Internal server error: {str(error)}", exc_info=True)
        return jsonify({
            'error': 'internal_server_error',
            'message': 'Internal server error',
            'status': 500
        }), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """Last line of defence for anything not handled above"""
        if isinstance(error, HTTPException):
            return jsonify({
                'error': error.name.lower().replace(' ', '_'),
                'message': error.description,
                'status': error.code
            }), error.code

        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return jsonify({
            'error': 'unexpected_error',
            'message': 'Something went wrong on our side',
            'status': 500
        }), 500


# ============================================
# Request/response hooks
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        if not app.debug:
            app.logger.info(f"--> {request.method} {request.path} ({request.remote_addr})")

    @app.after_request
    def log_response(response):
        if not app.debug:
            app.logger.info(f"<-- {response.status_code} {request.method} {request.path}")

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response


# ============================================
# Health and index
# ============================================

def register_routes(app):

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """Database ping for load balancers and monitors"""
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({
                'status': 'ok',
                'database': 'connected',
                'timestamp': utcnow().isoformat()
            }), 200
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'error',
                'database': 'disconnected',
                'timestamp': utcnow().isoformat()
            }), 503

    @app.route('/')
    def home():
        return jsonify({
            'message': app.config['API_NAME'],
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/auth/register', 'methods': ['POST']},
                    'login': {'path': '/auth/login', 'methods': ['POST']},
                    'me': {'path': '/auth/me', 'methods': ['GET', 'PATCH']}
                },
                'users': {
                    'list': {'path': '/users', 'methods': ['GET']},
                    'me': {'path': '/users/me', 'methods': ['GET', 'PATCH']},
                    'detail': {'path': '/users/:id', 'methods': ['GET']}
                },
                'tasks': {
                    'list': {'path': '/tasks', 'methods': ['GET', 'POST']},
                    'stats': {'path': '/tasks/stats', 'methods': ['GET']},
                    'detail': {'path': '/tasks/:id', 'methods': ['GET', 'PATCH', 'DELETE']},
                    'comments': {'path': '/tasks/:id/comments', 'methods': ['GET', 'POST']}
                },
                'comments': {
                    'delete': {'path': '/comments/:id', 'methods': ['DELETE']}
                },
                'categories': {
                    'list': {'path': '/categories', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/categories/:id', 'methods': ['GET', 'PATCH', 'DELETE']}
                },
                'notifications': {
                    'list': {'path': '/api/notifications', 'methods': ['GET']},
                    'mark_read': {'path': '/api/notifications/:id/read', 'methods': ['PATCH']},
                    'read_all': {'path': '/api/notifications/read-all', 'methods': ['PATCH']},
                    'delete': {'path': '/api/notifications/:id', 'methods': ['DELETE']},
                    'clear': {'path': '/api/notifications/clear', 'methods': ['DELETE']}
                }
            }
        })


def register_commands(app):
    from seed import seed_demo_command
    app.cli.add_command(seed_demo_command)


# ============================================
# Entry point
# ============================================

if __name__ == '__main__':
    # Use gunicorn in production: gunicorn "app:create_app()"
    app = create_app()

    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    port = int(os.getenv('PORT', 3001))

    app.run(
        debug=debug_mode,
        port=port,
        host='0.0.0.0'
    )
