import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Client address for rate limiting.

    Behind a proxy the first X-Forwarded-For entry is the caller, then
    X-Real-IP, then the socket address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address()


def _limiter_storage_uri():
    # workers only share limits through Redis
    redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
    if not redis_url:
        return "memory://"

    import redis

    try:
        redis.Redis.from_url(redis_url).ping()
    except redis.exceptions.ConnectionError as e:
        logger.warning(f"Redis not available for rate limiter, using memory storage: {e}")
        return "memory://"

    logger.info(f"Rate limiter using Redis storage at {redis_url}")
    return redis_url


limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=_limiter_storage_uri(),
)


def create_app(config_name=None):
    app = Flask(__name__)
    app.config.from_object(config[config_name or os.environ.get("FLASK_CONFIG", "default")]())

    from pickem.utils.logging_config import setup_logging

    setup_logging(app)

    for extension in (db, login_manager, cache, limiter):
        extension.init_app(app)
    migrate.init_app(app, db)

    from pickem.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from pickem.utils.performance import register_request_timing

    register_request_timing(app)

    with app.app_context():
        db.create_all()

    # the scheduler checks SCHEDULER_ENABLED itself
    if not app.config.get("TESTING", False):
        from pickem.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


@login_manager.request_loader
def load_user_from_request(req):
    """Identify the caller from an ``Authorization: Bearer <token>`` header"""
    from pickem.models import User

    header = req.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None

    token = header[len("Bearer "):].strip()
    if not token:
        return None

    return User.get_by_api_token(token)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "error": "Unauthorized"}), 401


HTTP_ERROR_MESSAGES = {
    400: "Bad request",
    403: "Access forbidden",
    404: "Resource not found",
    405: "Method not allowed",
    429: "Too many requests",
    500: "Internal server error",
    503: "Service unavailable",
}


def register_error_handlers(app):
    """Answer every error with the ``{"success": false, "error": ...}`` envelope"""
    from sqlalchemy.exc import SQLAlchemyError
    from werkzeug.exceptions import HTTPException

    from pickem.errors import PickemError

    @app.after_request
    def add_default_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        if not app.config.get("DEBUG"):
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    @app.errorhandler(PickemError)
    def handle_pickem_error(error):
        app.logger.info(
            f"{error.__class__.__name__} on {request.method} {request.path}: {error.message}"
        )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.error(f"Database error on {request.path}: {error}", exc_info=True)
        return jsonify({"success": False, "error": HTTP_ERROR_MESSAGES[500]}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        code = error.code or 500
        if code >= 500:
            db.session.rollback()
            app.logger.error(f"{code} on {request.method} {request.path}: {error}")
        elif code == 400:
            app.logger.warning(f"400 on {request.method} {request.path}: {error.description}")

        message = HTTP_ERROR_MESSAGES.get(code, error.name)
        return jsonify({"success": False, "error": message}), code


from pickem import models  # noqa: F401, E402 - imported for model registration
