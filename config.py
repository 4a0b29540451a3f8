import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _env_bool(name, default):
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes")


def _env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


def _secret_key():
    key = os.environ.get("SECRET_KEY")
    if key:
        return key

    warnings.warn(
        "SECRET_KEY not set, using a random key. "
        "Set SECRET_KEY in .env to keep sessions valid across restarts.",
        UserWarning,
    )
    return secrets.token_urlsafe(32)


def database_uri():
    """DATABASE_URL wins; otherwise PostgreSQL from DB_* parts or a local SQLite file"""
    if os.environ.get("DATABASE_URL"):
        return os.environ["DATABASE_URL"]

    if os.environ.get("DB_TYPE", "sqlite").lower() != "postgresql":
        return "sqlite:///" + os.path.join(basedir, "pickem.db")

    parts = {
        "user": os.environ.get("DB_USER") or "pickem_user",
        "password": os.environ.get("DB_PASSWORD") or "pickem_password",
        "host": os.environ.get("DB_HOST") or "localhost",
        "port": os.environ.get("DB_PORT") or "5432",
        "name": os.environ.get("DB_NAME") or "pickem_db",
    }
    return "postgresql+psycopg://{user}:{password}@{host}:{port}/{name}".format(**parts)


class Config:
    SECRET_KEY = _secret_key()

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Picks close this many minutes before kickoff
    GAME_LOCK_OFFSET_MINUTES = _env_int("GAME_LOCK_OFFSET_MINUTES", 5)
    # Display timezone for API output; storage is always UTC
    TIMEZONE = os.environ.get("TIMEZONE", "UTC")

    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = _env_int("CACHE_DEFAULT_TIMEOUT", 300)
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pickem:"

    RATELIMIT_ENABLED = True
    PICK_SUBMIT_RATE_LIMIT = os.environ.get("PICK_SUBMIT_RATE_LIMIT", "60 per minute")

    # Background score reconciliation
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
    SCORE_RECONCILE_INTERVAL_MINUTES = _env_int("SCORE_RECONCILE_INTERVAL_MINUTES", 30)
    SCORE_RECONCILE_LOOKBACK_HOURS = _env_int("SCORE_RECONCILE_LOOKBACK_HOURS", 36)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = _env_bool("LOG_TO_CONSOLE", True)
    LOG_TO_FILE = _env_bool("LOG_TO_FILE", True)
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    SLOW_FUNCTION_THRESHOLD = float(os.environ.get("SLOW_FUNCTION_THRESHOLD", "1.0"))

    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False

    def __init__(self):
        # read at instantiation so tests and the CLI can change the environment
        self.SQLALCHEMY_DATABASE_URI = database_uri()


class DevelopmentConfig(Config):
    """Local development; falls back to SimpleCache when Redis is down"""

    DEBUG = True
    SQLALCHEMY_ECHO = _env_bool("SQLALCHEMY_ECHO", False)

    def __init__(self):
        super().__init__()
        import redis

        try:
            redis.Redis.from_url(self.CACHE_REDIS_URL).ping()
        except redis.exceptions.ConnectionError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, using SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    DEBUG = False

    def __init__(self):
        super().__init__()
        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not set explicitly. "
                "API sessions will not survive a restart.",
                UserWarning,
            )


class TestingConfig(Config):
    TESTING = True
    CACHE_TYPE = "NullCache"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_LEVEL = "WARNING"

    def __init__(self):
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
