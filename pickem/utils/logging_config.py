"""
Logging setup for the pick'em API

Console output plus three rotating files under ``LOG_DIR``:
``pickem.log`` (everything at LOG_LEVEL), ``errors.log`` (ERROR and up,
with source location) and ``scheduler.log`` (score reconciliation only).
"""

import logging
import logging.handlers
import os

from flask import has_request_context, request

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
BASE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Loggers that write to scheduler.log as well as the main files
RECONCILE_LOGGERS = (
    "pickem.services.scheduler_service",
    "pickem.services.score_service",
)


class RequestContextFilter(logging.Filter):
    """Stamp records with the method, path, client address and user agent"""

    def filter(self, record):
        record.method = "-"
        record.path = "-"
        record.remote_addr = "-"
        record.user_agent = "-"

        if has_request_context():
            record.method = request.method
            record.path = request.full_path.rstrip("?")
            record.remote_addr = request.headers.get("X-Real-IP", request.remote_addr)
            record.user_agent = request.headers.get("User-Agent", "-")
        return True


class ColoredFormatter(logging.Formatter):
    """Colour the level name on terminals"""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        colour = self.COLORS.get(record.levelno)
        if colour is None:
            return super().format(record)

        # copy so other handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{colour}{record.levelname}{self.RESET}"
        return super().format(record)


def _rotating_handler(log_dir, filename, level, fmt, max_mb, backups):
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, filename),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    handler.addFilter(RequestContextFilter())
    return handler


def setup_logging(app):
    """Attach console and file handlers to the root logger"""
    log_level = logging.getLevelName(app.config.get("LOG_LEVEL", "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if app.config.get("LOG_TO_CONSOLE", True):
        console = logging.StreamHandler()
        console.setLevel(log_level)
        if app.debug:
            console.setFormatter(
                ColoredFormatter(
                    BASE_FORMAT + " [%(filename)s:%(lineno)d]", datefmt="%H:%M:%S"
                )
            )
        else:
            console.setFormatter(logging.Formatter(BASE_FORMAT, datefmt=DATE_FORMAT))
        console.addFilter(RequestContextFilter())
        root_logger.addHandler(console)

    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)

        root_logger.addHandler(
            _rotating_handler(
                log_dir,
                "pickem.log",
                log_level,
                BASE_FORMAT + " [%(method)s %(path)s] [%(remote_addr)s] [%(user_agent)s]",
                max_mb=10,
                backups=5,
            )
        )
        root_logger.addHandler(
            _rotating_handler(
                log_dir,
                "errors.log",
                logging.ERROR,
                BASE_FORMAT + " [%(pathname)s:%(lineno)d] [%(method)s %(path)s]",
                max_mb=5,
                backups=3,
            )
        )

        reconcile_handler = _rotating_handler(
            log_dir, "scheduler.log", logging.INFO, BASE_FORMAT, max_mb=5, backups=3
        )
        for name in RECONCILE_LOGGERS:
            reconcile_logger = logging.getLogger(name)
            for handler in list(reconcile_logger.handlers):
                reconcile_logger.removeHandler(handler)
            reconcile_logger.addHandler(reconcile_handler)

    for noisy in ("werkzeug", "flask_limiter", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.info(f"Logging configured at {logging.getLevelName(log_level)}")


def get_logger(name):
    return logging.getLogger(name)


class ContextualLogger:
    """
    Logger that appends ``key=value`` context to every message.

    ``bind`` returns a new logger, so a service can keep one base logger
    and bind the user and game for each call.
    """

    def __init__(self, name, context=None):
        self.logger = get_logger(name)
        self.context = context or {}

    def bind(self, **context):
        return ContextualLogger(self.logger.name, {**self.context, **context})

    def _log(self, level, message, **kwargs):
        if self.context:
            pairs = " ".join(f"{k}={v}" for k, v in self.context.items())
            message = f"{message} [{pairs}]"
        self.logger.log(level, message, **kwargs)

    def debug(self, message, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message, **kwargs):
        self._log(logging.ERROR, message, exc_info=True, **kwargs)
