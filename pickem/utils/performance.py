"""
Timing helpers for score recomputes and API requests

Timed blocks are collected on ``g`` so the request hook can report them
in a ``Server-Timing`` header and flag slow requests in the log.
"""

import functools
import time

from flask import current_app, g, has_app_context, request

from pickem.utils.logging_config import get_logger

logger = get_logger(__name__)


def _slow_threshold():
    if has_app_context():
        return current_app.config.get("SLOW_FUNCTION_THRESHOLD", 1.0)
    return 1.0


def _record(name, duration, success):
    if not has_app_context():
        return
    g.setdefault("performance_metrics", []).append(
        {"operation": name, "duration": duration, "success": success}
    )


def timer(func):
    """Log how long ``func`` ran, as a warning once it passes the slow threshold"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(f"{func.__qualname__} failed after {elapsed:.3f}s: {e}")
            raise

        elapsed = time.perf_counter() - started
        threshold = _slow_threshold()
        if elapsed > threshold:
            logger.warning(f"{func.__qualname__} took {elapsed:.3f}s (threshold {threshold}s)")
        else:
            logger.debug(f"{func.__qualname__} took {elapsed:.3f}s")
        return result

    return wrapper


class PerformanceMonitor:
    """
    Time a block of work.

    Usage:
        with PerformanceMonitor("recalculate_week 2024/1") as monitor:
            ...
        monitor.duration  # seconds
    """

    def __init__(self, operation_name, log_threshold=0.1):
        self.operation_name = operation_name
        self.log_threshold = log_threshold
        self.duration = None
        self._started = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self._started

        if exc_type is not None:
            logger.error(f"{self.operation_name} failed after {self.duration:.3f}s: {exc_val}")
        elif self.duration > self.log_threshold:
            logger.info(f"{self.operation_name} finished in {self.duration:.3f}s")

        _record(self.operation_name, self.duration, exc_type is None)
        return False


def register_request_timing(app):
    """Time every request and expose collected block timings to the client"""

    @app.before_request
    def start_request_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def finish_request_timer(response):
        started = g.pop("request_started", None)
        if started is None:
            return response

        elapsed = time.perf_counter() - started
        metrics = g.pop("performance_metrics", [])

        entries = [f"total;dur={elapsed * 1000:.1f}"]
        for index, metric in enumerate(metrics):
            entries.append(
                f'op{index};dur={metric["duration"] * 1000:.1f};desc="{metric["operation"]}"'
            )
        response.headers["Server-Timing"] = ", ".join(entries)

        threshold = app.config.get("SLOW_FUNCTION_THRESHOLD", 1.0)
        if elapsed > threshold:
            logger.warning(
                f"Slow request {request.method} {request.path} took {elapsed:.3f}s "
                f"({len(metrics)} timed blocks)"
            )
        return response
