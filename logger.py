"""
Logging and monitoring for Vibe Check Service

Every module logs through a child of the ``vibecheck`` logger
(``vibecheck.api``, ``vibecheck.quiz_engine``, ...), so the handlers set up
here apply service-wide.
"""
import json
import logging
import os
import sys
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from logging.handlers import RotatingFileHandler
from typing import Any, Deque, Dict, Iterator, Optional

from config import get_settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _rotating_handler(path: str, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class VibeCheckLogger:
    """Service root logger; keyword context is appended to the message as JSON."""

    def __init__(self, name: str = "vibecheck", log_dir: str = "./logs", level: str = "INFO"):
        self.name = name
        self.log_dir = log_dir
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        if not self.logger.handlers:
            self._attach_handlers(getattr(logging, level.upper(), logging.INFO))

    def _attach_handlers(self, console_level: int):
        os.makedirs(self.log_dir, exist_ok=True)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(console_level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))

        self.logger.addHandler(console)
        # Full debug trail plus a separate file holding only errors
        self.logger.addHandler(_rotating_handler(os.path.join(self.log_dir, f"{self.name}.log"), logging.DEBUG))
        self.logger.addHandler(
            _rotating_handler(os.path.join(self.log_dir, f"{self.name}_errors.log"), logging.ERROR)
        )

    def log(self, level: int, message: str, **context):
        self.logger.log(level, self._with_context(message, context))

    def debug(self, message: str, **context):
        self.log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self.log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self.log(logging.WARNING, message, **context)

    def error(self, message: str, **context):
        self.log(logging.ERROR, message, **context)

    @staticmethod
    def _with_context(message: str, context: Dict[str, Any]) -> str:
        fields = {key: value for key, value in context.items() if value is not None}
        if not fields:
            return message
        return f"{message} | {json.dumps(fields, default=str)}"


class PerformanceMonitor:
    """Keeps the most recent timing samples per metric name."""

    MAX_SAMPLES = 1000

    def __init__(self, logger: VibeCheckLogger, enabled: bool = True):
        self.logger = logger
        self.enabled = enabled
        self.metrics: Dict[str, Deque[Dict[str, Any]]] = defaultdict(lambda: deque(maxlen=self.MAX_SAMPLES))

    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        if not self.enabled:
            return
        self.metrics[name].append({
            "timestamp": datetime.now().isoformat(),
            "value": value,
            "tags": tags or {},
        })

    @contextmanager
    def timer(self, name: str, tags: Optional[Dict[str, str]] = None) -> Iterator[None]:
        """Record how long the ``with`` block took, whether or not it raised."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_metric(name, time.perf_counter() - start, tags)

    def get_stats(self, name: str) -> Optional[Dict[str, float]]:
        samples = self.metrics.get(name)
        if not samples:
            return None
        values = sorted(sample["value"] for sample in samples)
        return {
            "count": len(values),
            "min": values[0],
            "max": values[-1],
            "avg": sum(values) / len(values),
            "p95": values[min(len(values) - 1, int(len(values) * 0.95))],
            "last": samples[-1]["value"],
        }

    def all_stats(self) -> Dict[str, Dict[str, float]]:
        return {name: self.get_stats(name) for name, samples in list(self.metrics.items()) if samples}

    def log_stats(self):
        for name, stats in self.all_stats().items():
            self.logger.info(f"Metric: {name}", **stats)


def log_execution_time(logger: VibeCheckLogger, operation_name: str):
    """Log the outcome and duration of a blocking pipeline step and record it as a metric."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                with performance_monitor.timer(operation_name):
                    result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{operation_name} failed",
                    function=func.__name__,
                    duration_seconds=round(time.perf_counter() - start, 2),
                    error=str(e),
                )
                raise
            logger.info(
                f"{operation_name} completed",
                function=func.__name__,
                duration_seconds=round(time.perf_counter() - start, 2),
            )
            return result
        return wrapper
    return decorator


class RequestLogger:
    """Per-route request accounting, fed by the HTTP middleware."""

    def __init__(self, logger: VibeCheckLogger):
        self.logger = logger
        self.request_count = 0
        self.error_count = 0
        self.by_route: Dict[str, Dict[str, int]] = defaultdict(lambda: {"requests": 0, "errors": 0})

    def log_request(self, endpoint: str, method: str, user_id: Optional[str] = None):
        self.request_count += 1
        self.by_route[endpoint]["requests"] += 1
        self.logger.debug(f"{method} {endpoint}", user_id=user_id)

    def log_response(self, endpoint: str, status_code: int, duration_ms: float, user_id: Optional[str] = None):
        level = logging.INFO
        if status_code >= 400:
            self.error_count += 1
            self.by_route[endpoint]["errors"] += 1
            level = logging.ERROR if status_code >= 500 else logging.WARNING
        self.logger.log(
            level,
            f"{endpoint} -> {status_code}",
            duration_ms=round(duration_ms, 2),
            user_id=user_id,
        )

    def get_stats(self) -> Dict[str, Any]:
        served = max(self.request_count, 1)
        return {
            "total_requests": self.request_count,
            "total_errors": self.error_count,
            "success_rate": round((1 - self.error_count / served) * 100, 2),
            "routes": {route: dict(counts) for route, counts in list(self.by_route.items())},
        }


_settings = get_settings()
vibecheck_logger = VibeCheckLogger("vibecheck", log_dir=_settings.log_dir, level=_settings.log_level)
performance_monitor = PerformanceMonitor(vibecheck_logger, enabled=_settings.enable_performance_monitoring)
request_logger = RequestLogger(vibecheck_logger)
