"""
Monitoring and metrics collection for the application.
"""
import time
from functools import wraps
from typing import Callable
from prometheus_client import Counter, Histogram, Gauge
from .logging_config import get_logger

logger = get_logger("monitoring")

# Prometheus metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

game_actions_total = Counter(
    'game_actions_total',
    'Game actions received',
    ['action', 'outcome']
)

games_created_total = Counter(
    'games_created_total',
    'Games created',
    ['map_type']
)

event_stream_connections = Gauge(
    'event_stream_connections',
    'Open game event streams'
)

database_operations = Counter(
    'database_operations_total',
    'Database operations',
    ['operation', 'table']
)

database_operation_duration = Histogram(
    'database_operation_duration_seconds',
    'Database operation duration in seconds',
    ['operation', 'table']
)


def track_database_operation(operation: str, table: str):
    """Decorator to track database operations."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                database_operations.labels(operation=operation, table=table).inc()
                database_operation_duration.labels(operation=operation, table=table).observe(duration)
                return result
            except Exception as e:
                database_operations.labels(operation=operation, table=table).inc()
                logger.error(
                    "database_operation_error",
                    operation=operation,
                    table=table,
                    error=str(e)
                )
                raise
        return wrapper
    return decorator
