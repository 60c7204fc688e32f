"""Common runtime devkit for service infrastructure concerns."""

from devkit.amqp import (
    AmqpConnectionError,
    AmqpConnectionManager,
    RabbitMqSettings,
    build_persistent_message,
    open_connection,
)
from devkit.config import ServiceSettings, load_settings
from devkit.db import (
    AsyncDatabaseManager,
    Base,
    create_all_tables,
    create_async_engine,
    create_session_factory,
    is_transient_db_error,
    load_database_url,
    normalize_postgres_dsn,
)
from devkit.observability import configure_logging, configure_otel, configure_probe_access_log_filter
from devkit.retry import exponential_backoff, with_exponential_backoff
from devkit.timezone import ensure_utc, now_utc

__all__ = [
    "AmqpConnectionError",
    "AmqpConnectionManager",
    "AsyncDatabaseManager",
    "Base",
    "RabbitMqSettings",
    "ServiceSettings",
    "build_persistent_message",
    "configure_logging",
    "configure_otel",
    "configure_probe_access_log_filter",
    "create_all_tables",
    "create_async_engine",
    "create_session_factory",
    "ensure_utc",
    "exponential_backoff",
    "is_transient_db_error",
    "load_database_url",
    "load_settings",
    "normalize_postgres_dsn",
    "now_utc",
    "open_connection",
    "with_exponential_backoff",
]
