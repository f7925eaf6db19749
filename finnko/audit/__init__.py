"""Logging and persistence failure reporting."""

from finnko.audit.logger import (
    CompositePersistenceSink,
    LoggingPersistenceSink,
    MetricsPersistenceSink,
    PersistenceFailure,
    PersistenceSink,
    configure_logging,
)

__all__ = [
    "CompositePersistenceSink",
    "LoggingPersistenceSink",
    "MetricsPersistenceSink",
    "PersistenceFailure",
    "PersistenceSink",
    "configure_logging",
]
