"""
Logging and Persistence Failure Reporting

DESIGN DECISION: Background persistence never raises into the caller.
Contexts hand every failed save to a PersistenceSink instead, so the failure
is observable without rolling back optimistic state.

Sinks:
- LoggingPersistenceSink: structured log line per failure
- MetricsPersistenceSink: in-memory counters (plus logging), for status
  screens and tests
- CompositePersistenceSink: fan-out to several sinks
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from finnko.models.entities import utc_now
from finnko.services.storage.interface import RemoteStoreError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


class PersistenceFailure(BaseModel):
    """One failed background write."""
    model_config = ConfigDict(frozen=True)

    operation: str
    entity_type: str
    error_type: str
    message: str
    kind: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_exception(cls, operation: str, entity_type: str, error: BaseException) -> "PersistenceFailure":
        kind = error.kind.value if isinstance(error, RemoteStoreError) else None
        return cls(
            operation=operation,
            entity_type=entity_type,
            error_type=type(error).__name__,
            message=str(error),
            kind=kind,
        )


class PersistenceSink(ABC):
    """Receives failures of fire-and-forget persistence."""

    @abstractmethod
    def report_failure(self, operation: str, entity_type: str, error: BaseException) -> None:
        """
        Record a failed write.

        Must not raise.
        """
        pass


class LoggingPersistenceSink(PersistenceSink):

    def __init__(self):
        self._logger = structlog.get_logger("finnko.persistence")

    def report_failure(self, operation: str, entity_type: str, error: BaseException) -> None:
        failure = PersistenceFailure.from_exception(operation, entity_type, error)
        self._logger.error("persist_failed", **failure.model_dump(mode="json"))


class MetricsPersistenceSink(LoggingPersistenceSink):
    """Logs like LoggingPersistenceSink and keeps counters and recent failures."""

    def __init__(self, keep_last: int = 100):
        super().__init__()
        self._keep_last = keep_last
        self.counts: Counter = Counter()
        self.failures: list[PersistenceFailure] = []

    def report_failure(self, operation: str, entity_type: str, error: BaseException) -> None:
        super().report_failure(operation, entity_type, error)
        failure = PersistenceFailure.from_exception(operation, entity_type, error)
        self.counts[(entity_type, operation)] += 1
        self.failures.append(failure)
        del self.failures[:-self._keep_last]

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class CompositePersistenceSink(PersistenceSink):

    def __init__(self, *sinks: PersistenceSink):
        self._sinks = sinks

    def report_failure(self, operation: str, entity_type: str, error: BaseException) -> None:
        for sink in self._sinks:
            sink.report_failure(operation, entity_type, error)
