"""
Analytics sinks.

Tracking is fire-and-forget: the orchestrator never waits on a sink and a
failing sink never changes what the machine does.
"""
import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class AnalyticsSink(Protocol):
    def track(self, event: str, properties: dict) -> None:
        ...


class NullAnalytics:
    """Default sink: drops everything."""

    def track(self, event: str, properties: dict) -> None:
        return None


class LoggingAnalytics:
    """Writes each tracked event to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def track(self, event: str, properties: dict) -> None:
        logger.log(self.level, "track %s %s", event, properties)
