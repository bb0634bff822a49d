"""
Base type for domain events.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent:
    """Marker base class for events recorded by aggregates.

    Concrete events are frozen dataclasses. Handlers subscribe by
    ``event_type``, which is the concrete class name.
    """

    @property
    def event_type(self) -> str:
        return type(self).__name__
