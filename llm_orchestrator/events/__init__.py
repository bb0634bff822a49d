"""
Domain events and their in-process delivery.
"""

from .base import DomainEvent
from .dispatcher import InMemoryEventDispatcher

__all__ = ["DomainEvent", "InMemoryEventDispatcher"]
