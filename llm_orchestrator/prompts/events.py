"""
Events recorded by the ManagedPrompt aggregate.
"""

from dataclasses import dataclass, field
from datetime import datetime

from ..events.base import DomainEvent, utcnow


@dataclass(frozen=True)
class PromptCreated(DomainEvent):
    prompt_id: str
    key: str
    environment: str
    version: int
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PromptUpdated(DomainEvent):
    prompt_id: str
    key: str
    environment: str
    previous_version: int
    new_version: int
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PromptRolledBack(DomainEvent):
    prompt_id: str
    key: str
    environment: str
    rolled_back_from: int
    current_version: int
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PromptActivated(DomainEvent):
    prompt_id: str
    key: str
    environment: str
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PromptDeactivated(DomainEvent):
    prompt_id: str
    key: str
    environment: str
    occurred_at: datetime = field(default_factory=utcnow)
