"""
Data models for the storage layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..events.base import utcnow


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one model call for spend tracking.

    Append-only: once written, a record is never modified.
    """
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    currency: str = "USD"
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    prompt_key: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
