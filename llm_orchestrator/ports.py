"""
Contracts for the collaborators the core consumes.

Everything here is a structural ``Protocol``: repositories, providers and
dispatchers only need the right async methods, not a common base class.
All methods may raise; the core lets those errors propagate unchanged.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence

from .core.token_counter import TokenUsage

if TYPE_CHECKING:
    from .prompts.models import ManagedPrompt, PromptEnvironment, PromptVersionSnapshot
    from .storage.models import UsageRecord


class UsagePeriod(Enum):
    """Aggregation window for spend-to-date queries."""
    DAY = "day"
    MONTH = "month"


@dataclass(frozen=True)
class LLMMessage:
    """A single chat message sent to a provider."""
    role: str  # "system", "user" or "assistant"
    content: str


@dataclass(frozen=True)
class GenerateTextResponse:
    """Normalized result of a provider text generation call."""
    content: str
    usage: TokenUsage
    model: str
    finish_reason: str


class TokenEstimator(Protocol):
    async def estimate(self, text: str) -> int:
        """Return the estimated token count of ``text``."""


class ModelProvider(Protocol):
    async def generate_text(
        self,
        model: str,
        messages: Sequence[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateTextResponse:
        """Run a text generation call against ``model``."""


class UsageRepository(Protocol):
    async def get_total_cost_by_user(self, user_id: str, period: UsagePeriod) -> float:
        """Return spend-to-date for ``user_id`` in the current period."""

    async def get_total_cost_global(self, period: UsagePeriod) -> float:
        """Return spend-to-date across all users in the current period."""

    async def create(self, record: "UsageRecord") -> None:
        """Append a usage record to the ledger."""


class PromptRepository(Protocol):
    async def find_by_key(
        self, key: str, environment: "PromptEnvironment"
    ) -> Optional["ManagedPrompt"]:
        """Return the prompt stored under ``key`` in ``environment``, if any."""

    async def find_by_id(self, prompt_id: str) -> Optional["ManagedPrompt"]:
        """Return the prompt with ``prompt_id``, if any."""

    async def create(self, prompt: "ManagedPrompt") -> None:
        """Persist a new prompt together with its version 1 snapshot."""

    async def update(self, prompt: "ManagedPrompt") -> None:
        """Persist the prompt's current state and snapshot its current version.

        After a rollback the new version number may already be stored; that
        snapshot is replaced by the current content.
        """

    async def activate_version(self, prompt_id: str, version: int) -> None:
        """Make a stored version current. Raises NotFoundError if it is missing."""

    async def get_version_history(self, prompt_id: str) -> List["PromptVersionSnapshot"]:
        """Return every stored version of the prompt, oldest first."""


class EventDispatcher(Protocol):
    async def dispatch_all(self, events: Sequence[object]) -> None:
        """Deliver ``events`` to subscribed handlers."""
