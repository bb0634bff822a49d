"""
Model catalog.

Static description of the models the router may choose from. A catalog is a
plain tuple of immutable ModelConfig entries; it is owned by configuration and
never mutated by the router.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple


class Provider(Enum):
    """Model providers the core knows how to route to."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


@dataclass(frozen=True)
class ModelConfig:
    """Pricing, limits and capabilities of a single catalog entry."""
    provider: Provider
    model: str
    cost_per_1k_in: float  # Cost per 1K input tokens
    cost_per_1k_out: float  # Cost per 1K output tokens
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    max_tokens: int = 4096
    enabled: bool = True

    def __post_init__(self):
        """Normalize provider and capabilities, then validate the entry."""
        if not isinstance(self.provider, Provider):
            try:
                object.__setattr__(self, "provider", Provider(str(self.provider).lower()))
            except ValueError:
                valid = [p.value for p in Provider]
                raise ValueError(f"provider must be one of: {valid}")
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))

        if not self.model or not self.model.strip():
            raise ValueError("model is required and cannot be empty")
        if self.cost_per_1k_in < 0:
            raise ValueError("cost_per_1k_in must be >= 0")
        if self.cost_per_1k_out < 0:
            raise ValueError("cost_per_1k_out must be >= 0")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")

    @property
    def total_cost_per_1k(self) -> float:
        """Combined input and output price per 1K tokens."""
        return self.cost_per_1k_in + self.cost_per_1k_out

    def supports(self, capabilities: Iterable[str]) -> bool:
        """Return True when this entry offers every requested capability."""
        return self.capabilities.issuperset(capabilities)


def find_model(
    catalog: Iterable[ModelConfig],
    model: str,
    provider: Optional[Provider] = None,
) -> Optional[ModelConfig]:
    """Return the first entry named ``model`` (optionally of ``provider``)."""
    for config in catalog:
        if config.model == model and (provider is None or config.provider == provider):
            return config
    return None


_CHAT = {"text", "chat", "vision"}

# Default catalog, overridable from the YAML configuration
DEFAULT_MODEL_CATALOG: Tuple[ModelConfig, ...] = (
    ModelConfig(Provider.OPENAI, "gpt-4o", 0.0025, 0.01,
                frozenset(_CHAT | {"json", "function-calling"}), 128000),
    ModelConfig(Provider.OPENAI, "gpt-4o-mini", 0.00015, 0.0006,
                frozenset(_CHAT | {"json", "function-calling"}), 128000),
    ModelConfig(Provider.OPENAI, "gpt-4-turbo", 0.01, 0.03,
                frozenset(_CHAT | {"json", "function-calling"}), 128000),
    ModelConfig(Provider.ANTHROPIC, "claude-3-5-sonnet-20241022", 0.003, 0.015,
                frozenset(_CHAT), 200000),
    ModelConfig(Provider.ANTHROPIC, "claude-3-5-haiku-20241022", 0.001, 0.005,
                frozenset(_CHAT), 200000),
    ModelConfig(Provider.ANTHROPIC, "claude-3-opus-20240229", 0.015, 0.075,
                frozenset(_CHAT), 200000),
    ModelConfig(Provider.GOOGLE, "gemini-1.5-pro", 0.00125, 0.005,
                frozenset(_CHAT), 2097152),
    ModelConfig(Provider.GOOGLE, "gemini-1.5-flash", 0.000075, 0.0003,
                frozenset(_CHAT), 1048576),
)
