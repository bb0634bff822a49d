"""
Model selection.

Chooses one catalog entry for a request given required capabilities, an
optional per-1K input price ceiling, optional preferred providers and a
selection strategy.

Filtering order:
1. Enabled entries whose capabilities cover the request
2. Budget ceiling on input price - failure here is reported as a budget problem
3. Preferred providers - narrows only when at least one candidate matches
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union

from .catalog import ModelConfig, Provider
from .errors import BudgetConstraintError, NoModelsAvailableError, ValidationError

logger = logging.getLogger(__name__)


class SelectionStrategy(Enum):
    """Policy applied to the filtered candidate set."""
    CHEAPEST = "cheapest"
    FASTEST = "fastest"
    ROUND_ROBIN = "round-robin"


@dataclass(frozen=True)
class CostPer1kTokens:
    """Estimated price per 1K tokens of a selected model."""
    input: float
    output: float


@dataclass(frozen=True)
class SelectedModel:
    """Outcome of a routing decision."""
    provider: Provider
    model: str
    estimated_cost_per_1k_tokens: CostPer1kTokens


class ModelRouter:
    """Select models from a fixed catalog.

    The only mutable state is the round-robin counter. It is shared by every
    call on the same instance, whatever filter produced the candidate set, so
    coverage is uneven when filters change between calls. Rotation state is
    per process; separate instances rotate independently.
    """

    def __init__(self, models: Iterable[ModelConfig]):
        self._models = tuple(models)
        self._round_robin_counter = 0
        self._lock = threading.Lock()

    def select_optimal_model(
        self,
        capabilities: Iterable[str] = (),
        strategy: Union[SelectionStrategy, str] = SelectionStrategy.CHEAPEST,
        max_budget: Optional[float] = None,
        preferred_providers: Optional[Sequence[Union[Provider, str]]] = None,
    ) -> SelectedModel:
        """Select a model for the given constraints.

        Args:
            capabilities: Capabilities the model must offer (empty matches all)
            strategy: Selection policy, as enum member or its value
            max_budget: Optional ceiling on cost per 1K input tokens
            preferred_providers: Providers to favour when any of them qualifies

        Returns:
            SelectedModel describing the chosen entry

        Raises:
            ValidationError: If the strategy is unknown
            BudgetConstraintError: If the budget ceiling excluded every candidate
            NoModelsAvailableError: If no enabled model offers the capabilities
        """
        strategy = _parse_strategy(strategy)
        required = frozenset(capabilities)

        candidates = [m for m in self._models if m.enabled and m.supports(required)]

        if max_budget is not None:
            within_budget = [m for m in candidates if m.cost_per_1k_in <= max_budget]
            if candidates and not within_budget:
                raise BudgetConstraintError(
                    f"No models available within the specified budget constraints "
                    f"(max {max_budget} per 1K input tokens)"
                )
            candidates = within_budget

        if preferred_providers:
            wanted = {_provider_value(p) for p in preferred_providers}
            preferred = [m for m in candidates if m.provider.value in wanted]
            if preferred:
                candidates = preferred
            elif candidates:
                logger.warning(
                    "No candidate from preferred providers %s, using all %d candidates",
                    sorted(wanted), len(candidates),
                )

        if not candidates:
            raise NoModelsAvailableError(
                f"No models available for requested capabilities: {sorted(required)}"
            )

        if strategy is SelectionStrategy.CHEAPEST:
            selected = min(candidates, key=lambda m: m.total_cost_per_1k)
        elif strategy is SelectionStrategy.FASTEST:
            # max_tokens stands in for latency; smaller context windows are faster
            selected = min(candidates, key=lambda m: m.max_tokens)
        else:
            selected = candidates[self._next_round_robin_index(len(candidates))]

        logger.debug(
            "Selected %s/%s with strategy %s from %d candidates",
            selected.provider.value, selected.model, strategy.value, len(candidates),
        )
        return SelectedModel(
            provider=selected.provider,
            model=selected.model,
            estimated_cost_per_1k_tokens=CostPer1kTokens(
                input=selected.cost_per_1k_in,
                output=selected.cost_per_1k_out,
            ),
        )

    def get_model_config(
        self, provider: Union[Provider, str], model: str
    ) -> Optional[ModelConfig]:
        """Exact lookup by provider and model name; disabled entries included."""
        provider_value = _provider_value(provider)
        for config in self._models:
            if config.provider.value == provider_value and config.model == model:
                return config
        return None

    def get_all_models(self) -> List[ModelConfig]:
        """Return copies of every catalog entry."""
        return [replace(m) for m in self._models]

    def _next_round_robin_index(self, size: int) -> int:
        with self._lock:
            self._round_robin_counter += 1
            return self._round_robin_counter % size


def _parse_strategy(strategy: Union[SelectionStrategy, str]) -> SelectionStrategy:
    if isinstance(strategy, SelectionStrategy):
        return strategy
    try:
        return SelectionStrategy(strategy)
    except ValueError:
        valid = [s.value for s in SelectionStrategy]
        raise ValidationError(f"Unknown strategy: {strategy}. Must be one of: {valid}")


def _provider_value(provider: Union[Provider, str]) -> str:
    return provider.value if isinstance(provider, Provider) else str(provider).lower()
