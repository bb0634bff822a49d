"""
Pricing calculations and cost estimation.

Prices completed calls from reported usage and estimates the cost of text
that has not been sent yet, either for one model or as a range over the
enabled catalog.
"""

from dataclasses import dataclass
from typing import Optional

from .catalog import ModelConfig, find_model
from .errors import NoModelsAvailableError, NotFoundError, ValidationError
from .router import ModelRouter
from .token_counter import TokenUsage
from ..ports import TokenEstimator

CURRENCY = "USD"


@dataclass(frozen=True)
class Cost:
    """An amount of money."""
    amount: float
    currency: str = CURRENCY


@dataclass(frozen=True)
class CostRange:
    """Estimated cost bounds across one or more models."""
    min: float
    max: float
    currency: str = CURRENCY


@dataclass(frozen=True)
class CostEstimate:
    """Token estimate and cost range for a piece of text."""
    estimated_tokens: int
    estimated_cost: CostRange


def calculate_cost(config: ModelConfig, usage: TokenUsage) -> Cost:
    """Price a completed call from its reported token usage.

    Args:
        config: Catalog entry of the model that served the call
        usage: Token usage reported by the provider

    Returns:
        Cost of the call (unrounded)
    """
    input_cost = (usage.input_tokens / 1000) * config.cost_per_1k_in
    output_cost = (usage.output_tokens / 1000) * config.cost_per_1k_out
    return Cost(amount=input_cost + output_cost)


def estimate_text_cost(config: ModelConfig, tokens: int) -> float:
    """Cost of ``tokens`` counted once as input and once as output."""
    return (tokens / 1000) * config.cost_per_1k_in + (tokens / 1000) * config.cost_per_1k_out


class CostEstimator:
    """Estimate the cost of text against the router's catalog."""

    def __init__(self, router: ModelRouter, token_estimator: TokenEstimator):
        self.router = router
        self.token_estimator = token_estimator

    async def estimate_cost(self, text: str, model: Optional[str] = None) -> CostEstimate:
        """Estimate the cost of sending ``text``.

        Args:
            text: Text to estimate; must not be blank
            model: Optional model name; when given, min and max are that model's cost

        Returns:
            CostEstimate with the token count and a USD cost range

        Raises:
            ValidationError: If text is blank
            NotFoundError: If ``model`` is not in the catalog
            NoModelsAvailableError: If the catalog has no enabled model
        """
        if not text or not text.strip():
            raise ValidationError("text is required and cannot be empty")

        tokens = await self.token_estimator.estimate(text)
        catalog = self.router.get_all_models()

        if model is not None:
            config = find_model(catalog, model)
            if config is None:
                raise NotFoundError(f"Model '{model}' not found")
            cost = estimate_text_cost(config, tokens)
            return CostEstimate(tokens, CostRange(min=cost, max=cost))

        costs = [estimate_text_cost(m, tokens) for m in catalog if m.enabled]
        if not costs:
            raise NoModelsAvailableError("No models available for cost estimation")
        return CostEstimate(tokens, CostRange(min=min(costs), max=max(costs)))
