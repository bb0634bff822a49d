"""
Completion use cases.

Call order for a completion:
1. Validate input and substitute variables
2. Select a model and resolve its catalog entry
3. Check the budget for the estimated cost
4. Call the provider
5. Record usage - failures are logged, never raised, since content was delivered

Budget checks and model selection finish before the provider call starts.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence

from ..core.catalog import ModelConfig, Provider
from ..core.errors import BudgetExceededError, NotFoundError, ValidationError
from ..core.guardrails import BudgetGuard
from ..core.pricing import Cost, calculate_cost, estimate_text_cost
from ..core.router import ModelRouter, SelectedModel, SelectionStrategy
from ..core.token_counter import CharacterTokenEstimator, TokenUsage
from ..events.base import DomainEvent, utcnow
from ..ports import (
    EventDispatcher,
    LLMMessage,
    ModelProvider,
    PromptRepository,
    TokenEstimator,
    UsageRepository,
)
from ..prompts.models import PLACEHOLDER_PATTERN
from ..storage.models import UsageRecord
from .prompts import find_prompt_or_fail

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = ("text",)


@dataclass(frozen=True)
class UsageRecorded(DomainEvent):
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CompletionRequest:
    """Input of a completion call."""
    prompt: str
    system_prompt: Optional[str] = None
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    prompt_key: Optional[str] = None  # Managed prompt the text came from, if any
    variables: Mapping[str, Any] = field(default_factory=dict)
    capabilities: Sequence[str] = DEFAULT_CAPABILITIES
    max_budget: Optional[float] = None
    providers: Optional[Sequence[str]] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    provider: Provider
    usage: TokenUsage
    cost: Cost


@dataclass(frozen=True)
class PromptTestResult:
    rendered_prompt: str
    response: str
    model: str
    provider: Provider
    usage: TokenUsage
    cost: Cost


def substitute_variables(prompt: str, variables: Mapping[str, Any]) -> str:
    """Replace supplied ``{{name}}`` placeholders; unknown ones are left as is."""
    def _replace(match):
        name = match.group(1).strip()
        return str(variables[name]) if name in variables else match.group(0)
    return PLACEHOLDER_PATTERN.sub(_replace, prompt)


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[LLMMessage]:
    messages = []
    if system_prompt:
        messages.append(LLMMessage(role="system", content=system_prompt))
    messages.append(LLMMessage(role="user", content=prompt))
    return messages


def resolve_model_config(router: ModelRouter, selected: SelectedModel) -> ModelConfig:
    config = router.get_model_config(selected.provider, selected.model)
    if config is None:
        raise NotFoundError(f"Model config not found for {selected.provider.value}/{selected.model}")
    return config


async def record_usage(
    record: UsageRecord,
    usage_repository: UsageRepository,
    dispatcher: EventDispatcher,
) -> bool:
    """Persist a usage record and announce it.

    Never raises: the completion it belongs to has already been delivered.

    Returns:
        True when the record was stored and the event dispatched
    """
    try:
        await usage_repository.create(record)
        await dispatcher.dispatch_all([UsageRecorded(
            provider=record.provider,
            model=record.model,
            input_tokens=record.input_tokens,
            output_tokens=record.output_tokens,
            cost=record.cost,
            user_id=record.user_id,
            conversation_id=record.conversation_id,
        )])
    except Exception:
        logger.exception(
            "Failed to record usage for %s/%s (user=%s)",
            record.provider, record.model, record.user_id,
        )
        return False
    return True


async def send_completion(
    request: CompletionRequest,
    router: ModelRouter,
    budget_guard: BudgetGuard,
    provider: ModelProvider,
    usage_repository: UsageRepository,
    dispatcher: EventDispatcher,
    token_estimator: Optional[TokenEstimator] = None,
) -> CompletionResult:
    """Run a budget-checked completion on the cheapest suitable model.

    Raises:
        ValidationError: If the prompt is blank
        BudgetConstraintError, NoModelsAvailableError: If no model qualifies
        BudgetExceededError: If the budget guard refuses the estimated cost
        Repository, estimator and provider errors: Propagated without modification
    """
    if not request.prompt or not request.prompt.strip():
        raise ValidationError("Prompt is required and cannot be empty")

    selected = router.select_optimal_model(
        capabilities=request.capabilities,
        strategy=SelectionStrategy.CHEAPEST,
        max_budget=request.max_budget,
        preferred_providers=request.providers,
    )
    config = resolve_model_config(router, selected)

    prompt = substitute_variables(request.prompt, request.variables)
    messages = build_messages(prompt, request.system_prompt)

    estimator = token_estimator or CharacterTokenEstimator()
    tokens = await estimator.estimate("\n".join(m.content for m in messages))
    estimated_cost = estimate_text_cost(config, tokens)

    snapshot = await budget_guard.check_budget(request.user_id, estimated_cost)
    if not snapshot.can_proceed:
        raise BudgetExceededError(
            f"Budget exceeded: estimated cost ${estimated_cost:.4f} with "
            f"${snapshot.remaining_budget.daily:.4f} daily and "
            f"${snapshot.remaining_budget.monthly:.4f} monthly remaining",
            snapshot=snapshot,
        )

    response = await provider.generate_text(
        model=selected.model,
        messages=messages,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
    )
    cost = calculate_cost(config, response.usage)

    await record_usage(
        UsageRecord(
            provider=selected.provider.value,
            model=selected.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            cost=cost.amount,
            currency=cost.currency,
            user_id=request.user_id,
            conversation_id=request.conversation_id,
            prompt_key=request.prompt_key,
        ),
        usage_repository,
        dispatcher,
    )

    return CompletionResult(
        content=response.content,
        model=response.model,
        provider=selected.provider,
        usage=response.usage,
        cost=cost,
    )


def _choose_test_model(
    router: ModelRouter,
    provider: Optional[str],
    model: Optional[str],
) -> ModelConfig:
    catalog = router.get_all_models()
    if model:
        for config in catalog:
            if config.model == model and (not provider or config.provider.value == provider):
                return config
        raise NotFoundError(f"Model '{model}' not found")
    if provider:
        for config in catalog:
            if config.enabled and config.provider.value == provider:
                return config
        raise NotFoundError(f"No enabled models found for provider '{provider}'")
    return resolve_model_config(router, router.select_optimal_model())


async def run_prompt_test(
    prompt_id: str,
    variables: Mapping[str, Any],
    repository: PromptRepository,
    router: ModelRouter,
    provider: ModelProvider,
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
) -> PromptTestResult:
    """Render a stored prompt and run it once against a model.

    The model is the named ``model`` if given, else the first enabled model of
    ``provider_name``, else the cheapest enabled model. Usage is not recorded.

    Raises:
        ValidationError: If the id is malformed or a required variable is missing
        NotFoundError: If the prompt or the requested model does not exist
        Provider errors: Propagated without modification
    """
    prompt = await find_prompt_or_fail(prompt_id, repository)
    rendered = prompt.render(variables)
    config = _choose_test_model(router, provider_name, model)

    response = await provider.generate_text(
        model=config.model,
        messages=build_messages(rendered),
    )
    return PromptTestResult(
        rendered_prompt=rendered,
        response=response.content,
        model=response.model,
        provider=config.provider,
        usage=response.usage,
        cost=calculate_cost(config, response.usage),
    )
