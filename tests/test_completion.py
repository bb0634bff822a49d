"""
Tests for the completion use cases.

Provider, usage repository and dispatcher are mocked; the router and budget
guard are real.
"""
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from llm_orchestrator.core.catalog import ModelConfig, Provider
from llm_orchestrator.core.errors import (
    BudgetConstraintError,
    BudgetExceededError,
    NotFoundError,
    ValidationError,
)
from llm_orchestrator.core.guardrails import BudgetGuard, BudgetLimits
from llm_orchestrator.core.router import ModelRouter
from llm_orchestrator.core.token_counter import TokenUsage
from llm_orchestrator.ports import GenerateTextResponse, UsagePeriod
from llm_orchestrator.prompts import ManagedPrompt, PromptEnvironment, PromptVariable
from llm_orchestrator.usecases import (
    CompletionRequest,
    UsageRecorded,
    run_prompt_test,
    send_completion,
)
from llm_orchestrator.usecases.completion import build_messages, substitute_variables

PROMPT_ID = "3d9a0c5e-1b2f-4e6d-8a7c-9b0e1f2a3c4d"

CATALOG = [
    ModelConfig(Provider.OPENAI, "gpt-4o", 0.005, 0.015, frozenset({"text", "chat", "vision"}), 128000),
    ModelConfig(Provider.OPENAI, "gpt-4o-mini", 0.00015, 0.0006, frozenset({"text", "chat"}), 128000),
    ModelConfig(Provider.ANTHROPIC, "claude-haiku", 0.00025, 0.00125, frozenset({"text", "chat"}), 200000),
]


def make_response(model="gpt-4o-mini", content="Hi there", input_tokens=1000, output_tokens=500):
    return GenerateTextResponse(
        content=content,
        usage=TokenUsage(input_tokens, output_tokens),
        model=model,
        finish_reason="stop",
    )


def make_usage_repository(daily=0.0, monthly=0.0):
    totals = {UsagePeriod.DAY: daily, UsagePeriod.MONTH: monthly}
    repository = AsyncMock()
    repository.get_total_cost_by_user.side_effect = lambda user_id, period: totals[period]
    repository.get_total_cost_global.side_effect = lambda period: totals[period]
    return repository


class TestHelpers:
    """Test message building helpers."""

    def test_substitute_leaves_unknown_placeholders(self):
        """Test only supplied variables are replaced."""
        assert substitute_variables("{{a}} {{ b }}", {"a": 1}) == "1 {{ b }}"

    def test_build_messages_with_system_prompt(self):
        """Test the system message comes first."""
        messages = build_messages("question", "be brief")
        assert [m.role for m in messages] == ["system", "user"]

    def test_build_messages_without_system_prompt(self):
        """Test a lone user message."""
        assert [m.role for m in build_messages("question")] == ["user"]


class TestSendCompletion:
    """Test budget-checked completions."""

    def setup_method(self):
        """Set up collaborators."""
        self.router = ModelRouter(CATALOG)
        self.usage_repository = make_usage_repository()
        self.guard = BudgetGuard(self.usage_repository)
        self.provider = AsyncMock()
        self.provider.generate_text.return_value = make_response()
        self.dispatcher = AsyncMock()

    async def run(self, request):
        return await send_completion(
            request,
            self.router,
            self.guard,
            self.provider,
            self.usage_repository,
            self.dispatcher,
        )

    @pytest.mark.asyncio
    async def test_uses_cheapest_model(self):
        """Test the cheapest capable model serves the call and usage is recorded."""
        result = await self.run(CompletionRequest(prompt="Hello {{name}}", variables={"name": "Ada"}, user_id="u1"))

        assert result.content == "Hi there"
        assert result.provider is Provider.OPENAI
        assert result.cost.amount == pytest.approx(0.00015 + 0.5 * 0.0006)

        kwargs = self.provider.generate_text.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][-1].content == "Hello Ada"

        record = self.usage_repository.create.await_args.args[0]
        assert record.user_id == "u1"
        assert record.input_tokens == 1000
        assert record.cost == pytest.approx(result.cost.amount)

        events = self.dispatcher.dispatch_all.await_args.args[0]
        assert isinstance(events[0], UsageRecorded)

    @pytest.mark.asyncio
    async def test_prompt_key_recorded(self):
        """Test the originating prompt key is stored with the usage."""
        await self.run(CompletionRequest(prompt="Hello", user_id="u1", prompt_key="greeting"))

        record = self.usage_repository.create.await_args.args[0]
        assert record.prompt_key == "greeting"

    @pytest.mark.asyncio
    async def test_blank_prompt(self):
        """Test blank prompts are rejected before any call."""
        with pytest.raises(ValidationError):
            await self.run(CompletionRequest(prompt="  "))
        self.provider.generate_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_budget_refusal_skips_provider(self):
        """Test a refused budget raises with the snapshot attached."""
        self.usage_repository = make_usage_repository(daily=10.0, monthly=10.0)
        self.guard = BudgetGuard(self.usage_repository, BudgetLimits(daily=10.0, monthly=100.0))

        with pytest.raises(BudgetExceededError, match="Budget exceeded") as excinfo:
            await self.run(CompletionRequest(prompt="Hello", user_id="u1"))

        assert excinfo.value.snapshot.can_proceed is False
        self.provider.generate_text.assert_not_awaited()
        self.usage_repository.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_global_budget_without_user(self):
        """Test calls without a user are checked against global spend."""
        await self.run(CompletionRequest(prompt="Hello"))
        self.usage_repository.get_total_cost_global.assert_any_await(UsagePeriod.DAY)
        self.usage_repository.get_total_cost_by_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_router_budget_constraint(self):
        """Test an unsatisfiable max_budget fails before the provider call."""
        with pytest.raises(BudgetConstraintError):
            await self.run(CompletionRequest(prompt="Hello", max_budget=0.00001))
        self.provider.generate_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_usage_failure_is_logged_not_raised(self, caplog):
        """Test a ledger failure after delivery still returns the content."""
        self.usage_repository.create.side_effect = RuntimeError("ledger unavailable")

        with caplog.at_level(logging.ERROR):
            result = await self.run(CompletionRequest(prompt="Hello", user_id="u1"))

        assert result.content == "Hi there"
        assert "Failed to record usage" in caplog.text
        self.dispatcher.dispatch_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        """Test provider failures reach the caller and record nothing."""
        self.provider.generate_text.side_effect = RuntimeError("rate limited")

        with pytest.raises(RuntimeError, match="rate limited"):
            await self.run(CompletionRequest(prompt="Hello"))
        self.usage_repository.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_preferred_provider(self):
        """Test preferred providers narrow the choice."""
        self.provider.generate_text.return_value = make_response(model="claude-haiku")
        result = await self.run(CompletionRequest(prompt="Hello", providers=["anthropic"]))

        assert result.provider is Provider.ANTHROPIC
        assert self.provider.generate_text.await_args.kwargs["model"] == "claude-haiku"


class TestRunPromptTest:
    """Test one-off runs of stored prompts."""

    def setup_method(self):
        """Set up collaborators."""
        self.repository = AsyncMock()
        self.repository.find_by_id.return_value = ManagedPrompt(
            prompt_id=PROMPT_ID,
            key="greeting",
            name="Greeting",
            template="Hello {{name}}",
            variables=[PromptVariable("name")],
            version=2,
            environment=PromptEnvironment.DEVELOPMENT,
            is_active=True,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.router = ModelRouter(CATALOG)
        self.provider = AsyncMock()
        self.provider.generate_text.return_value = make_response()

    @pytest.mark.asyncio
    async def test_defaults_to_cheapest(self):
        """Test the cheapest model is used when nothing is requested."""
        result = await run_prompt_test(PROMPT_ID, {"name": "Ada"}, self.repository, self.router, self.provider)

        assert result.rendered_prompt == "Hello Ada"
        assert result.response == "Hi there"
        assert self.provider.generate_text.await_args.kwargs["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_provider_picks_first_enabled(self):
        """Test a provider name selects its first enabled model."""
        await run_prompt_test(
            PROMPT_ID, {"name": "Ada"}, self.repository, self.router, self.provider,
            provider_name="anthropic",
        )
        assert self.provider.generate_text.await_args.kwargs["model"] == "claude-haiku"

    @pytest.mark.asyncio
    async def test_explicit_model(self):
        """Test an explicit model wins."""
        result = await run_prompt_test(
            PROMPT_ID, {"name": "Ada"}, self.repository, self.router, self.provider,
            model="gpt-4o",
        )
        assert self.provider.generate_text.await_args.kwargs["model"] == "gpt-4o"
        assert result.cost.amount == pytest.approx(0.005 + 0.5 * 0.015)

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        """Test a provider without enabled models is reported."""
        with pytest.raises(NotFoundError, match="No enabled models found for provider"):
            await run_prompt_test(
                PROMPT_ID, {"name": "Ada"}, self.repository, self.router, self.provider,
                provider_name="google",
            )

    @pytest.mark.asyncio
    async def test_missing_variable(self):
        """Test rendering fails before any provider call."""
        with pytest.raises(ValidationError, match="Missing required variable: name"):
            await run_prompt_test(PROMPT_ID, {}, self.repository, self.router, self.provider)
        self.provider.generate_text.assert_not_awaited()
