"""
Unit tests for the managed prompt aggregate.

Tests creation, versioning, rollback rules and template rendering.
"""

from datetime import datetime, timezone

import pytest

from llm_orchestrator.core.errors import AlreadyAtVersionError, ValidationError
from llm_orchestrator.prompts import (
    ManagedPrompt,
    PromptEnvironment,
    PromptVariable,
    PromptVersionSnapshot,
    VariableType,
    extract_variables,
    render_prompt,
)
from llm_orchestrator.prompts.models import render_template
from llm_orchestrator.prompts.events import (
    PromptActivated,
    PromptCreated,
    PromptDeactivated,
    PromptRolledBack,
    PromptUpdated,
)


def make_prompt(template="Hello {{name}}", **kwargs):
    return ManagedPrompt.create(key="greeting", name="Greeting", template=template, **kwargs)


class TestExtractVariables:
    """Test placeholder extraction."""

    def test_order_and_uniqueness(self):
        """Test names come back in order of first appearance."""
        assert extract_variables("{{b}} {{a}} {{b}} {{ c }}") == ["b", "a", "c"]

    def test_no_placeholders(self):
        """Test plain text has no variables."""
        assert extract_variables("Hello world") == []


class TestPromptVariable:
    """Test variable definitions."""

    def test_type_from_string(self):
        """Test type strings are converted."""
        assert PromptVariable("n", type="number").type is VariableType.NUMBER

    def test_invalid_type(self):
        """Test unknown types are rejected."""
        with pytest.raises(ValidationError, match="Variable type"):
            PromptVariable("n", type="date")

    def test_empty_name(self):
        """Test names are required."""
        with pytest.raises(ValidationError):
            PromptVariable("  ")


class TestCreate:
    """Test prompt creation."""

    def test_variables_extracted_from_template(self):
        """Test omitted variables are extracted as required strings."""
        prompt = make_prompt("Hello {{name}}, you are {{age}}")

        assert prompt.version == 1
        assert [v.name for v in prompt.variables] == ["name", "age"]
        assert all(v.required and v.type is VariableType.STRING for v in prompt.variables)
        assert prompt.environment is PromptEnvironment.DEVELOPMENT
        assert prompt.is_active is True

    def test_records_created_event(self):
        """Test a fresh prompt records exactly one PromptCreated."""
        prompt = make_prompt()

        events = prompt.pending_events
        assert len(events) == 1
        assert isinstance(events[0], PromptCreated)
        assert events[0].prompt_id == prompt.id
        assert events[0].version == 1
        assert events[0].environment == "development"

    def test_supplied_id_records_no_event(self):
        """Test creating with an existing identity records nothing."""
        prompt = make_prompt(prompt_id="6f1c1c4e-8a7d-4a55-9f0f-3f3a0d2d9b11")
        assert prompt.id == "6f1c1c4e-8a7d-4a55-9f0f-3f3a0d2d9b11"
        assert prompt.pending_events == ()

    def test_rehydration_records_no_event(self):
        """Test rebuilding from stored state records nothing."""
        prompt = ManagedPrompt(
            prompt_id="p-1",
            key="greeting",
            name="Greeting",
            template="Hi",
            variables=[],
            version=4,
            environment="staging",
            is_active=False,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert prompt.version == 4
        assert prompt.environment is PromptEnvironment.STAGING
        assert prompt.pending_events == ()

    def test_explicit_variables_keep_definitions(self):
        """Test supplied definitions are kept and gaps are filled."""
        prompt = make_prompt(
            "{{name}} {{tone}}",
            variables=[PromptVariable("tone", required=False, default_value="warm")],
        )
        by_name = {v.name: v for v in prompt.variables}
        assert by_name["tone"].required is False
        assert by_name["name"].required is True

    @pytest.mark.parametrize("key", ["Greeting", "greeting_v2", "-greeting", "greeting-", "a--b", ""])
    def test_invalid_keys(self, key):
        """Test keys must be lowercase slugs."""
        with pytest.raises(ValidationError, match="key"):
            ManagedPrompt.create(key=key, name="n", template="t")

    def test_key_length_limit(self):
        """Test keys longer than 100 characters are rejected."""
        with pytest.raises(ValidationError, match="at most 100"):
            ManagedPrompt.create(key="a" * 101, name="n", template="t")

    def test_empty_template(self):
        """Test templates must not be blank."""
        with pytest.raises(ValidationError, match="template"):
            make_prompt("   ")

    def test_name_is_trimmed(self):
        """Test names are stored without surrounding whitespace."""
        prompt = ManagedPrompt.create(key="k", name="  Name  ", template="t")
        assert prompt.name == "Name"

    def test_invalid_environment(self):
        """Test unknown environments are rejected."""
        with pytest.raises(ValidationError, match="Invalid environment"):
            make_prompt(environment="qa")


class TestUpdate:
    """Test versioned updates."""

    def test_update_increments_version(self):
        """Test a template change bumps the version and extracts new variables."""
        prompt = make_prompt("Hi {{name}}")
        prompt.clear_events()

        previous = prompt.update(template="Hi {{name}} from {{city}}")

        assert previous == 1
        assert prompt.version == 2
        assert [v.name for v in prompt.variables] == ["name", "city"]
        assert prompt.updated_at is not None
        event = prompt.pending_events[0]
        assert isinstance(event, PromptUpdated)
        assert (event.previous_version, event.new_version) == (1, 2)

    def test_empty_update_still_increments(self):
        """Test a no-op update still creates a new version."""
        prompt = make_prompt()
        prompt.update()
        prompt.update()
        assert prompt.version == 3

    def test_partial_update_keeps_other_fields(self):
        """Test omitted fields are left unchanged."""
        prompt = make_prompt(description="first")
        prompt.update(name="Renamed")

        assert prompt.name == "Renamed"
        assert prompt.description == "first"
        assert prompt.template == "Hello {{name}}"

    def test_omitted_variables_keep_definitions(self):
        """Test an update without variables keeps the existing definitions."""
        prompt = make_prompt(
            "{{name}} {{tone}}",
            variables=[PromptVariable("tone", required=False, default_value="warm")],
        )
        prompt.update(name="Renamed")

        assert {v.name: v.required for v in prompt.variables} == {"tone": False, "name": True}

    def test_empty_variables_replace_definitions(self):
        """Test an explicit empty list drops the old definitions."""
        prompt = make_prompt(
            "{{name}} {{tone}}",
            variables=[PromptVariable("tone", required=False, default_value="warm")],
        )
        prompt.update(variables=[])

        assert [v.name for v in prompt.variables] == ["name", "tone"]
        assert all(v.required for v in prompt.variables)

    def test_invalid_update_leaves_state(self):
        """Test a rejected update changes nothing."""
        prompt = make_prompt()
        prompt.clear_events()

        with pytest.raises(ValidationError):
            prompt.update(name="x" * 201)

        assert prompt.version == 1
        assert prompt.pending_events == ()


class TestRollback:
    """Test rollback rules."""

    def snapshot(self, prompt, version, template):
        return PromptVersionSnapshot(
            prompt_id=prompt.id,
            version=version,
            name="Old",
            description=None,
            template=template,
            variables=(PromptVariable("who"),),
        )

    def test_roll_back_restores_content(self):
        """Test rollback restores the snapshot and adopts its version number."""
        prompt = make_prompt()
        prompt.update(template="v2 {{name}}")
        prompt.update(template="v3 {{name}}")
        prompt.clear_events()

        rolled_back_from = prompt.roll_back_to(self.snapshot(prompt, 1, "Hi {{who}}"))

        assert rolled_back_from == 3
        assert prompt.version == 1
        assert prompt.template == "Hi {{who}}"
        assert prompt.name == "Old"
        event = prompt.pending_events[0]
        assert isinstance(event, PromptRolledBack)
        assert (event.rolled_back_from, event.current_version) == (3, 1)

    def test_same_version_rejected(self):
        """Test rolling back to the current version fails."""
        prompt = make_prompt()
        with pytest.raises(AlreadyAtVersionError, match="already at version 1"):
            prompt.ensure_can_roll_back(1)

    @pytest.mark.parametrize("target", [0, -2])
    def test_non_positive_target_rejected(self, target):
        """Test targets must be positive."""
        prompt = make_prompt()
        with pytest.raises(ValidationError, match="positive"):
            prompt.ensure_can_roll_back(target)


class TestActivation:
    """Test activation state changes."""

    def test_deactivate_then_activate(self):
        """Test each state change records one event."""
        prompt = make_prompt()
        prompt.clear_events()

        prompt.deactivate()
        prompt.deactivate()
        prompt.activate()

        types = [type(e) for e in prompt.pending_events]
        assert types == [PromptDeactivated, PromptActivated]
        assert prompt.is_active is True


class TestRender:
    """Test template rendering."""

    def test_render_all_values(self):
        """Test every placeholder is substituted."""
        prompt = make_prompt("Hello {{name}}, you are {{ age }}")
        assert render_prompt(prompt, {"name": "Ada", "age": 36}) == "Hello Ada, you are 36"

    def test_missing_required_variable(self):
        """Test the missing variable is named."""
        prompt = make_prompt("Hello {{name}}")
        with pytest.raises(ValidationError, match="Missing required variable: name"):
            prompt.render({})

    def test_optional_default_used(self):
        """Test optional variables fall back to their default."""
        prompt = make_prompt(
            "Say {{word}}",
            variables=[PromptVariable("word", required=False, default_value="hi")],
        )
        assert prompt.render({}) == "Say hi"

    def test_optional_without_default_keeps_placeholder(self):
        """Test optional variables without a default or value stay as written."""
        prompt = make_prompt(
            "[{{word}}]",
            variables=[PromptVariable("word", required=False)],
        )
        assert prompt.render({}) == "[{{word}}]"

    def test_unsupplied_optional_next_to_supplied_value(self):
        """Test only the unsupplied optional placeholder is left in place."""
        rendered = render_template(
            "Hi {{name}}{{ suffix }}",
            [PromptVariable("name"), PromptVariable("suffix", required=False)],
            {"name": "Bo"},
        )
        assert rendered == "Hi Bo{{suffix}}"

    def test_values_are_not_reinterpreted(self):
        """Test substituted values containing placeholders stay literal."""
        prompt = make_prompt("{{a}} and {{b}}")
        assert prompt.render({"a": "{{b}}", "b": "x"}) == "{{b}} and x"

    def test_extra_values_ignored(self):
        """Test values without a placeholder are ignored."""
        prompt = make_prompt("Hello {{name}}")
        assert prompt.render({"name": "Ada", "unused": 1}) == "Hello Ada"
