"""
Managed prompt aggregate.

A ManagedPrompt is a template with typed ``{{name}}`` placeholders, scoped to
an environment and versioned. Version transitions:

1. Create - version is 1, PromptCreated is recorded for new identities only
2. Update - version + 1 on every call, even when nothing changed
3. Rollback - version becomes the restored version's number; nothing is minted

Historical snapshots are stored by the repository, not by the aggregate.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..core.errors import AlreadyAtVersionError, ValidationError
from ..events.base import DomainEvent, utcnow
from .events import (
    PromptActivated,
    PromptCreated,
    PromptDeactivated,
    PromptRolledBack,
    PromptUpdated,
)

KEY_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")

MAX_KEY_LENGTH = 100
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000


class PromptEnvironment(Enum):
    """Deployment environment a prompt belongs to."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class VariableType(Enum):
    """Declared type of a template variable."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class PromptVariable:
    """Definition of one template variable."""
    name: str
    type: VariableType = VariableType.STRING
    required: bool = True
    default_value: Optional[str] = None  # Only used when required is False

    def __post_init__(self):
        """Normalize the type and validate the definition."""
        if not self.name or not self.name.strip():
            raise ValidationError("Variable name must not be empty")
        if not isinstance(self.type, VariableType):
            try:
                object.__setattr__(self, "type", VariableType(self.type))
            except ValueError:
                valid = [t.value for t in VariableType]
                raise ValidationError(f"Variable type must be one of: {valid}")


@dataclass(frozen=True)
class PromptVersionSnapshot:
    """Content of a prompt as it was at one version."""
    prompt_id: str
    version: int
    name: str
    description: Optional[str]
    template: str
    variables: Tuple[PromptVariable, ...]
    created_at: datetime = field(default_factory=utcnow)


def extract_variables(template: str) -> List[str]:
    """Return placeholder names in order of first appearance, without duplicates."""
    names: List[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        name = match.group(1).strip()
        if name and name not in names:
            names.append(name)
    return names


def synthesize_variables(
    template: str,
    variables: Optional[Sequence[PromptVariable]] = None,
) -> Tuple[PromptVariable, ...]:
    """Add a required string variable for every placeholder lacking a definition."""
    result = list(variables or ())
    defined = {v.name for v in result}
    for name in extract_variables(template):
        if name not in defined:
            result.append(PromptVariable(name=name))
    return tuple(result)


def render_template(
    template: str,
    definitions: Sequence[PromptVariable],
    values: Mapping[str, Any],
) -> str:
    """Substitute ``{{name}}`` placeholders in a single literal pass.

    A supplied value wins; otherwise an optional variable falls back to its
    default, and one without a default keeps its placeholder as written. A
    required variable, or a placeholder with no definition, must be supplied.

    Raises:
        ValidationError: Naming the first missing required variable
    """
    by_name = {v.name: v for v in definitions}

    for definition in definitions:
        if definition.required and definition.name not in values:
            raise ValidationError(f"Missing required variable: {definition.name}")

    resolved = {}
    for name in extract_variables(template):
        if name in values:
            resolved[name] = str(values[name])
            continue
        definition = by_name.get(name)
        if definition is None or definition.required:
            raise ValidationError(f"Missing required variable: {name}")
        if definition.default_value is not None:
            resolved[name] = definition.default_value
        else:
            resolved[name] = f"{{{{{name}}}}}"

    return PLACEHOLDER_PATTERN.sub(lambda m: resolved[m.group(1).strip()], template)


def validate_key(key: str) -> str:
    if not key:
        raise ValidationError("Prompt key must not be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"Prompt key must be at most {MAX_KEY_LENGTH} characters")
    if not KEY_PATTERN.match(key):
        raise ValidationError(
            "Prompt key must be lowercase letters, numbers, and hyphens only (slug format)"
        )
    return key


def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Prompt name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Prompt name must be at most {MAX_NAME_LENGTH} characters")
    return name


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Prompt description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    return description or None


def _validate_template(template: str) -> str:
    if not template or not template.strip():
        raise ValidationError("Prompt template must not be empty")
    return template


def parse_environment(environment) -> PromptEnvironment:
    if isinstance(environment, PromptEnvironment):
        return environment
    try:
        return PromptEnvironment(environment)
    except ValueError:
        raise ValidationError(
            "Invalid environment. Must be 'development', 'staging', or 'production'"
        )


class ManagedPrompt:
    """Versioned, environment-scoped prompt template.

    Events are buffered on the instance until the caller has dispatched
    them and calls ``clear_events``. Key uniqueness per environment is
    enforced by the create use case, not here.
    """

    def __init__(
        self,
        prompt_id: str,
        key: str,
        name: str,
        template: str,
        variables: Sequence[PromptVariable],
        version: int,
        environment: PromptEnvironment,
        is_active: bool,
        created_at: datetime,
        description: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Rebuild a prompt from stored state. Records no events."""
        if version < 1:
            raise ValidationError("version must be >= 1")
        self.id = prompt_id
        self.key = key
        self.name = name
        self.description = description
        self.template = template
        self.variables = tuple(variables)
        self.version = version
        self.environment = parse_environment(environment)
        self.is_active = is_active
        self.created_at = created_at
        self.updated_at = updated_at
        self._events: List[DomainEvent] = []

    @classmethod
    def create(
        cls,
        key: str,
        name: str,
        template: str,
        variables: Optional[Sequence[PromptVariable]] = None,
        description: Optional[str] = None,
        environment=PromptEnvironment.DEVELOPMENT,
        is_active: bool = True,
        prompt_id: Optional[str] = None,
    ) -> "ManagedPrompt":
        """Create a prompt at version 1.

        When ``variables`` is omitted or empty they are extracted from the
        template as required string variables. PromptCreated is recorded only
        when no ``prompt_id`` is supplied.

        Raises:
            ValidationError: If key, name, template, description or environment is invalid
        """
        template = _validate_template(template)
        prompt = cls(
            prompt_id=prompt_id or str(uuid.uuid4()),
            key=validate_key(key),
            name=_validate_name(name),
            description=_validate_description(description),
            template=template,
            variables=synthesize_variables(template, variables),
            version=1,
            environment=parse_environment(environment),
            is_active=is_active,
            created_at=utcnow(),
        )
        if prompt_id is None:
            prompt._record(PromptCreated(
                prompt_id=prompt.id,
                key=prompt.key,
                environment=prompt.environment.value,
                version=prompt.version,
            ))
        return prompt

    @property
    def pending_events(self) -> Tuple[DomainEvent, ...]:
        return tuple(self._events)

    def clear_events(self) -> None:
        self._events.clear()

    def _record(self, event: DomainEvent) -> None:
        self._events.append(event)

    def update(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        template: Optional[str] = None,
        variables: Optional[Sequence[PromptVariable]] = None,
    ) -> int:
        """Apply a partial update and bump the version.

        The version is incremented even if no field changes. Omitted
        ``variables`` keep the existing definitions, a supplied list replaces
        them; either way placeholders lacking a definition are added.

        Returns:
            The version before the update
        """
        new_name = _validate_name(name) if name is not None else self.name
        new_description = (
            _validate_description(description) if description is not None else self.description
        )
        new_template = _validate_template(template) if template is not None else self.template
        base_variables = variables if variables is not None else self.variables

        previous_version = self.version
        self.name = new_name
        self.description = new_description
        self.template = new_template
        self.variables = synthesize_variables(new_template, base_variables)
        self.version = previous_version + 1
        self.updated_at = utcnow()

        self._record(PromptUpdated(
            prompt_id=self.id,
            key=self.key,
            environment=self.environment.value,
            previous_version=previous_version,
            new_version=self.version,
        ))
        return previous_version

    def ensure_can_roll_back(self, target_version: int) -> None:
        """Validate a rollback target without touching state.

        Raises:
            ValidationError: If the target is not a positive number
            AlreadyAtVersionError: If the prompt is already at the target
        """
        if target_version <= 0:
            raise ValidationError("Target version must be a positive number")
        if target_version == self.version:
            raise AlreadyAtVersionError(f"Prompt is already at version {target_version}")

    def roll_back_to(self, snapshot: PromptVersionSnapshot) -> int:
        """Restore the content of a stored version as current.

        Returns:
            The version before the rollback
        """
        self.ensure_can_roll_back(snapshot.version)

        rolled_back_from = self.version
        self.name = snapshot.name
        self.description = snapshot.description
        self.template = snapshot.template
        self.variables = tuple(snapshot.variables)
        self.version = snapshot.version
        self.updated_at = utcnow()

        self._record(PromptRolledBack(
            prompt_id=self.id,
            key=self.key,
            environment=self.environment.value,
            rolled_back_from=rolled_back_from,
            current_version=self.version,
        ))
        return rolled_back_from

    def activate(self) -> None:
        if self.is_active:
            return
        self.is_active = True
        self.updated_at = utcnow()
        self._record(PromptActivated(self.id, self.key, self.environment.value))

    def deactivate(self) -> None:
        if not self.is_active:
            return
        self.is_active = False
        self.updated_at = utcnow()
        self._record(PromptDeactivated(self.id, self.key, self.environment.value))

    def render(self, values: Mapping[str, Any]) -> str:
        return render_template(self.template, self.variables, values)

    def snapshot(self) -> PromptVersionSnapshot:
        """Capture the current content as a version snapshot."""
        return PromptVersionSnapshot(
            prompt_id=self.id,
            version=self.version,
            name=self.name,
            description=self.description,
            template=self.template,
            variables=self.variables,
            created_at=self.updated_at or self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<ManagedPrompt(key='{self.key}', environment='{self.environment.value}', "
            f"version={self.version})>"
        )


def render_prompt(prompt: ManagedPrompt, variables: Mapping[str, Any]) -> str:
    """Render ``prompt`` with ``variables``.

    Raises:
        ValidationError: If a required variable is missing
    """
    return prompt.render(variables)
