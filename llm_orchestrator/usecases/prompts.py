"""
Managed prompt use cases.

Create, update and roll back prompts, then dispatch the events the aggregate
recorded. Dispatch is part of these operations: if it fails the error
propagates and the events stay pending on the aggregate.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Union

from ..core.errors import DuplicatePromptError, NotFoundError, ValidationError
from ..ports import EventDispatcher, PromptRepository
from ..prompts.models import (
    ManagedPrompt,
    PromptEnvironment,
    PromptVariable,
    PromptVersionSnapshot,
    parse_environment,
    validate_key,
)

logger = logging.getLogger(__name__)

VariableInput = Union[PromptVariable, Mapping[str, Any]]


@dataclass(frozen=True)
class PromptDetails:
    """Read model of a managed prompt."""
    id: str
    key: str
    name: str
    description: Optional[str]
    template: str
    variables: Sequence[PromptVariable]
    version: int
    environment: PromptEnvironment
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]

    @classmethod
    def from_prompt(cls, prompt: ManagedPrompt) -> "PromptDetails":
        return cls(
            id=prompt.id,
            key=prompt.key,
            name=prompt.name,
            description=prompt.description,
            template=prompt.template,
            variables=prompt.variables,
            version=prompt.version,
            environment=prompt.environment,
            is_active=prompt.is_active,
            created_at=prompt.created_at,
            updated_at=prompt.updated_at,
        )


@dataclass(frozen=True)
class PromptUpdateResult:
    prompt: PromptDetails
    previous_version: int

    @property
    def version(self) -> int:
        return self.prompt.version


@dataclass(frozen=True)
class PromptRollbackResult:
    id: str
    key: str
    name: str
    current_version: int
    rolled_back_from: int
    updated_at: Optional[datetime]


def parse_prompt_id(prompt_id: str) -> str:
    """Validate a prompt id and return it in canonical form.

    Raises:
        ValidationError: If the id is empty or not a UUID
    """
    if not prompt_id or not prompt_id.strip():
        raise ValidationError("Prompt ID is required")
    try:
        return str(uuid.UUID(prompt_id))
    except ValueError:
        raise ValidationError("Invalid prompt ID format")


def build_variables(inputs: Optional[Sequence[VariableInput]]) -> Optional[List[PromptVariable]]:
    """Turn variable definitions given as mappings into PromptVariable objects."""
    if inputs is None:
        return None
    variables = []
    for item in inputs:
        if isinstance(item, PromptVariable):
            variables.append(item)
            continue
        try:
            variables.append(PromptVariable(
                name=item["name"],
                type=item.get("type", "string"),
                required=item.get("required", True),
                default_value=item.get("default_value"),
            ))
        except KeyError:
            raise ValidationError("Variable name must not be empty")
    return variables


async def find_prompt_or_fail(prompt_id: str, repository: PromptRepository) -> ManagedPrompt:
    """Fetch a prompt by id.

    Raises:
        ValidationError: If the id is malformed
        NotFoundError: If no prompt has that id
    """
    prompt_id = parse_prompt_id(prompt_id)
    prompt = await repository.find_by_id(prompt_id)
    if prompt is None:
        raise NotFoundError(f"Prompt with ID '{prompt_id}' not found")
    return prompt


async def _dispatch_pending(prompt: ManagedPrompt, dispatcher: EventDispatcher) -> None:
    await dispatcher.dispatch_all(list(prompt.pending_events))
    prompt.clear_events()


async def create_managed_prompt(
    key: str,
    name: str,
    template: str,
    repository: PromptRepository,
    dispatcher: EventDispatcher,
    description: Optional[str] = None,
    variables: Optional[Sequence[VariableInput]] = None,
    environment: Union[PromptEnvironment, str] = PromptEnvironment.DEVELOPMENT,
) -> PromptDetails:
    """Create a prompt at version 1 in an environment.

    Args:
        key: Slug identifying the prompt within its environment
        name: Human-readable name
        template: Template text with ``{{name}}`` placeholders
        repository: Prompt storage
        dispatcher: Receives PromptCreated
        description: Optional description
        variables: Variable definitions; extracted from the template when omitted
        environment: Target environment

    Returns:
        PromptDetails of the new prompt

    Raises:
        ValidationError: If any field is invalid
        DuplicatePromptError: If the key is already used in the environment
        Repository and dispatcher errors: Propagated without modification
    """
    validate_key(key)
    environment = parse_environment(environment)
    definitions = build_variables(variables)

    existing = await repository.find_by_key(key, environment)
    if existing is not None:
        raise DuplicatePromptError(
            f"Prompt with key '{key}' already exists in {environment.value}"
        )

    prompt = ManagedPrompt.create(
        key=key,
        name=name,
        template=template,
        variables=definitions,
        description=description,
        environment=environment,
    )
    await repository.create(prompt)
    await _dispatch_pending(prompt, dispatcher)

    logger.info("Created prompt %s (%s/%s) at version 1", prompt.id, environment.value, key)
    return PromptDetails.from_prompt(prompt)


async def update_managed_prompt(
    prompt_id: str,
    repository: PromptRepository,
    dispatcher: EventDispatcher,
    name: Optional[str] = None,
    description: Optional[str] = None,
    template: Optional[str] = None,
    variables: Optional[Sequence[VariableInput]] = None,
) -> PromptUpdateResult:
    """Apply a partial update; the version always moves forward by one.

    Raises:
        ValidationError: If the id or any supplied field is invalid
        NotFoundError: If the prompt does not exist
        Repository and dispatcher errors: Propagated without modification
    """
    definitions = build_variables(variables)
    prompt = await find_prompt_or_fail(prompt_id, repository)

    previous_version = prompt.update(
        name=name,
        description=description,
        template=template,
        variables=definitions,
    )
    await repository.update(prompt)
    await _dispatch_pending(prompt, dispatcher)

    logger.info("Updated prompt %s from version %d to %d", prompt.id, previous_version, prompt.version)
    return PromptUpdateResult(PromptDetails.from_prompt(prompt), previous_version)


async def rollback_managed_prompt(
    prompt_id: str,
    target_version: int,
    repository: PromptRepository,
    dispatcher: EventDispatcher,
) -> PromptRollbackResult:
    """Make a previously stored version current again.

    The repository copies the stored snapshot; no new version number is minted.

    Raises:
        ValidationError: If the id is malformed or the target is not positive
        NotFoundError: If the prompt or the target version does not exist
        AlreadyAtVersionError: If the prompt is already at the target version
        Repository and dispatcher errors: Propagated without modification
    """
    if target_version <= 0:
        raise ValidationError("Target version must be a positive number")

    prompt = await find_prompt_or_fail(prompt_id, repository)
    prompt.ensure_can_roll_back(target_version)

    history = await repository.get_version_history(prompt.id)
    snapshot = next((s for s in history if s.version == target_version), None)
    if snapshot is None:
        raise NotFoundError(f"Version {target_version} not found for prompt '{prompt.id}'")

    await repository.activate_version(prompt.id, target_version)
    rolled_back_from = prompt.roll_back_to(snapshot)
    await _dispatch_pending(prompt, dispatcher)

    logger.info("Rolled back prompt %s from version %d to %d", prompt.id, rolled_back_from, target_version)
    return PromptRollbackResult(
        id=prompt.id,
        key=prompt.key,
        name=prompt.name,
        current_version=prompt.version,
        rolled_back_from=rolled_back_from,
        updated_at=prompt.updated_at,
    )


async def get_managed_prompt(prompt_id: str, repository: PromptRepository) -> PromptDetails:
    return PromptDetails.from_prompt(await find_prompt_or_fail(prompt_id, repository))


async def get_prompt_version_history(
    prompt_id: str, repository: PromptRepository
) -> List[PromptVersionSnapshot]:
    prompt = await find_prompt_or_fail(prompt_id, repository)
    return list(await repository.get_version_history(prompt.id))
