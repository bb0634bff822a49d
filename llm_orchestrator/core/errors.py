"""
Error taxonomy for orchestration decisions.

Every failure surfaced by the core is one of these exception types. The class
is the tag callers branch on; the message is meant for humans. Failures raised
by collaborators (repositories, providers, dispatchers) are never wrapped and
propagate with their original type and message.
"""


class OrchestrationError(Exception):
    """Base class for all errors raised by the orchestration core."""


class ValidationError(OrchestrationError, ValueError):
    """Raised for malformed input, always before any I/O is attempted."""


class NotFoundError(OrchestrationError, LookupError):
    """Raised when a prompt, model config or stored version does not exist."""


class ConstraintError(OrchestrationError):
    """Raised when a request is well-formed but cannot be satisfied."""


class BudgetConstraintError(ConstraintError):
    """Raised when the router's budget filter leaves no candidate model."""


class NoModelsAvailableError(ConstraintError):
    """Raised when no model satisfies the requested capabilities."""


class BudgetExceededError(ConstraintError):
    """Raised when the budget guard refuses a prospective spend."""

    def __init__(self, message: str, snapshot=None):
        super().__init__(message)
        self.snapshot = snapshot


class DuplicatePromptError(ConstraintError):
    """Raised when a prompt key is already taken within an environment."""


class AlreadyAtVersionError(ConstraintError):
    """Raised when rolling a prompt back to the version it is already at."""
