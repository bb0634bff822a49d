"""
Orchestration use cases.

Thin async callers that compose the router, the budget guard, prompt storage,
a model provider and usage recording in a fixed order.
"""

from .completion import (
    CompletionRequest,
    CompletionResult,
    PromptTestResult,
    UsageRecorded,
    run_prompt_test,
    send_completion,
)
from .prompts import (
    PromptDetails,
    PromptRollbackResult,
    PromptUpdateResult,
    create_managed_prompt,
    get_managed_prompt,
    get_prompt_version_history,
    parse_prompt_id,
    rollback_managed_prompt,
    update_managed_prompt,
)

__all__ = [
    "CompletionRequest",
    "CompletionResult",
    "PromptDetails",
    "PromptRollbackResult",
    "PromptTestResult",
    "PromptUpdateResult",
    "UsageRecorded",
    "create_managed_prompt",
    "get_managed_prompt",
    "get_prompt_version_history",
    "parse_prompt_id",
    "rollback_managed_prompt",
    "run_prompt_test",
    "send_completion",
    "update_managed_prompt",
]
