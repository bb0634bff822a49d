"""
Versioned prompt templates.

This package contains the ManagedPrompt aggregate, its variables and the
domain events it records.
"""

from .models import (
    ManagedPrompt,
    PromptEnvironment,
    PromptVariable,
    PromptVersionSnapshot,
    VariableType,
    extract_variables,
    render_prompt,
)

__all__ = [
    "ManagedPrompt",
    "PromptEnvironment",
    "PromptVariable",
    "PromptVersionSnapshot",
    "VariableType",
    "extract_variables",
    "render_prompt",
]
