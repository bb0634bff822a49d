"""
Provider adapters for the ModelProvider contract.
"""

from .openai_client import OpenAIProvider

__all__ = ["OpenAIProvider"]
