"""
OpenAI provider adapter.

Runs chat completions through the official async client and normalizes the
response. Provider errors are not caught here.
"""

from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from ..core.token_counter import TokenUsage
from ..ports import GenerateTextResponse, LLMMessage


class OpenAIProvider:
    """ModelProvider backed by OpenAI chat completions."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        """Initialize the provider.

        Args:
            client: Preconfigured client; one reading OPENAI_API_KEY is created if omitted
        """
        self.client = client or AsyncOpenAI()

    async def generate_text(
        self,
        model: str,
        messages: Sequence[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> GenerateTextResponse:
        """Create a chat completion.

        Args:
            model: OpenAI model name (required)
            messages: Conversation to send (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)

        Returns:
            Normalized response with content, usage and finish reason

        Raises:
            ValueError: If model or messages is missing, or usage is absent
            OpenAI API errors: Propagated without modification
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        payload: List[Dict[str, str]] = [
            {"role": m.role, "content": m.content} for m in messages
        ]
        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["max_tokens"] = max_tokens

        response = await self.client.chat.completions.create(
            model=model,
            messages=payload,
            **options
        )

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        choice = response.choices[0]
        return GenerateTextResponse(
            content=choice.message.content or "",
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
            ),
            model=response.model,
            finish_reason=choice.finish_reason or "stop",
        )
