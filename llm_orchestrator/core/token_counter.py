"""
Token counting and usage tracking.

Holds exact usage reported by providers and the default heuristic used to
estimate token counts for text that has not been sent yet.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported for a completed model call."""
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens


class CharacterTokenEstimator:
    """Estimate tokens as one token per four characters, rounded up.

    Cheap and provider-agnostic; good enough for budget decisions made
    before a request is sent.
    """

    chars_per_token = 4

    async def estimate(self, text: str) -> int:
        if text == "":
            return 0
        return math.ceil(len(text) / self.chars_per_token)
