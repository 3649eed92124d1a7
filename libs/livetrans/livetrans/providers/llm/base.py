"""Chat LLM abstraction shared by the premium and secondary translation engines."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """A chat message."""

    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass
class LLMUsage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        total_tokens: int | None = None,
    ) -> "LLMUsage | None":
        """Build usage from SDK counters; None when the provider reported nothing."""
        counts = [v if isinstance(v, int) else None for v in (prompt_tokens, completion_tokens, total_tokens)]
        if all(v is None for v in counts):
            return None
        prompt, completion, total = counts
        if total is None and prompt is not None and completion is not None:
            total = prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass
class LLMCompletionResult:
    text: str
    usage: LLMUsage | None = None


class LLMProvider(ABC):
    """Abstract base class for chat-style LLM providers used as translation engines."""

    provider: str = "llm"
    model: str = ""

    @abstractmethod
    async def complete_with_usage(
        self,
        messages: list[Message],
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> LLMCompletionResult:
        """Generate a completion.

        Args:
            messages: List of chat messages.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.

        Returns:
            Generated text with token usage when the provider reports it.
        """
        ...

    async def complete(
        self,
        messages: list[Message],
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> str:
        result = await self.complete_with_usage(
            messages, temperature=temperature, max_tokens=max_tokens
        )
        return result.text

    def _finish(self, text: str, usage: LLMUsage | None, started: float) -> LLMCompletionResult:
        """Log one finished call (started is a `time.perf_counter()` value)."""
        logger.info(
            "llm call (provider=%s, model=%s, latency_ms=%s, prompt_tokens=%s, completion_tokens=%s)",
            self.provider,
            self.model,
            int((time.perf_counter() - started) * 1000),
            usage.prompt_tokens if usage else None,
            usage.completion_tokens if usage else None,
        )
        return LLMCompletionResult(text=str(text or "").strip(), usage=usage)

    async def close(self) -> None:
        """Close any underlying resources (optional)."""
        return None


def with_json_instruction(messages: list[Message]) -> list[Message]:
    """Ask for a bare JSON reply by extending (or adding) the system message."""
    out = list(messages)
    if out and str(out[0].role or "").strip().lower() == "system":
        out[0] = Message(role="system", content=f"{out[0].content or ''}\n\nRespond with valid JSON only.")
    else:
        out.insert(0, Message(role="system", content="Respond with valid JSON only."))
    return out
