"""LLM Provider implementations."""

from livetrans.providers.llm.base import LLMCompletionResult, LLMProvider, LLMUsage, Message

__all__ = ["LLMCompletionResult", "LLMProvider", "LLMUsage", "Message"]
