"""LLM module."""

from .llm_provider import ILLMProvider, LLMProvider, LLMResponse

__all__ = ["ILLMProvider", "LLMProvider", "LLMResponse"]
