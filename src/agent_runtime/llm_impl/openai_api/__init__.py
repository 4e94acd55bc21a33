"""Expose the OpenAI chat-completions inference adapter."""

from .adapter import OpenAIInferenceAdapter

__all__ = ["OpenAIInferenceAdapter"]
