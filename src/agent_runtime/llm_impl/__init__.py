"""Collect concrete model provider adapters."""

from .openai_api import OpenAIInferenceAdapter

__all__ = ["OpenAIInferenceAdapter"]
