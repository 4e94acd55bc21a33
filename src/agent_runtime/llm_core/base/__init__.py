"""Re-export the inference adapter interface and the shared result models."""

from .base import InferenceAdapter, InferenceResult, TokenUsage, ResponseSchema, execute_with_retry

__all__ = [
    "InferenceAdapter",
    "InferenceResult",
    "TokenUsage",
    "ResponseSchema",
    "execute_with_retry",
]
