"""Provider-agnostic message types making up a conversation."""

from .models import BaseMessage, UserMessage, AssistantMessage, SystemMessage, ToolMessage

__all__ = [
    "BaseMessage",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ToolMessage",
]
