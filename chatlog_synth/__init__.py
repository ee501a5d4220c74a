"""Synthetic customer-service chatlog generation package."""

from .backend import SyntheticChatLogBackend
from .clients import OpenAIConversationEvaluator, OpenAIConversationGenerator
from .models import GeneratedConversation, GenerationParams, WorkUnit
from .orchestrator import GenerationOrchestrator
from .session import SessionSnapshot
from .storage import ConversationStorage

__all__ = [
    "ConversationStorage",
    "GeneratedConversation",
    "GenerationOrchestrator",
    "GenerationParams",
    "OpenAIConversationEvaluator",
    "OpenAIConversationGenerator",
    "SessionSnapshot",
    "SyntheticChatLogBackend",
    "WorkUnit",
]
