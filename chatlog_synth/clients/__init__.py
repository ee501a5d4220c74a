"""Collaborators that generate and evaluate conversations."""

from .ai import OpenAIConversationEvaluator, OpenAIConversationGenerator
from .base import (
    ConversationEvaluator,
    ConversationGenerator,
    ConversationStore,
    EvaluationErr,
    EvaluationOk,
    EvaluationResult,
    GeneratorOutput,
)

__all__ = [
    "ConversationEvaluator",
    "ConversationGenerator",
    "ConversationStore",
    "EvaluationErr",
    "EvaluationOk",
    "EvaluationResult",
    "GeneratorOutput",
    "OpenAIConversationEvaluator",
    "OpenAIConversationGenerator",
]
