"""Contracts of the external collaborators driven by the orchestrator."""

from dataclasses import dataclass
from typing import Any, Protocol

from ..models import EvaluationScores, GenerationRequest


@dataclass(frozen=True)
class GeneratorOutput:
    """A freshly generated transcript."""

    conversation_text: str
    customer_name: str


@dataclass(frozen=True)
class EvaluationOk:
    scores: EvaluationScores


@dataclass(frozen=True)
class EvaluationErr:
    message: str


EvaluationResult = EvaluationOk | EvaluationErr


class ConversationGenerator(Protocol):
    """Produces one synthetic conversation per call.

    Implementations raise on failure; the orchestrator abandons that item.
    """

    async def generate(
        self, *, credential: str, model: str, request: GenerationRequest
    ) -> GeneratorOutput: ...


class ConversationEvaluator(Protocol):
    """Scores a transcript against a rubric."""

    async def evaluate(
        self,
        *,
        credential: str,
        model: str,
        prompt_template: str,
        rubric_text: str,
        conversation_text: str,
    ) -> EvaluationResult: ...


class ConversationStore(Protocol):
    """Persists batches of evaluated conversations.

    Implementations raise ``PersistenceError`` with a descriptive message.
    """

    async def save(self, records: list[dict[str, Any]]) -> None: ...
