"""OpenAI-backed conversation generator and rubric evaluator."""

from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx
import instructor
import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..constants import (
    BEHAVIOR_PATTERN_DESCRIPTIONS,
    CUSTOMER_NAME_PREFIX,
    DEFAULT_AI_MAX_RETRIES,
)
from ..errors import CredentialRejectedError
from ..models import EvaluationScores, GenerationRequest
from .base import EvaluationErr, EvaluationOk, EvaluationResult, GeneratorOutput

_REJECTION_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
)
_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class Speaker(str, Enum):
    """Who wrote a turn."""

    AGENT = "agent"
    CUSTOMER = "customer"


class ChatTurn(BaseModel):
    """One message of a generated conversation."""

    speaker: Speaker = Field(description="agent or customer")
    time: str = Field(
        pattern=r"^\d{1,2}:\d{2}$", description="Clock time of the message, HH:MM"
    )
    message: str = Field(description="Message text, a single paragraph")


class SyntheticChatlog(BaseModel):
    """A complete generated customer-service conversation."""

    customer_name: str = Field(description="Full name of the customer")
    turns: list[ChatTurn] = Field(description="Messages in chronological order")


class RubricScores(BaseModel):
    """Rubric scores returned by the evaluator model."""

    model_config = ConfigDict(populate_by_name=True)

    coherence: int = Field(ge=1, le=5, alias="Coherence")
    politeness: int = Field(ge=1, le=5, alias="Politeness")
    relevance: int = Field(ge=1, le=5, alias="Relevance")
    resolution: int = Field(ge=0, le=1, alias="Resolution")

    def to_scores(self) -> EvaluationScores:
        return EvaluationScores(
            coherence=self.coherence,
            politeness=self.politeness,
            relevance=self.relevance,
            resolution=self.resolution,
        )


def _is_rejection(error: BaseException) -> bool:
    return isinstance(error, _REJECTION_ERRORS) or isinstance(
        error.__cause__, _REJECTION_ERRORS
    )


def render_transcript(*, chatlog: SyntheticChatlog, agent_name: str) -> str:
    """Render structured turns as ``[HH:MM] Agent <name>: ...`` transcript lines."""
    lines = [f"{CUSTOMER_NAME_PREFIX} {chatlog.customer_name}"]
    for turn in chatlog.turns:
        speaker = f"Agent {agent_name}" if turn.speaker == Speaker.AGENT else "Customer"
        lines.append(f"[{turn.time}] {speaker}: {turn.message.strip()}")
    return "\n".join(lines)


def fill_prompt_template(
    *, prompt_template: str, rubric_text: str, conversation_text: str
) -> str:
    # Plain replacement: templates contain literal JSON braces
    return prompt_template.replace("{chatlog_text}", conversation_text).replace(
        "{rubric_text}", rubric_text
    )


class OpenAIChatClient:
    """Shared plumbing for the OpenAI-backed collaborators.

    One instructor-patched ``AsyncOpenAI`` client is created per credential and
    reused for every later call with that credential.

    Attributes:
        timeout: Per-request HTTP timeout in seconds.
        client_factory: Builds a structured-output client for a credential.
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        client_factory: Callable[[str], Any] | None = None,
    ):
        self.timeout = timeout
        self.client_factory = client_factory or self._create_client
        self._clients: dict[str, Any] = {}
        self._http_clients: list[httpx.AsyncClient] = []

    def _create_client(self, credential: str) -> Any:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )
        self._http_clients.append(http_client)
        return instructor.from_openai(
            AsyncOpenAI(
                api_key=credential,
                http_client=http_client,
                max_retries=0,  # We handle retries with tenacity
            )
        )

    def _client_for(self, credential: str) -> Any:
        if credential not in self._clients:
            self._clients[credential] = self.client_factory(credential)
        return self._clients[credential]

    async def aclose(self) -> None:
        for http_client in self._http_clients:
            await http_client.aclose()
        self._http_clients.clear()
        self._clients.clear()


class OpenAIConversationGenerator(OpenAIChatClient):
    """Generates synthetic customer-service chatlogs with an OpenAI model."""

    def _build_generation_prompt(self, *, request: GenerationRequest) -> str:
        """Build the generation prompt.

        Args:
            request: What to generate.

        Returns:
            str: Prompt describing the conversation to write.
        """
        behavior = BEHAVIOR_PATTERN_DESCRIPTIONS.get(
            request.behavior_pattern, str(request.behavior_pattern)
        )
        return f"""Write a realistic customer-service chat between a support agent named {request.agent_name} and a customer.

SCENARIO
{request.scenario}

AGENT BEHAVIOR
{behavior}

REQUIREMENTS
- Between {request.min_turns} and {request.max_turns} turns in total, alternating between customer and agent.
- The customer opens the conversation.
- Give every turn a clock time (HH:MM); times increase through the conversation and span about 15 minutes.
- Invent a plausible full name for the customer and use concrete details (order numbers, dates, amounts).
- Do not mention that the conversation is synthetic."""

    async def generate(
        self, *, credential: str, model: str, request: GenerationRequest
    ) -> GeneratorOutput:
        """Generate one conversation.

        Args:
            credential: OpenAI API key.
            model: Model name.
            request: Scenario, behaviour and length of the conversation.

        Returns:
            GeneratorOutput: Rendered transcript and customer name.

        Raises:
            CredentialRejectedError: If the key or model is refused.
        """
        client = self._client_for(credential)
        logger.debug(f"Generating '{request.scenario}' conversation with {model}")
        try:
            chatlog = await client.chat.completions.create(
                model=model,
                messages=[
                    {
                        "role": "system",
                        "content": "You write realistic customer-service chat transcripts for training and quality evaluation.",
                    },
                    {"role": "user", "content": self._build_generation_prompt(request=request)},
                ],
                response_model=SyntheticChatlog,
            )
        except Exception as e:
            if _is_rejection(e):
                raise CredentialRejectedError(f"Model provider rejected the request: {e}") from e
            raise

        return GeneratorOutput(
            conversation_text=render_transcript(
                chatlog=chatlog, agent_name=request.agent_name
            ),
            customer_name=chatlog.customer_name,
        )


class OpenAIConversationEvaluator(OpenAIChatClient):
    """Scores chatlogs for coherence, politeness, relevance and resolution."""

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        stop=stop_after_attempt(DEFAULT_AI_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _request_scores(
        self, *, credential: str, model: str, prompt: str
    ) -> RubricScores:
        client = self._client_for(credential)
        return await client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "system",
                    "content": "You are an expert evaluator of customer service conversations.",
                },
                {"role": "user", "content": prompt},
            ],
            response_model=RubricScores,
        )

    async def evaluate(
        self,
        *,
        credential: str,
        model: str,
        prompt_template: str,
        rubric_text: str,
        conversation_text: str,
    ) -> EvaluationResult:
        """Evaluate one chatlog, turning any failure into ``EvaluationErr``.

        Raises:
            CredentialRejectedError: If the key or model is refused.
        """
        prompt = fill_prompt_template(
            prompt_template=prompt_template,
            rubric_text=rubric_text,
            conversation_text=conversation_text,
        )
        try:
            result = await self._request_scores(
                credential=credential, model=model, prompt=prompt
            )
        except Exception as e:
            if _is_rejection(e):
                raise CredentialRejectedError(f"Model provider rejected the request: {e}") from e
            logger.error(f"Error evaluating chatlog: {e}")
            return EvaluationErr(message=str(e))

        logger.trace(f"Evaluation scores: {result.model_dump()}")
        return EvaluationOk(scores=result.to_scores())
