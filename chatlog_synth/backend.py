"""Client for the synthetic chat log endpoints of the backend API."""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any

import httpx
from aiolimiter import AsyncLimiter
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .constants import (
    CONVERSATION_DURATION_MINUTES,
    DEFAULT_BACKEND_CONCURRENCY,
    DEFAULT_BACKEND_MAX_RETRIES,
    DEFAULT_BACKEND_RATE_PER_SECOND,
    FALLBACK_CUSTOMER_NAME,
    SYNTHETIC_CHAT_LOGS_ENDPOINT,
    BackendKey,
    BehaviorPattern,
    MetadataKey,
    Shift,
)
from .errors import PersistenceError
from .models import (
    EvaluationScores,
    GeneratedConversation,
    extract_customer_name,
    parse_timestamp,
)

_STATUS_MESSAGES = {
    401: "Authentication required. Please log in again.",
    403: "You do not have permission to {action} chat logs.",
    404: "No chat logs found.",
}


def build_persistence_record(
    *,
    item: GeneratedConversation,
    agent_name: str,
    behavior_pattern: BehaviorPattern,
    model: str,
    evaluated_at: datetime | None = None,
) -> dict[str, Any]:
    """Build the backend payload for an evaluated conversation.

    Args:
        item: Evaluated conversation.
        agent_name: Agent the conversation was generated for.
        behavior_pattern: Performance trajectory used for generation.
        model: Model that generated and scored the conversation.
        evaluated_at: Evaluation time, defaults to now.

    Returns:
        dict[str, Any]: JSON-ready record.

    Raises:
        ValueError: If the conversation has not been evaluated.
    """
    if item.scores is None:
        raise ValueError(f"Conversation {item.id} has not been evaluated")

    scores = item.scores
    evaluated_at = evaluated_at or datetime.now()
    metadata = {
        MetadataKey.COHERENCE: scores.coherence,
        MetadataKey.POLITENESS: scores.politeness,
        MetadataKey.RELEVANCE: scores.relevance,
        MetadataKey.RESOLUTION: scores.resolution,
        MetadataKey.EVALUATION_TIMESTAMP: evaluated_at.isoformat(),
        MetadataKey.MODEL_ID: model,
        MetadataKey.BEHAVIOR_PATTERN: str(behavior_pattern),
    }
    end_time = item.scheduled_at + timedelta(minutes=CONVERSATION_DURATION_MINUTES)

    return {
        BackendKey.AGENT_NAME: agent_name,
        BackendKey.SHIFT: str(item.shift),
        BackendKey.SCENARIO: item.scenario,
        BackendKey.CHATLOG: item.text,
        BackendKey.ESCALATED: bool(item.escalated),
        BackendKey.CUSTOMER_SATISFACTION: scores.satisfaction_pct,
        BackendKey.PERFORMANCE_TRAJECTORY: str(behavior_pattern),
        BackendKey.START_TIME: item.scheduled_at.isoformat(),
        BackendKey.END_TIME: end_time.isoformat(),
        BackendKey.METADATA: json.dumps(metadata),
    }


def _scores_from_metadata(raw: str | None, record_id: str) -> EvaluationScores | None:
    if not raw:
        return None
    try:
        metadata = json.loads(raw)
        return EvaluationScores(
            coherence=int(metadata[MetadataKey.COHERENCE]),
            politeness=int(metadata[MetadataKey.POLITENESS]),
            relevance=int(metadata[MetadataKey.RELEVANCE]),
            resolution=int(metadata[MetadataKey.RESOLUTION]),
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse metadata for chat log {record_id}: {e}")
        return None


def record_to_conversation(data: dict[str, Any]) -> GeneratedConversation:
    """Convert a stored backend record back into a conversation."""
    record_id = str(data.get(BackendKey.ID, ""))
    chatlog = data.get(BackendKey.CHATLOG, "")
    customer_name = (
        data.get(BackendKey.CUSTOMER_NAME)
        or extract_customer_name(chatlog)
        or FALLBACK_CUSTOMER_NAME
    )
    return GeneratedConversation(
        id=record_id,
        text=chatlog,
        customer_name=customer_name,
        scenario=data.get(BackendKey.SCENARIO, ""),
        shift=Shift(data[BackendKey.SHIFT]),
        scheduled_at=parse_timestamp(data[BackendKey.START_TIME]),
        scores=_scores_from_metadata(data.get(BackendKey.METADATA), record_id),
    )


class SyntheticChatLogBackend:
    """Stores and loads synthetic chat logs through the backend REST API.

    Attributes:
        base_url: API base URL, e.g. ``http://localhost:3000/api``.
        token: Bearer token of the signed-in user.
        semaphore: Limits concurrent requests.
        rate_limiter: Limits requests per second.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_concurrency: int = DEFAULT_BACKEND_CONCURRENCY,
        max_rate: int = DEFAULT_BACKEND_RATE_PER_SECOND,
    ):
        """Initialize the backend client.

        Args:
            base_url: API base URL.
            token: Bearer token; requests are sent unauthenticated without one.
            client: Optional pre-configured HTTP client.
            max_concurrency: Maximum concurrent requests.
            max_rate: Maximum requests per second.
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self.rate_limiter = AsyncLimiter(max_rate=max_rate, time_period=1)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(DEFAULT_BACKEND_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def _send(
        self, method: str, path: str, payload: Any | None = None
    ) -> httpx.Response:
        async with self.semaphore:
            async with self.rate_limiter:
                return await self.client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=payload,
                    headers=self._headers(),
                )

    async def _request(
        self, method: str, path: str, *, action: str, payload: Any | None = None
    ) -> Any:
        try:
            response = await self._send(method, path, payload)
        except httpx.TimeoutException as e:
            raise PersistenceError("Request timed out. Please try again.") from e
        except httpx.TransportError as e:
            raise PersistenceError(f"Could not reach the backend at {self.base_url}: {e}") from e

        if response.is_error:
            raise PersistenceError(
                self._error_message(response, action=action),
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response, *, action: str) -> str:
        template = _STATUS_MESSAGES.get(response.status_code)
        if template:
            return template.format(action=action)
        try:
            message = response.json().get(BackendKey.MESSAGE)
        except (json.JSONDecodeError, AttributeError):
            message = None
        return message or f"Failed to {action} chat logs. Please try again."

    async def save(self, records: list[dict[str, Any]]) -> None:
        """Save a batch of records.

        Raises:
            PersistenceError: If the backend refuses the batch or cannot be reached.
        """
        if not records:
            return
        await self._request(
            "POST", SYNTHETIC_CHAT_LOGS_ENDPOINT, action="save", payload=records
        )
        logger.debug(f"Saved {len(records)} chat log(s) to backend")

    async def fetch_all(self) -> list[GeneratedConversation]:
        """Load every saved chat log of the signed-in user, newest first."""
        data = await self._request("GET", SYNTHETIC_CHAT_LOGS_ENDPOINT, action="load")
        conversations: list[GeneratedConversation] = []
        for record in data or []:
            try:
                conversations.append(record_to_conversation(record))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed chat log {record.get(BackendKey.ID)}: {e}")
        logger.success(f"Loaded {len(conversations)} saved chat logs from backend")
        return conversations

    async def delete(self, record_id: str) -> None:
        await self._request(
            "DELETE", f"{SYNTHETIC_CHAT_LOGS_ENDPOINT}/{record_id}", action="delete"
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
