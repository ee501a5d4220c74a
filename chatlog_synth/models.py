"""Data models for synthetic chatlog generation."""

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

from .constants import (
    CUSTOMER_NAME_PREFIX,
    DATETIME_FORMAT,
    DEFAULT_MAX_PER_DAY,
    DEFAULT_MAX_TURNS,
    DEFAULT_MIN_PER_DAY,
    DEFAULT_MIN_TURNS,
    DEFAULT_PROMPT_TEMPLATE,
    DEFAULT_RUBRIC_TEXT,
    DEFAULT_SIMILARITY_THRESHOLD,
    MS_PER_SECOND,
    BehaviorPattern,
    Shift,
)
from .errors import RequestValidationError

_MESSAGE_PATTERN = re.compile(
    r"^\[(\d{1,2}:\d{2}(?::\d{2})?)\]\s*(?:Agent\s+([^:]+)|Customer):\s*(.*)$"
)


@dataclass(frozen=True)
class WorkUnit:
    """One (date, shift) pair scheduled for conversation generation.

    Attributes:
        date: Calendar day of the unit, never a weekend.
        shift: Shift worked on that day.
    """

    date: date
    shift: Shift


@dataclass(frozen=True)
class GenerationRequest:
    """Parameters for a single conversation generation attempt."""

    agent_name: str
    scenario: str
    behavior_pattern: BehaviorPattern
    min_turns: int
    max_turns: int


@dataclass(frozen=True)
class EvaluationScores:
    """Rubric scores for one conversation.

    Attributes:
        coherence: 1-5.
        politeness: 1-5.
        relevance: 1-5.
        resolution: 1 if the customer's issue was resolved, else 0.
    """

    coherence: int
    politeness: int
    relevance: int
    resolution: int

    @property
    def cpr_score(self) -> float:
        """Mean of coherence, politeness and relevance."""
        return (self.coherence + self.politeness + self.relevance) / 3

    @property
    def satisfaction_pct(self) -> int:
        """Satisfaction percentage as stored by the backend."""
        total = self.coherence + self.politeness + self.relevance + self.resolution
        return round(total / 4 * 100)


@dataclass
class GeneratedConversation:
    """A generated conversation, pending or evaluated.

    A conversation is evaluated exactly when it carries scores; scores are only
    ever attached as a whole through ``attach_scores``.

    Attributes:
        id: Unique identifier, stable for the life of the session.
        text: Full transcript.
        customer_name: Name of the simulated customer.
        scenario: Scenario the conversation was generated for.
        shift: Shift the conversation belongs to.
        scheduled_at: Simulated start time within the shift window.
        scores: Rubric scores, absent until evaluation succeeds.
    """

    id: str
    text: str
    customer_name: str
    scenario: str
    shift: Shift
    scheduled_at: datetime
    scores: EvaluationScores | None = None

    @property
    def evaluated(self) -> bool:
        return self.scores is not None

    @property
    def escalated(self) -> bool | None:
        """True when an evaluated conversation was left unresolved."""
        if self.scores is None:
            return None
        return self.scores.resolution == 0

    def attach_scores(self, scores: EvaluationScores) -> None:
        self.scores = scores

    def to_dict(self) -> dict[str, Any]:
        """Convert conversation to dictionary for serialization.

        Returns:
            dict[str, Any]: JSON-compatible representation including derived flags.
        """
        return {
            "id": self.id,
            "text": self.text,
            "customer_name": self.customer_name,
            "scenario": self.scenario,
            "shift": str(self.shift),
            "scheduled_at": self.scheduled_at.strftime(DATETIME_FORMAT),
            "scores": None
            if self.scores is None
            else {
                "coherence": self.scores.coherence,
                "politeness": self.scores.politeness,
                "relevance": self.scores.relevance,
                "resolution": self.scores.resolution,
            },
            "evaluated": self.evaluated,
            "escalated": self.escalated,
        }

    @classmethod
    def from_dict(cls, *, data: dict[str, Any]) -> "GeneratedConversation":
        """Create a GeneratedConversation from its serialized form.

        Args:
            data: Dictionary produced by ``to_dict``.

        Returns:
            GeneratedConversation: The restored conversation.
        """
        scores_data = data.get("scores")
        scores = EvaluationScores(**scores_data) if scores_data else None
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            customer_name=data.get("customer_name", ""),
            scenario=data.get("scenario", ""),
            shift=Shift(data["shift"]),
            scheduled_at=parse_timestamp(data["scheduled_at"]),
            scores=scores,
        )


@dataclass
class ChatMessage:
    """A single line of a transcript."""

    timestamp: str
    speaker: str
    is_agent: bool
    content: str


@dataclass
class GenerationParams:
    """Everything a generation run needs.

    Attributes:
        start_date: First simulated day.
        end_date: Last simulated day, inclusive.
        model: Model identifier used for generation and evaluation.
        credential: API credential for the model provider.
        agent_name: Identity of the requesting agent.
        behavior_pattern: Performance trajectory of the simulated agent.
        min_turns: Minimum conversation length in turns.
        max_turns: Maximum conversation length in turns.
        min_per_day: Minimum conversations per work unit.
        max_per_day: Maximum conversations per work unit.
        similarity_threshold: Score above which candidates are duplicates.
        prompt_template: Evaluation prompt with ``{chatlog_text}`` and ``{rubric_text}``.
        rubric_text: Rubric inserted into the evaluation prompt.
    """

    start_date: date | None
    end_date: date | None
    model: str
    credential: str
    agent_name: str
    behavior_pattern: BehaviorPattern = BehaviorPattern.CONSISTENTLY_STRONG
    min_turns: int = DEFAULT_MIN_TURNS
    max_turns: int = DEFAULT_MAX_TURNS
    min_per_day: int = DEFAULT_MIN_PER_DAY
    max_per_day: int = DEFAULT_MAX_PER_DAY
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    rubric_text: str = DEFAULT_RUBRIC_TEXT

    def validate(self) -> None:
        """Check the parameters, reporting every problem at once.

        Raises:
            RequestValidationError: If anything required is missing or out of range.
        """
        problems: list[str] = []

        if self.start_date is None or self.end_date is None:
            problems.append("A start and end date must be selected")
        elif self.end_date < self.start_date:
            problems.append("End date must not be before start date")
        if not self.model or not self.model.strip():
            problems.append("A model must be selected")
        if not self.credential or not self.credential.strip():
            problems.append("An API key is required")
        if not self.agent_name or not self.agent_name.strip():
            problems.append("You must be signed in as an agent")
        if self.min_per_day < 0 or self.max_per_day < self.min_per_day:
            problems.append(
                f"Invalid conversations-per-day range [{self.min_per_day}, {self.max_per_day}]"
            )
        if self.min_turns < 1 or self.max_turns < self.min_turns:
            problems.append(f"Invalid turn range [{self.min_turns}, {self.max_turns}]")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            problems.append("Similarity threshold must be between 0 and 1")

        if problems:
            raise RequestValidationError(problems)


def make_conversation_id(*, created_at: datetime, unit: WorkUnit, index: int) -> str:
    """Build an id from creation time, work-unit date and planned index."""
    created_ms = int(created_at.timestamp() * MS_PER_SECOND)
    unit_ms = int(datetime.combine(unit.date, time()).timestamp() * MS_PER_SECOND)
    return f"{created_ms}-{unit_ms}-{index}"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse a ``YYYY-MM-DD HH:MM`` or ISO-8601 timestamp."""
    if isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(value, DATETIME_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    # Backend timestamps are UTC; keep local naive times like the rest of the model
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def extract_customer_name(chatlog: str) -> str | None:
    """Return the name on the ``CUSTOMER_NAME:`` line of a transcript, if any."""
    for line in chatlog.split("\n"):
        if line.startswith(CUSTOMER_NAME_PREFIX):
            return line.removeprefix(CUSTOMER_NAME_PREFIX).strip()
    return None


def parse_chatlog(chatlog: str, *, customer_name: str = "") -> list[ChatMessage]:
    """Split a transcript into messages.

    Lines look like ``[09:14] Agent Jane Doe: ...`` or ``[09:15] Customer: ...``;
    anything else is ignored.

    Args:
        chatlog: Transcript text, optionally starting with a ``CUSTOMER_NAME:`` line.
        customer_name: Name to use for customer lines when the transcript has none.

    Returns:
        list[ChatMessage]: Parsed messages in transcript order.
    """
    lines = [line for line in chatlog.split("\n") if line.strip()]
    if lines and lines[0].startswith(CUSTOMER_NAME_PREFIX):
        customer_name = customer_name or lines[0].removeprefix(CUSTOMER_NAME_PREFIX).strip()
        lines = lines[1:]

    messages: list[ChatMessage] = []
    agent_name = ""
    for line in lines:
        match = _MESSAGE_PATTERN.match(line.strip())
        if not match:
            continue
        timestamp, possible_agent, content = match.groups()
        is_agent = possible_agent is not None
        if is_agent:
            agent_name = possible_agent.strip()
        messages.append(
            ChatMessage(
                timestamp=timestamp,
                speaker=(agent_name or "Support Agent")
                if is_agent
                else (customer_name or "Customer"),
                is_agent=is_agent,
                content=content.strip(),
            )
        )
    return messages
