"""Constants and enumerations for synthetic chatlog generation."""

from enum import StrEnum
from typing import Final


# Generation defaults
DEFAULT_AI_MODEL: Final[str] = "gpt-5-mini"
DEFAULT_AI_MAX_RETRIES: Final[int] = 4
DEFAULT_MIN_TURNS: Final[int] = 10
DEFAULT_MAX_TURNS: Final[int] = 25
DEFAULT_MIN_PER_DAY: Final[int] = 18
DEFAULT_MAX_PER_DAY: Final[int] = 32
DEFAULT_SIMILARITY_THRESHOLD: Final[float] = 0.8
DEFAULT_MAX_DUPLICATE_RETRIES: Final[int] = 5
DEFAULT_CALL_TIMEOUT_SECONDS: Final[float] = 120.0
DEFAULT_SCHEDULE_DAYS: Final[int] = 14

# Schedule
WORKDAYS_PER_BLOCK: Final[int] = 5
SHIFT_LENGTH_MINUTES: Final[int] = 360
CONVERSATION_DURATION_MINUTES: Final[int] = 15

# Similarity (weights for 1-gram .. 4-gram overlap)
NGRAM_WEIGHTS: Final[tuple[float, ...]] = (0.4, 0.3, 0.2, 0.1)

# Progress estimation
RATE_SMOOTHING_KEEP: Final[float] = 0.7
RATE_SMOOTHING_NEW: Final[float] = 0.3
RECENT_PROGRESS_WINDOW: Final[float] = 5.0
ETA_BUFFER_FACTOR: Final[float] = 1.1
ETA_MIN_SECONDS: Final[float] = 1.0
ETA_MAX_SECONDS: Final[float] = 7200.0

# Backend
DEFAULT_BACKEND_URL: Final[str] = "http://localhost:3000/api"
SYNTHETIC_CHAT_LOGS_ENDPOINT: Final[str] = "/synthetic-chat-logs"
DEFAULT_BACKEND_CONCURRENCY: Final[int] = 5
DEFAULT_BACKEND_RATE_PER_SECOND: Final[int] = 10
DEFAULT_BACKEND_MAX_RETRIES: Final[int] = 3

# Output
DEFAULT_JSON_OUTPUT: Final[str] = "synthetic_chatlogs.json"
DEFAULT_CSV_OUTPUT: Final[str] = "synthetic_chatlogs.csv"
JSON_INDENT: Final[int] = 2
DATETIME_FORMAT: Final[str] = "%Y-%m-%d %H:%M"
CUSTOMER_NAME_PREFIX: Final[str] = "CUSTOMER_NAME:"
FALLBACK_CUSTOMER_NAME: Final[str] = "Customer"

# Numeric Constants
EXIT_CODE_ERROR: Final[int] = 1
MS_PER_SECOND: Final[int] = 1000


class Shift(StrEnum):
    """Six-hour working shifts, in rotation order."""

    MORNING = "morning"
    EVENING = "evening"
    NIGHT = "night"


SHIFT_CYCLE: Final[tuple[Shift, ...]] = (Shift.MORNING, Shift.EVENING, Shift.NIGHT)

SHIFT_START_HOURS: Final[dict[Shift, int]] = {
    Shift.MORNING: 8,
    Shift.EVENING: 14,
    Shift.NIGHT: 20,
}


class SessionStatus(StrEnum):
    """Lifecycle states of a generation session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES: Final[frozenset[SessionStatus]] = frozenset(
    {SessionStatus.RUNNING, SessionStatus.PAUSED, SessionStatus.STOPPING}
)


class BehaviorPattern(StrEnum):
    """Performance trajectory the simulated agent should follow."""

    CONSISTENTLY_STRONG = "consistently-strong"
    CONSISTENTLY_WEAK = "consistently-weak"
    IMPROVING = "improving"
    DECLINING = "declining"
    VARIABLE = "variable"


BEHAVIOR_PATTERN_DESCRIPTIONS: Final[dict[BehaviorPattern, str]] = {
    BehaviorPattern.CONSISTENTLY_STRONG: "Consistently strong performance: clear, polite, on-topic and usually resolves the issue.",
    BehaviorPattern.CONSISTENTLY_WEAK: "Consistently weak performance: vague, sometimes curt, often fails to resolve the issue.",
    BehaviorPattern.IMPROVING: "Improving performance: starts hesitant but becomes more effective over time.",
    BehaviorPattern.DECLINING: "Declining performance: starts well but grows impatient and less helpful.",
    BehaviorPattern.VARIABLE: "Variable performance: quality swings noticeably from one reply to the next.",
}


SCENARIOS: Final[tuple[str, ...]] = (
    "Service complaint - delivery delay",
    "Service complaint - staff behavior",
    "Billing issue - unexpected charge",
    "Billing issue - refund request",
    "Technical support - website error",
    "Technical support - account access",
    "Escalation request - previous unresolved issue",
    "Positive feedback - customer satisfaction",
    "Miscommunication - order details",
    "Miscommunication - policy understanding",
)


DEFAULT_PROMPT_TEMPLATE: Final[str] = """Your task is to evaluate the following customer service chatlog:
Chatlog:
{chatlog_text}

Use the provided rubric for your evaluation:
{rubric_text}

Provide your evaluation STRICTLY as a single JSON object with keys "Coherence" (integer 1-5), "Politeness" (integer 1-5), "Relevance" (integer 1-5), and "Resolution" (integer 0 or 1).
Output ONLY the JSON object.
Evaluation JSON:"""

DEFAULT_RUBRIC_TEXT: Final[str] = """Coherence (1-5):
1: Completely disjointed, impossible to follow the conversation.
2: Significant gaps in logic or conversation flow.
3: Some minor disconnects but generally comprehensible.
4: Clear and logical conversation flow with minimal issues.
5: Perfectly coherent conversation with clear relationship between all messages.

Politeness (1-5):
1: Rude, unprofessional, or inappropriate language used.
2: Curt, dismissive or lacking basic courtesy.
3: Neutral tone, neither notably polite nor impolite.
4: Professional, courteous language used consistently.
5: Exceptionally polite, goes above and beyond in courtesy.

Relevance (1-5):
1: Completely off-topic or irrelevant to the customer's needs.
2: Minimally addresses customer needs but mostly misses the point.
3: Somewhat relevant but fails to fully address the customer's question.
4: Mostly relevant and addresses the core customer inquiry.
5: Perfectly relevant, directly and completely addresses the customer's question.

Resolution (0 or 1):
0: The customer's issue or query was not resolved by the end of the conversation.
1: The customer's issue or query was clearly resolved by the end of the conversation."""


class CsvColumn(StrEnum):
    """Column names of the chatlog CSV export, in output order."""

    CHATLOG = "chatlog"
    SCENARIO = "scenario"
    SHIFT = "shift"
    DATE_TIME = "dateTime"
    CUSTOMER_NAME = "customerName"
    COHERENCE = "coherence"
    POLITENESS = "politeness"
    RELEVANCE = "relevance"
    RESOLUTION = "resolution"
    ESCALATED = "escalated"


class BackendKey(StrEnum):
    """Synthetic chat log record keys used by the backend API."""

    ID = "id"
    AGENT_NAME = "agentName"
    SHIFT = "shift"
    SCENARIO = "scenario"
    CHATLOG = "chatlog"
    CUSTOMER_NAME = "customerName"
    ESCALATED = "escalated"
    CUSTOMER_SATISFACTION = "customerSatisfaction"
    PERFORMANCE_TRAJECTORY = "performanceTrajectory"
    START_TIME = "startTime"
    END_TIME = "endTime"
    METADATA = "metadata"
    MESSAGE = "message"


class MetadataKey(StrEnum):
    """Keys of the JSON metadata blob attached to persisted records."""

    COHERENCE = "coherence"
    POLITENESS = "politeness"
    RELEVANCE = "relevance"
    RESOLUTION = "resolution"
    EVALUATION_TIMESTAMP = "evaluationTimestamp"
    MODEL_ID = "modelId"
    BEHAVIOR_PATTERN = "behaviorPattern"


class LogMessage(StrEnum):
    """Log message templates."""

    INITIALIZING = "Initializing dataset generation..."
    PLAN = "Planning to generate {} conversations across {} workdays"
    PROCESSING_UNIT = "Processing {} conversations for {} ({} shift)"
    GENERATING = "Generating conversation [{}/{}] {} - {}"
    PAUSED = "Generation paused - resume to continue"
    RESUMING = "Resuming generation..."
    STOPPING = "Stopping generation..."
    STOPPED = "Generation stopped by user."
    COMPLETE = "Generation and evaluation complete!"
    FAILED = "Error generating data: {}"
    DUPLICATE = "Duplicate chatlog detected with similarity score {:.3f}; regenerating"
    DUPLICATE_LIMIT = "Gave up on slot {} of {} after {} duplicate candidates"
    GENERATION_FAILED = "Error generating chatlog: {}"
    EVALUATION_FAILED = "Error evaluating chatlog {}: {}"
    PERSISTENCE_FAILED = "Error saving chat log {} to backend: {}"
    SAVED_CONVERSATIONS = "Saved {} conversations to {}"
    SAVED_CSV = "Exported {} conversations to {}"
    ERROR_OCCURRED = "Error occurred: {}"


class CliHelp(StrEnum):
    """CLI help messages."""

    APP = "Synthetic customer-service chatlog generation and evaluation tool"
    START_DATE = "First day of the simulated period (YYYY-MM-DD)."
    END_DATE = "Last day of the simulated period, inclusive (YYYY-MM-DD)."
    MIN_PER_DAY = "Minimum conversations generated per working day."
    MAX_PER_DAY = "Maximum conversations generated per working day."
    MIN_TURNS = "Minimum number of turns per conversation."
    MAX_TURNS = "Maximum number of turns per conversation."
    SIMILARITY = "Similarity score above which a candidate is rejected as a duplicate (0-1)."
    BEHAVIOR = "Performance trajectory of the simulated agent."
    MODEL = "Model used for both generation and evaluation."
    API_KEY = "OpenAI API key. Can also be set via OPENAI_API_KEY environment variable."
    AGENT_NAME = "Name of the requesting agent the conversations are generated for."
    BACKEND_URL = "Backend API base URL. Accepted conversations are persisted when a token is given."
    BACKEND_TOKEN = "Bearer token for the backend API."
    JSON_OUTPUT = "Output file path for the generated conversations (JSON)."
    CSV_OUTPUT = "Output file path for the CSV export."
    CALL_TIMEOUT = "Seconds before a single generation, evaluation or save call is abandoned."
    SEED = "Seed for the scheduling and scenario random draws."
    REPORT_INPUT = "JSON file written by the generate or fetch command."
    DAILY_OUTPUT = "Optional CSV path for per-day score averages."
    GENERATE_COMMAND = """Generate and evaluate synthetic chatlogs for a date range.

Weekdays in the range are scheduled into rotating morning, evening and night
shifts. Each conversation is generated, checked against earlier ones for
near-duplicates, scored against the rubric and, when a backend token is
configured, saved to the backend. Press Ctrl+C to stop gracefully; send SIGUSR1
to pause or resume."""
