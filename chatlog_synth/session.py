"""Mutable state of a generation run and the read-only view handed to observers."""

from dataclasses import dataclass, field

from .constants import ACTIVE_STATUSES, MS_PER_SECOND, SessionStatus
from .models import GeneratedConversation


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time copy of a session, safe to hand to observers."""

    status: SessionStatus
    percent: float
    step: str
    eta: str | None
    accepted_items: tuple[GeneratedConversation, ...]
    target_count: int
    completed_count: int
    rate_estimate: float
    last_error: str | None
    notifications: tuple[str, ...]

    @property
    def evaluated_count(self) -> int:
        return sum(1 for item in self.accepted_items if item.evaluated)


@dataclass
class GenerationSession:
    """State of one generation run, written only by the orchestrator.

    Attributes:
        status: Lifecycle state.
        accepted_items: Conversations kept so far, in generation order.
        target_count: Planned number of conversations, for percent display.
        completed_count: Conversations accepted so far.
        percent: ``completed_count / target_count * 100``.
        rate_estimate: Smoothed throughput in percent per second.
        started_at: Monotonic clock reading when the run started.
        paused_accumulated_ms: Total time spent in finished pauses.
        pause_started_at: Monotonic clock reading of the current pause, if paused.
        last_error: Run-level failure message.
        step: Human-readable description of the current step.
        eta: Remaining-time estimate, e.g. ``~3m 12s remaining``.
        notifications: Non-fatal per-item and backend problems.
        work_unit_count: Number of scheduled work units.
    """

    status: SessionStatus = SessionStatus.IDLE
    accepted_items: list[GeneratedConversation] = field(default_factory=list)
    target_count: int = 0
    completed_count: int = 0
    percent: float = 0.0
    rate_estimate: float = 0.0
    started_at: float | None = None
    paused_accumulated_ms: float = 0.0
    pause_started_at: float | None = None
    last_error: str | None = None
    step: str = ""
    eta: str | None = None
    notifications: list[str] = field(default_factory=list)
    work_unit_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def evaluation_results(self) -> list[GeneratedConversation]:
        """Evaluated conversations, the aggregate passed on to export and reporting."""
        return [item for item in self.accepted_items if item.evaluated]

    def effective_elapsed(self, now: float) -> float:
        """Seconds since start, excluding finished pauses and the current one."""
        if self.started_at is None:
            return 0.0
        paused = self.paused_accumulated_ms / MS_PER_SECOND
        if self.pause_started_at is not None:
            paused += now - self.pause_started_at
        return max(0.0, now - self.started_at - paused)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            percent=self.percent,
            step=self.step,
            eta=self.eta,
            accepted_items=tuple(self.accepted_items),
            target_count=self.target_count,
            completed_count=self.completed_count,
            rate_estimate=self.rate_estimate,
            last_error=self.last_error,
            notifications=tuple(self.notifications),
        )
