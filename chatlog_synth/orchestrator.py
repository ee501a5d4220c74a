"""Control loop that generates, deduplicates, evaluates and saves conversations."""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import TypeVar

from loguru import logger

from .backend import build_persistence_record
from .clients.base import (
    ConversationEvaluator,
    ConversationGenerator,
    ConversationStore,
    EvaluationOk,
)
from .constants import (
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_MAX_DUPLICATE_RETRIES,
    MS_PER_SECOND,
    SCENARIOS,
    LogMessage,
    SessionStatus,
)
from .errors import CredentialRejectedError, NoWorkingDaysError, RequestValidationError
from .models import (
    GeneratedConversation,
    GenerationParams,
    GenerationRequest,
    WorkUnit,
    make_conversation_id,
)
from .progress import ProgressEstimator, format_remaining
from .schedule import build_schedule, plan_volume, scheduled_time
from .session import GenerationSession, SessionSnapshot
from .similarity import find_duplicate

T = TypeVar("T")

SessionListener = Callable[[SessionSnapshot], None]


class _StopRequested(Exception):
    """Raised inside the loop once stop() has been called."""


class GenerationOrchestrator:
    """Drives one generation run at a time and owns its session.

    The run is a single asyncio task that handles one conversation at a time:
    generate, reject near-duplicates of already accepted conversations,
    evaluate, accept, then save. Per-item failures are logged and reported as
    notifications without ending the run. ``pause`` suspends the loop at the
    next checkpoint; ``stop`` ends it there and also cancels an external call
    that is still in flight. Every external call is bounded by
    ``call_timeout``.

    Attributes:
        generator: Produces conversation transcripts.
        evaluator: Scores transcripts against the rubric.
        store: Optional backend that receives evaluated conversations.
        session: State of the current (or last) run.
        archived: Sessions of earlier runs, oldest first.
        estimator: Remaining-time estimator for the current run.
    """

    def __init__(
        self,
        *,
        generator: ConversationGenerator,
        evaluator: ConversationEvaluator,
        store: ConversationStore | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        scenarios: Sequence[str] = SCENARIOS,
        call_timeout: float | None = DEFAULT_CALL_TIMEOUT_SECONDS,
        max_duplicate_retries: int = DEFAULT_MAX_DUPLICATE_RETRIES,
    ):
        """Initialize the orchestrator.

        Args:
            generator: Conversation generator.
            evaluator: Conversation evaluator.
            store: Backend for evaluated conversations; nothing is saved without one.
            rng: Random source for volumes, start times and scenarios.
            clock: Monotonic clock in seconds.
            scenarios: Scenario catalog to draw from.
            call_timeout: Seconds before an external call is abandoned; None disables.
            max_duplicate_retries: Duplicate candidates tolerated per slot before skipping it.
        """
        self.generator = generator
        self.evaluator = evaluator
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock
        self.scenarios = tuple(scenarios)
        self.call_timeout = call_timeout
        self.max_duplicate_retries = max_duplicate_retries

        self.session = GenerationSession()
        self.archived: list[GenerationSession] = []
        self.estimator = ProgressEstimator()
        self._listeners: list[SessionListener] = []
        self._task: asyncio.Task[SessionSnapshot] | None = None
        self._stop_event = asyncio.Event()
        self._resume_event = asyncio.Event()

    # ------------------------------------------------------------------ control

    def add_listener(self, listener: SessionListener) -> None:
        """Register a callback that receives a snapshot after every state change."""
        self._listeners.append(listener)

    def snapshot(self) -> SessionSnapshot:
        """Current session state with a freshly computed remaining-time estimate."""
        session = self.session
        if session.status == SessionStatus.RUNNING and session.percent > 0:
            elapsed = session.effective_elapsed(self.clock())
            session.eta = format_remaining(
                self.estimator.estimate_remaining(session.percent, elapsed)
            )
        return session.snapshot()

    def start(self, params: GenerationParams) -> "asyncio.Task[SessionSnapshot]":
        """Validate the request, plan the run and launch it.

        Must be called from inside a running event loop.

        Args:
            params: Run parameters.

        Returns:
            asyncio.Task[SessionSnapshot]: The run; resolves to the final snapshot.

        Raises:
            RequestValidationError: If a run is active or the request is invalid.
            NoWorkingDaysError: If the date range holds no working days.
        """
        if self.session.is_active:
            raise RequestValidationError("A generation run is already in progress")

        params.validate()
        work_units = build_schedule(params.start_date, params.end_date)
        if not work_units:
            raise NoWorkingDaysError(params.start_date, params.end_date)
        plan = plan_volume(work_units, params.min_per_day, params.max_per_day, self.rng)
        target_count = sum(count for _, count in plan)

        if self.session.status != SessionStatus.IDLE:
            self.archived.append(self.session)
        self.session = GenerationSession(
            status=SessionStatus.RUNNING,
            target_count=target_count,
            started_at=self.clock(),
            work_unit_count=len(work_units),
            step=LogMessage.PLAN.format(target_count, len(work_units)),
        )
        self.estimator.reset()
        self._stop_event = asyncio.Event()
        self._resume_event = asyncio.Event()
        self._resume_event.set()

        logger.info(LogMessage.INITIALIZING)
        logger.info(self.session.step)
        self._notify()

        self._task = asyncio.create_task(self._run(params, plan))
        return self._task

    async def run(self, params: GenerationParams) -> SessionSnapshot:
        """Start a run and wait for it to finish."""
        return await self.start(params)

    def pause(self) -> bool:
        """Suspend a running run. Returns False if there was nothing to pause."""
        if self.session.status != SessionStatus.RUNNING:
            return False
        self.session.status = SessionStatus.PAUSED
        self.session.pause_started_at = self.clock()
        self.session.step = LogMessage.PAUSED
        self._resume_event.clear()
        logger.info(LogMessage.PAUSED)
        self._notify()
        return True

    def resume(self) -> bool:
        """Continue a paused run. Returns False if the run was not paused."""
        if self.session.status != SessionStatus.PAUSED:
            return False
        self._end_pause()
        self.session.status = SessionStatus.RUNNING
        self.session.step = LogMessage.RESUMING
        self._resume_event.set()
        logger.info(LogMessage.RESUMING)
        self._notify()
        return True

    def stop(self) -> bool:
        """Ask the run to end; accepted conversations are kept.

        Returns:
            bool: False if no run was active.
        """
        if self.session.status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
            return False
        self._end_pause()
        self.session.status = SessionStatus.STOPPING
        self.session.step = LogMessage.STOPPING
        self._stop_event.set()
        self._resume_event.set()
        logger.info(LogMessage.STOPPING)
        self._notify()
        return True

    def _end_pause(self) -> None:
        session = self.session
        if session.pause_started_at is not None:
            paused_for = self.clock() - session.pause_started_at
            session.paused_accumulated_ms += paused_for * MS_PER_SECOND
            session.pause_started_at = None

    # --------------------------------------------------------------------- loop

    async def _run(
        self, params: GenerationParams, plan: list[tuple[WorkUnit, int]]
    ) -> SessionSnapshot:
        session = self.session
        try:
            for unit, count in plan:
                await self._checkpoint()
                self._set_step(
                    LogMessage.PROCESSING_UNIT.format(
                        count, f"{unit.date:%B} {unit.date.day}", unit.shift
                    )
                )
                logger.info(session.step)
                for index in range(count):
                    await self._fill_slot(params, unit, index, count)
        except _StopRequested:
            pass
        except Exception as e:
            logger.exception(LogMessage.FAILED.format(e))
            self._end_pause()
            session.status = SessionStatus.FAILED
            session.last_error = str(e)
            session.step = LogMessage.FAILED.format(e)
            self._notify()
            return session.snapshot()

        if self._stop_event.is_set():
            session.status = SessionStatus.STOPPED
            session.step = LogMessage.STOPPED
            logger.info(
                f"{LogMessage.STOPPED} Kept {len(session.accepted_items)} conversations"
            )
        else:
            session.status = SessionStatus.COMPLETED
            session.step = LogMessage.COMPLETE
            if session.target_count == 0:
                session.percent = 100.0
            logger.success(
                f"{LogMessage.COMPLETE} {len(session.accepted_items)} conversations accepted, "
                f"{len(session.evaluation_results)} evaluated"
            )
        session.eta = None
        self._notify()
        return session.snapshot()

    async def _checkpoint(self) -> None:
        """Honour stop and pause requests between steps."""
        if self._stop_event.is_set():
            raise _StopRequested
        if not self._resume_event.is_set():
            await self._resume_event.wait()
            if self._stop_event.is_set():
                raise _StopRequested

    async def _fill_slot(
        self, params: GenerationParams, unit: WorkUnit, index: int, count: int
    ) -> None:
        """Produce the conversation for one planned slot, or give the slot up."""
        duplicates = 0
        while True:
            await self._checkpoint()

            chat_time = scheduled_time(unit, self.rng)
            scenario = self.rng.choice(self.scenarios)
            request = GenerationRequest(
                agent_name=params.agent_name,
                scenario=scenario,
                behavior_pattern=params.behavior_pattern,
                min_turns=params.min_turns,
                max_turns=params.max_turns,
            )
            self._set_step(
                LogMessage.GENERATING.format(
                    index + 1, count, f"{chat_time:%H:%M}", scenario
                )
            )
            logger.debug(self.session.step)

            try:
                output = await self._guard(
                    self.generator.generate(
                        credential=params.credential,
                        model=params.model,
                        request=request,
                    )
                )
            except (_StopRequested, CredentialRejectedError):
                raise
            except Exception as e:
                self._warn(LogMessage.GENERATION_FAILED.format(e))
                return

            score = find_duplicate(
                output.conversation_text,
                (item.text for item in self.session.accepted_items),
                params.similarity_threshold,
            )
            if score is not None:
                duplicates += 1
                logger.warning(LogMessage.DUPLICATE.format(score))
                if duplicates > self.max_duplicate_retries:
                    self._warn(
                        LogMessage.DUPLICATE_LIMIT.format(index + 1, count, duplicates)
                    )
                    return
                continue

            item = GeneratedConversation(
                id=make_conversation_id(created_at=datetime.now(), unit=unit, index=index),
                text=output.conversation_text,
                customer_name=output.customer_name,
                scenario=scenario,
                shift=unit.shift,
                scheduled_at=chat_time,
            )
            await self._evaluate(params, item)
            await self._checkpoint()
            self._accept(item)
            await self._persist(params, item)
            return

    async def _evaluate(self, params: GenerationParams, item: GeneratedConversation) -> None:
        try:
            result = await self._guard(
                self.evaluator.evaluate(
                    credential=params.credential,
                    model=params.model,
                    prompt_template=params.prompt_template,
                    rubric_text=params.rubric_text,
                    conversation_text=item.text,
                )
            )
        except (_StopRequested, CredentialRejectedError):
            raise
        except Exception as e:
            self._warn(LogMessage.EVALUATION_FAILED.format(item.id, e))
            return

        if isinstance(result, EvaluationOk):
            item.attach_scores(result.scores)
        else:
            self._warn(LogMessage.EVALUATION_FAILED.format(item.id, result.message))

    def _accept(self, item: GeneratedConversation) -> None:
        session = self.session
        session.accepted_items.append(item)
        session.completed_count += 1
        if session.target_count > 0:
            session.percent = min(
                100.0, session.completed_count / session.target_count * 100
            )

        elapsed = session.effective_elapsed(self.clock())
        session.rate_estimate = self.estimator.record(session.percent, elapsed)
        session.eta = format_remaining(
            self.estimator.estimate_remaining(session.percent, elapsed)
        )
        self._notify()

    async def _persist(self, params: GenerationParams, item: GeneratedConversation) -> None:
        # Unevaluated conversations have no scores to store and stay in memory only
        if self.store is None or not item.evaluated:
            return
        record = build_persistence_record(
            item=item,
            agent_name=params.agent_name,
            behavior_pattern=params.behavior_pattern,
            model=params.model,
        )
        try:
            await self._guard(self.store.save([record]))
        except _StopRequested:
            raise
        except Exception as e:
            self._warn(LogMessage.PERSISTENCE_FAILED.format(item.id, e))

    async def _guard(self, call: Awaitable[T]) -> T:
        """Await an external call, bounded by the timeout and the stop signal.

        Raises:
            _StopRequested: If stop() was called before the call finished.
            TimeoutError: If the call took longer than ``call_timeout``.
        """
        call_task = asyncio.ensure_future(call)
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {call_task, stop_task},
                timeout=self.call_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_task.cancel()
            if not call_task.done():
                call_task.cancel()
                await asyncio.gather(call_task, return_exceptions=True)

        if call_task in done:
            return call_task.result()
        if self._stop_event.is_set():
            raise _StopRequested
        raise TimeoutError(f"External call timed out after {self.call_timeout}s")

    # ---------------------------------------------------------------- reporting

    def _set_step(self, step: str) -> None:
        self.session.step = step
        self._notify()

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.session.notifications.append(message)
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.session.snapshot()
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Session listener failed: {e}")
