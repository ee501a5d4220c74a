import asyncio
from datetime import date

import pytest

from chatlog_synth.clients.base import EvaluationErr
from chatlog_synth.constants import LogMessage, SessionStatus, Shift
from chatlog_synth.errors import (
    CredentialRejectedError,
    NoWorkingDaysError,
    RequestValidationError,
)
from chatlog_synth.orchestrator import GenerationOrchestrator
from chatlog_synth.similarity import similarity_score
from tests.fakes import FakeEvaluator, FakeGenerator, FakeStore, make_params, unique_text


def make_orchestrator(generator, evaluator, rng, **kwargs) -> GenerationOrchestrator:
    return GenerationOrchestrator(generator=generator, evaluator=evaluator, rng=rng, **kwargs)


async def wait_for_calls(generator: FakeGenerator, count: int) -> None:
    async def _poll():
        while len(generator.calls) < count:
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout=1)


async def test_monday_tuesday_yields_morning_then_evening(generator, evaluator, store, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng, store=store)

    snapshot = await orchestrator.run(make_params())

    assert snapshot.status == SessionStatus.COMPLETED
    assert snapshot.step == LogMessage.COMPLETE
    assert snapshot.percent == 100
    assert [item.shift for item in snapshot.accepted_items] == [Shift.MORNING, Shift.EVENING]
    assert [item.scheduled_at.date() for item in snapshot.accepted_items] == [
        date(2024, 1, 1),
        date(2024, 1, 2),
    ]
    assert snapshot.evaluated_count == 2
    assert len(store.records) == 2
    assert snapshot.notifications == ()


async def test_scheduled_times_fall_inside_shift(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params(per_day=3))

    morning, evening = snapshot.accepted_items[:3], snapshot.accepted_items[3:]
    assert all(8 <= item.scheduled_at.hour < 14 for item in morning)
    assert all(14 <= item.scheduled_at.hour < 20 for item in evening)


async def test_weekend_only_range_fails_to_start(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    with pytest.raises(NoWorkingDaysError, match="No working days"):
        orchestrator.start(make_params(date(2024, 1, 6), date(2024, 1, 7)))

    assert orchestrator.snapshot().status == SessionStatus.IDLE
    assert generator.calls == []


async def test_invalid_request_lists_every_problem(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    with pytest.raises(RequestValidationError) as exc_info:
        orchestrator.start(make_params(credential="", agent_name=" "))

    assert exc_info.value.problems == [
        "An API key is required",
        "You must be signed in as an agent",
    ]
    assert orchestrator.snapshot().status == SessionStatus.IDLE


async def test_generator_failure_skips_the_slot(evaluator, rng):
    generator = FakeGenerator([RuntimeError("model overloaded")])
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params())

    assert snapshot.status == SessionStatus.COMPLETED
    assert [item.scheduled_at.date() for item in snapshot.accepted_items] == [date(2024, 1, 2)]
    assert snapshot.completed_count == 1
    assert snapshot.percent == 50
    assert snapshot.notifications == ("Error generating chatlog: model overloaded",)


async def test_evaluation_failure_keeps_item_unevaluated(generator, store, rng):
    evaluator = FakeEvaluator([EvaluationErr("invalid JSON")])
    orchestrator = make_orchestrator(generator, evaluator, rng, store=store)

    snapshot = await orchestrator.run(make_params())

    first, second = snapshot.accepted_items
    assert not first.evaluated
    assert first.escalated is None
    assert second.evaluated
    assert len(store.records) == 1
    assert len(orchestrator.session.evaluation_results) == 1
    assert any("invalid JSON" in note for note in snapshot.notifications)


async def test_evaluator_exception_does_not_block_next_item(generator, rng):
    evaluator = FakeEvaluator([ValueError("unexpected payload")])
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params())

    assert [item.evaluated for item in snapshot.accepted_items] == [False, True]
    assert len(evaluator.calls) == 2


async def test_duplicate_candidate_is_regenerated(evaluator, rng):
    first, other = unique_text(1), unique_text(2)
    generator = FakeGenerator([first, first, other])
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params(end=date(2024, 1, 1), per_day=2))

    assert [item.text for item in snapshot.accepted_items] == [first, other]
    assert len(generator.calls) == 3
    assert snapshot.completed_count == 2


async def test_slot_is_skipped_after_too_many_duplicates(evaluator, rng):
    text = unique_text(1)
    generator = FakeGenerator([text] * 20)
    orchestrator = make_orchestrator(generator, evaluator, rng, max_duplicate_retries=5)

    snapshot = await orchestrator.run(make_params(end=date(2024, 1, 1), per_day=2))

    assert len(snapshot.accepted_items) == 1
    assert len(generator.calls) == 1 + 6
    assert snapshot.notifications == ("Gave up on slot 2 of 2 after 6 duplicate candidates",)


async def test_accepted_items_are_pairwise_distinct(evaluator, rng):
    base = unique_text(7)
    generator = FakeGenerator([base, base + " extra", unique_text(8), base, unique_text(9)])
    orchestrator = make_orchestrator(generator, evaluator, rng)
    params = make_params(end=date(2024, 1, 1), per_day=3)

    snapshot = await orchestrator.run(params)

    texts = [item.text for item in snapshot.accepted_items]
    assert len(texts) == 3
    for i, text_a in enumerate(texts):
        for text_b in texts[i + 1 :]:
            assert similarity_score(text_a, text_b) <= params.similarity_threshold


async def test_percent_never_decreases(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)
    percents: list[float] = []
    orchestrator.add_listener(lambda snapshot: percents.append(snapshot.percent))

    await orchestrator.run(make_params(date(2024, 1, 1), date(2024, 1, 5), per_day=2))

    assert percents == sorted(percents)
    assert percents[-1] == 100


async def test_eta_is_reported_while_running(evaluator, rng, clock):
    generator = FakeGenerator(on_call=lambda: clock.advance(20))
    orchestrator = make_orchestrator(generator, evaluator, rng, clock=clock)
    etas: list[str | None] = []
    orchestrator.add_listener(lambda snapshot: etas.append(snapshot.eta))

    snapshot = await orchestrator.run(make_params(per_day=2))

    assert "~1m 6s remaining" in etas
    assert snapshot.eta is None
    assert snapshot.rate_estimate > 0


async def test_pause_freezes_progress_until_resume(evaluator, rng, clock):
    gate = asyncio.Event()
    generator = FakeGenerator(gate=gate)
    orchestrator = make_orchestrator(generator, evaluator, rng, clock=clock)

    task = orchestrator.start(make_params(end=date(2024, 1, 1), per_day=2))
    await wait_for_calls(generator, 1)
    assert orchestrator.pause()
    gate.set()
    for _ in range(20):
        await asyncio.sleep(0)

    paused = orchestrator.snapshot()
    assert paused.status == SessionStatus.PAUSED
    assert paused.completed_count == 0
    assert paused.step == LogMessage.PAUSED

    clock.advance(100)
    assert orchestrator.resume()
    final = await task

    assert final.status == SessionStatus.COMPLETED
    assert final.completed_count == 2
    assert orchestrator.session.paused_accumulated_ms == 100_000


async def test_pause_and_resume_are_ignored_when_not_applicable(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    assert not orchestrator.pause()
    assert not orchestrator.resume()
    assert not orchestrator.stop()
    assert orchestrator.snapshot().status == SessionStatus.IDLE


async def test_stop_keeps_accepted_items(evaluator, rng):
    generator = FakeGenerator(gate=asyncio.Event(), gate_from_call=2)
    orchestrator = make_orchestrator(generator, evaluator, rng)

    task = orchestrator.start(make_params(end=date(2024, 1, 1), per_day=3))
    await wait_for_calls(generator, 2)
    assert orchestrator.stop()
    final = await task

    assert final.status == SessionStatus.STOPPED
    assert final.step == LogMessage.STOPPED
    assert len(final.accepted_items) == 1
    assert not orchestrator.pause()
    assert orchestrator.snapshot().status == SessionStatus.STOPPED


async def test_stop_while_paused(evaluator, rng):
    generator = FakeGenerator(gate=asyncio.Event())
    orchestrator = make_orchestrator(generator, evaluator, rng)

    task = orchestrator.start(make_params())
    await wait_for_calls(generator, 1)
    orchestrator.pause()
    orchestrator.stop()
    final = await task

    assert final.status == SessionStatus.STOPPED
    assert final.accepted_items == ()
    assert orchestrator.session.pause_started_at is None


async def test_hung_call_times_out_as_item_failure(evaluator, rng):
    generator = FakeGenerator(gate=asyncio.Event())
    orchestrator = make_orchestrator(generator, evaluator, rng, call_timeout=0.05)

    snapshot = await orchestrator.run(make_params(end=date(2024, 1, 1)))

    assert snapshot.status == SessionStatus.COMPLETED
    assert snapshot.accepted_items == ()
    assert "timed out" in snapshot.notifications[0]


async def test_rejected_credential_fails_the_run(evaluator, rng):
    generator = FakeGenerator([CredentialRejectedError("Incorrect API key provided")])
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params())

    assert snapshot.status == SessionStatus.FAILED
    assert snapshot.last_error == "Incorrect API key provided"
    assert snapshot.accepted_items == ()


async def test_persistence_failure_is_not_fatal(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng, store=FakeStore(fail=True))

    snapshot = await orchestrator.run(make_params())

    assert snapshot.status == SessionStatus.COMPLETED
    assert len(snapshot.accepted_items) == 2
    assert len(snapshot.notifications) == 2
    assert all("Error saving chat log" in note for note in snapshot.notifications)


async def test_start_rejected_while_running(evaluator, rng):
    generator = FakeGenerator(gate=asyncio.Event())
    orchestrator = make_orchestrator(generator, evaluator, rng)

    task = orchestrator.start(make_params())
    with pytest.raises(RequestValidationError, match="already in progress"):
        orchestrator.start(make_params())

    orchestrator.stop()
    await task


async def test_new_run_archives_previous_session(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    first = await orchestrator.run(make_params())
    second = await orchestrator.run(make_params())

    assert len(orchestrator.archived) == 1
    assert orchestrator.archived[0].accepted_items == list(first.accepted_items)
    assert second.status == SessionStatus.COMPLETED


async def test_zero_volume_run_completes_at_full_progress(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    snapshot = await orchestrator.run(make_params(per_day=0))

    assert snapshot.status == SessionStatus.COMPLETED
    assert snapshot.percent == 100
    assert generator.calls == []


async def test_failing_listener_does_not_stop_the_run(generator, evaluator, rng):
    orchestrator = make_orchestrator(generator, evaluator, rng)

    def broken(snapshot):
        raise RuntimeError("display gone")

    orchestrator.add_listener(broken)
    snapshot = await orchestrator.run(make_params())

    assert snapshot.status == SessionStatus.COMPLETED
