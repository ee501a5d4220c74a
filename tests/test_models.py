from datetime import date, datetime

import pytest

from chatlog_synth.constants import Shift
from chatlog_synth.errors import NoWorkingDaysError, RequestValidationError
from chatlog_synth.models import (
    EvaluationScores,
    GeneratedConversation,
    WorkUnit,
    extract_customer_name,
    make_conversation_id,
    parse_chatlog,
    parse_timestamp,
)
from tests.fakes import make_params


def test_scores_derived_values():
    scores = EvaluationScores(coherence=4, politeness=5, relevance=3, resolution=0)

    assert scores.cpr_score == pytest.approx(4.0)
    assert scores.satisfaction_pct == 300


def test_escalated_only_known_after_evaluation():
    item = GeneratedConversation(
        id="x",
        text="t",
        customer_name="c",
        scenario="s",
        shift=Shift.NIGHT,
        scheduled_at=datetime(2024, 1, 1, 21, 0),
    )
    assert item.escalated is None
    assert not item.evaluated

    item.attach_scores(EvaluationScores(coherence=3, politeness=3, relevance=3, resolution=0))

    assert item.evaluated
    assert item.escalated is True


def test_to_dict_contains_derived_flags(conversations):
    data = conversations[1].to_dict()

    assert data["scheduled_at"] == "2024-01-01 09:30"
    assert data["evaluated"] is True
    assert data["escalated"] is True
    assert GeneratedConversation.from_dict(data=data) == conversations[1]


def test_valid_params_pass():
    make_params().validate()


def test_params_report_every_problem():
    params = make_params(
        start=date(2024, 1, 5),
        end=date(2024, 1, 1),
        model="",
        min_per_day=5,
        max_per_day=2,
        similarity_threshold=1.5,
    )

    with pytest.raises(RequestValidationError) as exc_info:
        params.validate()

    assert len(exc_info.value.problems) == 4
    assert "End date must not be before start date" in str(exc_info.value)


def test_missing_dates():
    with pytest.raises(RequestValidationError, match="start and end date"):
        make_params(start=None).validate()


def test_no_working_days_is_a_validation_error():
    error = NoWorkingDaysError(date(2024, 1, 6), date(2024, 1, 7))

    assert isinstance(error, RequestValidationError)
    assert str(error) == "No working days in range 2024-01-06 to 2024-01-07"


def test_conversation_ids_are_distinct_per_slot():
    created = datetime(2024, 1, 10, 12, 0, 0)
    unit = WorkUnit(date=date(2024, 1, 1), shift=Shift.MORNING)

    first = make_conversation_id(created_at=created, unit=unit, index=0)
    second = make_conversation_id(created_at=created, unit=unit, index=1)

    assert first != second
    assert first.endswith("-0")
    assert first.count("-") == 2


def test_parse_timestamp_formats():
    assert parse_timestamp("2024-01-01 08:30") == datetime(2024, 1, 1, 8, 30)
    assert parse_timestamp("2024-01-01T08:30:15") == datetime(2024, 1, 1, 8, 30, 15)
    assert parse_timestamp("2024-01-01T08:30:00Z").tzinfo is None


def test_parse_chatlog():
    chatlog = (
        "CUSTOMER_NAME: Ana Silva\n"
        "[09:00] Customer: Hello, my order is late.\n"
        "[09:01:30] Agent Jane Doe: Sorry about that: let me check.\n"
        "not a message line\n"
    )

    messages = parse_chatlog(chatlog)

    assert extract_customer_name(chatlog) == "Ana Silva"
    assert [m.speaker for m in messages] == ["Ana Silva", "Jane Doe"]
    assert messages[1].timestamp == "09:01:30"
    assert messages[1].content == "Sorry about that: let me check."


def test_parse_chatlog_without_customer_line():
    messages = parse_chatlog("[10:00] Customer: hi", customer_name="")

    assert messages[0].speaker == "Customer"
    assert extract_customer_name("[10:00] Customer: hi") is None
