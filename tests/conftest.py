import random
from datetime import datetime

import pytest

from chatlog_synth.constants import Shift
from chatlog_synth.models import EvaluationScores, GeneratedConversation
from tests.fakes import FakeClock, FakeEvaluator, FakeGenerator, FakeStore


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def conversations() -> list[GeneratedConversation]:
    """Two evaluated Monday-morning conversations and one unevaluated Tuesday one."""
    return [
        GeneratedConversation(
            id="1-1-0",
            text='CUSTOMER_NAME: Pat Doe\n[08:10] Customer: Where is my order, "again"?\n[08:11] Agent Jane: Let me check, one moment.',
            customer_name="Pat Doe",
            scenario="Service complaint - delivery delay",
            shift=Shift.MORNING,
            scheduled_at=datetime(2024, 1, 1, 8, 10),
            scores=EvaluationScores(coherence=4, politeness=5, relevance=4, resolution=1),
        ),
        GeneratedConversation(
            id="1-1-1",
            text="CUSTOMER_NAME: Lee Wong\n[09:30] Customer: I was charged twice.\n[09:32] Agent Jane: Please hold.",
            customer_name="Lee Wong",
            scenario="Billing issue - unexpected charge",
            shift=Shift.MORNING,
            scheduled_at=datetime(2024, 1, 1, 9, 30),
            scores=EvaluationScores(coherence=2, politeness=3, relevance=2, resolution=0),
        ),
        GeneratedConversation(
            id="2-2-0",
            text="CUSTOMER_NAME: Sam Ortiz\n[15:00] Customer: The site is down.",
            customer_name="Sam Ortiz",
            scenario="Technical support - website error",
            shift=Shift.EVENING,
            scheduled_at=datetime(2024, 1, 2, 15, 0),
        ),
    ]
