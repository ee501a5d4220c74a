"""Aggregate statistics over generated conversations."""

import math
from dataclasses import dataclass
from typing import Any

import pandas as pd
from loguru import logger

from .models import GeneratedConversation

SCORE_COLUMNS = ["coherence", "politeness", "relevance", "resolution"]
_ROW_COLUMNS = [
    "id",
    "date",
    "shift",
    "scenario",
    "customer_name",
    *SCORE_COLUMNS,
    "cpr_score",
    "escalated",
]
_AGGREGATE_COLUMNS = [
    "conversations",
    "evaluated",
    *SCORE_COLUMNS,
    "cpr_score",
    "escalation_rate",
]


@dataclass(frozen=True)
class RunSummary:
    """Headline numbers for a set of conversations.

    Averages and the escalation rate cover evaluated conversations only and are
    None when nothing was evaluated.
    """

    total: int
    evaluated: int
    escalated: int
    escalation_rate: float | None
    avg_coherence: float | None
    avg_politeness: float | None
    avg_relevance: float | None
    avg_resolution: float | None
    avg_cpr_score: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "evaluated": self.evaluated,
            "escalated": self.escalated,
            "escalation_rate": self.escalation_rate,
            "avg_coherence": self.avg_coherence,
            "avg_politeness": self.avg_politeness,
            "avg_relevance": self.avg_relevance,
            "avg_resolution": self.avg_resolution,
            "avg_cpr_score": self.avg_cpr_score,
        }


def flatten_conversation(item: GeneratedConversation) -> dict[str, Any]:
    """Flatten a conversation into a single-level dict.

    Unevaluated conversations get NaN scores so pandas skips them in means.
    """
    scores = item.scores
    flat: dict[str, Any] = {
        "id": item.id,
        "date": item.scheduled_at.date(),
        "shift": str(item.shift),
        "scenario": item.scenario,
        "customer_name": item.customer_name,
    }
    for column in SCORE_COLUMNS:
        flat[column] = getattr(scores, column) if scores else math.nan
    flat["cpr_score"] = scores.cpr_score if scores else math.nan
    flat["escalated"] = float(item.escalated) if scores else math.nan
    return flat


def to_dataframe(items: list[GeneratedConversation]) -> pd.DataFrame:
    """One row per conversation, in the given order."""
    if not items:
        return pd.DataFrame(columns=_ROW_COLUMNS)
    return pd.DataFrame([flatten_conversation(item) for item in items])


def _mean_or_none(series: pd.Series) -> float | None:
    value = series.mean()
    return None if pd.isna(value) else float(value)


def summarize(items: list[GeneratedConversation]) -> RunSummary:
    """Summarize a run or a set of stored conversations.

    Args:
        items: Conversations to summarize.

    Returns:
        RunSummary: Totals, escalation rate and mean scores.
    """
    if not items:
        return RunSummary(
            total=0,
            evaluated=0,
            escalated=0,
            escalation_rate=None,
            avg_coherence=None,
            avg_politeness=None,
            avg_relevance=None,
            avg_resolution=None,
            avg_cpr_score=None,
        )

    df = to_dataframe(items)
    evaluated = int(df["coherence"].notna().sum())
    escalated = int((df["escalated"] == 1.0).sum())

    return RunSummary(
        total=len(df),
        evaluated=evaluated,
        escalated=escalated,
        escalation_rate=escalated / evaluated if evaluated else None,
        avg_coherence=_mean_or_none(df["coherence"]),
        avg_politeness=_mean_or_none(df["politeness"]),
        avg_relevance=_mean_or_none(df["relevance"]),
        avg_resolution=_mean_or_none(df["resolution"]),
        avg_cpr_score=_mean_or_none(df["cpr_score"]),
    )


def _aggregate(df: pd.DataFrame, key: str) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=[key, *_AGGREGATE_COLUMNS])

    numeric = df[[key, *SCORE_COLUMNS, "cpr_score", "escalated"]].astype(
        {column: "float64" for column in [*SCORE_COLUMNS, "cpr_score", "escalated"]}
    )
    grouped = numeric.groupby(key, sort=True)
    result = grouped[[*SCORE_COLUMNS, "cpr_score"]].mean()
    result["conversations"] = grouped.size()
    result["evaluated"] = grouped["coherence"].count()
    result["escalation_rate"] = grouped["escalated"].mean()
    return result.reset_index()[[key, *_AGGREGATE_COLUMNS]]


def aggregate_by_day(items: list[GeneratedConversation]) -> pd.DataFrame:
    """Per-day counts and mean scores, ordered by date.

    Args:
        items: Conversations to aggregate.

    Returns:
        pd.DataFrame: Columns ``date, conversations, evaluated, coherence,
        politeness, relevance, resolution, cpr_score, escalation_rate``.
    """
    df = _aggregate(to_dataframe(items), "date")
    logger.debug(f"Aggregated {len(items)} conversations into {len(df)} days")
    return df


def aggregate_by_shift(items: list[GeneratedConversation]) -> pd.DataFrame:
    """Per-shift counts and mean scores."""
    return _aggregate(to_dataframe(items), "shift")
