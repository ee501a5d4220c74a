"""Storage for generated conversations."""

import json
from pathlib import Path
from typing import Any

import polars as pl
from loguru import logger

from .constants import (
    DATETIME_FORMAT,
    DEFAULT_CSV_OUTPUT,
    DEFAULT_JSON_OUTPUT,
    JSON_INDENT,
    CsvColumn,
    LogMessage,
)
from .models import GeneratedConversation

_CSV_SCHEMA: dict[str, pl.DataType] = {
    CsvColumn.CHATLOG: pl.String,
    CsvColumn.SCENARIO: pl.String,
    CsvColumn.SHIFT: pl.String,
    CsvColumn.DATE_TIME: pl.String,
    CsvColumn.CUSTOMER_NAME: pl.String,
    CsvColumn.COHERENCE: pl.Int64,
    CsvColumn.POLITENESS: pl.Int64,
    CsvColumn.RELEVANCE: pl.Int64,
    CsvColumn.RESOLUTION: pl.Int64,
    CsvColumn.ESCALATED: pl.Boolean,
}


def _csv_row(item: GeneratedConversation) -> dict[str, Any]:
    scores = item.scores
    return {
        CsvColumn.CHATLOG: item.text,
        CsvColumn.SCENARIO: item.scenario,
        CsvColumn.SHIFT: str(item.shift),
        CsvColumn.DATE_TIME: item.scheduled_at.strftime(DATETIME_FORMAT),
        CsvColumn.CUSTOMER_NAME: item.customer_name,
        CsvColumn.COHERENCE: scores.coherence if scores else None,
        CsvColumn.POLITENESS: scores.politeness if scores else None,
        CsvColumn.RELEVANCE: scores.relevance if scores else None,
        CsvColumn.RESOLUTION: scores.resolution if scores else None,
        CsvColumn.ESCALATED: item.escalated,
    }


class ConversationStorage:
    """Handles saving generated conversations to disk."""

    def save_conversations(
        self,
        *,
        conversations: list[GeneratedConversation],
        filepath: Path | str = DEFAULT_JSON_OUTPUT,
    ) -> None:
        """Save conversations to a JSON file.

        Args:
            conversations: Conversations to save, evaluated or not.
            filepath: Path where the JSON file should be saved.
        """
        filepath = Path(filepath)

        conversations_data = [convo.to_dict() for convo in conversations]

        with filepath.open("w") as f:
            json.dump(conversations_data, f, indent=JSON_INDENT, default=str)

        logger.success(
            LogMessage.SAVED_CONVERSATIONS.format(len(conversations), filepath)
        )

    def load_conversations(
        self, *, filepath: Path | str = DEFAULT_JSON_OUTPUT
    ) -> list[GeneratedConversation]:
        """Load conversations written by ``save_conversations``.

        Args:
            filepath: JSON file to read.

        Returns:
            list[GeneratedConversation]: Conversations in file order.
        """
        filepath = Path(filepath)

        with filepath.open("r") as f:
            data = json.load(f)

        conversations = [GeneratedConversation.from_dict(data=item) for item in data]
        logger.info(f"Loaded {len(conversations)} conversations from {filepath}")
        return conversations

    def export_csv(
        self,
        *,
        conversations: list[GeneratedConversation],
        filepath: Path | str = DEFAULT_CSV_OUTPUT,
    ) -> None:
        """Export conversations as CSV, one row per conversation.

        Missing scores are written as empty cells; fields containing commas,
        quotes or newlines are quoted with internal quotes doubled.

        Args:
            conversations: Conversations to export.
            filepath: Path where the CSV file should be saved.
        """
        filepath = Path(filepath)

        df = pl.DataFrame(
            [_csv_row(item) for item in conversations],
            schema=_CSV_SCHEMA,
        )
        df.write_csv(filepath)

        logger.success(LogMessage.SAVED_CSV.format(len(df), filepath))

    def load_csv(self, *, filepath: Path | str = DEFAULT_CSV_OUTPUT) -> list[dict[str, Any]]:
        """Read a CSV written by ``export_csv``.

        Returns:
            list[dict[str, Any]]: One dict per row keyed by column name; empty
            cells come back as None.
        """
        df = pl.read_csv(Path(filepath), schema_overrides=_CSV_SCHEMA)
        return df.to_dicts()
