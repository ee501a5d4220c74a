from chatlog_synth.constants import CsvColumn
from chatlog_synth.storage import ConversationStorage

CSV_HEADER = "chatlog,scenario,shift,dateTime,customerName,coherence,politeness,relevance,resolution,escalated"


def test_csv_header_and_quoting(conversations, tmp_path):
    path = tmp_path / "chatlogs.csv"

    ConversationStorage().export_csv(conversations=conversations, filepath=path)

    raw = path.read_text()
    assert raw.splitlines()[0] == CSV_HEADER
    assert '""again""' in raw


def test_csv_round_trip_preserves_fields(conversations, tmp_path):
    path = tmp_path / "chatlogs.csv"
    storage = ConversationStorage()

    storage.export_csv(conversations=conversations, filepath=path)
    rows = storage.load_csv(filepath=path)

    assert len(rows) == len(conversations)
    for row, item in zip(rows, conversations):
        assert row[CsvColumn.CHATLOG] == item.text
        assert row[CsvColumn.SCENARIO] == item.scenario
        assert row[CsvColumn.SHIFT] == item.shift
        assert row[CsvColumn.CUSTOMER_NAME] == item.customer_name
        assert row[CsvColumn.ESCALATED] == item.escalated
        if item.scores:
            assert row[CsvColumn.COHERENCE] == item.scores.coherence
            assert row[CsvColumn.POLITENESS] == item.scores.politeness
            assert row[CsvColumn.RELEVANCE] == item.scores.relevance
            assert row[CsvColumn.RESOLUTION] == item.scores.resolution
    assert rows[0][CsvColumn.DATE_TIME] == "2024-01-01 08:10"


def test_unevaluated_rows_have_empty_score_cells(conversations, tmp_path):
    path = tmp_path / "chatlogs.csv"
    storage = ConversationStorage()

    storage.export_csv(conversations=conversations, filepath=path)
    row = storage.load_csv(filepath=path)[2]

    assert row[CsvColumn.COHERENCE] is None
    assert row[CsvColumn.RESOLUTION] is None
    assert row[CsvColumn.ESCALATED] is None


def test_empty_export_writes_header_only(tmp_path):
    path = tmp_path / "chatlogs.csv"

    ConversationStorage().export_csv(conversations=[], filepath=path)

    assert path.read_text().strip() == CSV_HEADER


def test_json_round_trip(conversations, tmp_path):
    path = tmp_path / "chatlogs.json"
    storage = ConversationStorage()

    storage.save_conversations(conversations=conversations, filepath=path)

    assert storage.load_conversations(filepath=path) == conversations
