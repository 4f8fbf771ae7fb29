"""Tests for console, JSON file and Kafka sinks."""

import json
import tempfile
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tablebank.config import KafkaConfig
from tablebank.models import Event, Loan, LoanStatus, Repayment
from tablebank.sinks.console import ConsoleSink
from tablebank.sinks.json_file import JsonFileSink


def _loan() -> Loan:
    return Loan(
        loan_id="loan-001",
        member_id="mem-001",
        principal=Decimal("5000.00"),
        annual_rate_percent=Decimal("10"),
        issue_date=date(2024, 1, 1),
        due_date=date(2024, 12, 31),
    )


def _event() -> Event:
    return Event(
        event_id="evt-001",
        event_type="loan.completed",
        event_time=datetime(2024, 7, 1, 12, 0),
        source="tablebank",
        subject="loan-001",
        data={"balance": "0.00", "status": "Completed"},
    )


class TestConsoleSink:
    """Tests for ConsoleSink."""

    def test_init_default(self) -> None:
        """Test default initialization."""
        sink = ConsoleSink()

        assert sink.pretty is True
        assert sink.max_records is None
        assert sink._counts == {}

    def test_write_batch_dataclass(self, capsys: pytest.CaptureFixture) -> None:
        """Test writing batch of ledger records."""
        sink = ConsoleSink(pretty=False)

        sink.write_batch("loans", [_loan()])
        captured = capsys.readouterr()

        assert "Entity: loans (1 records)" in captured.out
        assert '"principal": "5000.00"' in captured.out
        assert '"status": "Ongoing"' in captured.out

    def test_write_batch_with_max_records(self, capsys: pytest.CaptureFixture) -> None:
        """Test max_records truncation."""
        sink = ConsoleSink(pretty=False, max_records=2)

        sink.write_batch("rows", [{"id": i} for i in range(5)])
        captured = capsys.readouterr()

        assert "... and 3 more records" in captured.out
        assert sink._counts["rows"] == 5

    def test_publish_event(self, capsys: pytest.CaptureFixture) -> None:
        """Test printing a ledger event."""
        sink = ConsoleSink(pretty=False)

        sink.publish(_event())
        captured = capsys.readouterr()

        assert '"event_type": "loan.completed"' in captured.out
        assert sink._counts["loan.completed"] == 1

    def test_close(self, capsys: pytest.CaptureFixture) -> None:
        """Test close prints summary."""
        sink = ConsoleSink()
        sink._counts = {"loans": 3}

        sink.close()
        captured = capsys.readouterr()

        assert "Console Sink Summary" in captured.out
        assert "loans: 3 records" in captured.out


class TestJsonFileSink:
    """Tests for JsonFileSink."""

    def test_init_creates_directory(self) -> None:
        """Test that init creates output directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            output_dir = Path(tmpdir) / "nested" / "output"
            JsonFileSink(output_dir)

            assert output_dir.exists()

    def test_write_batch(self) -> None:
        """Test writing ledger records to a JSON file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = JsonFileSink(tmpdir)
            sink.write_batch("loans", [_loan()])

            with open(Path(tmpdir) / "loans.json") as f:
                data = json.load(f)

            assert data[0]["loan_id"] == "loan-001"
            assert data[0]["principal"] == "5000.00"
            assert data[0]["issue_date"] == "2024-01-01"
            assert data[0]["strategy"] == "CONTINUOUS_ACCRUAL"

    def test_write_batch_pretty(self) -> None:
        """Test pretty JSON output."""
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = JsonFileSink(tmpdir, pretty=True)
            sink.write_batch("rows", [{"id": 1}])

            content = (Path(tmpdir) / "rows.json").read_text()
            assert "\n" in content

    def test_publish_appends_jsonl(self) -> None:
        """Test events are appended to events.jsonl."""
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = JsonFileSink(tmpdir)
            sink.publish(_event())
            sink.publish(_event())
            sink.close()

            lines = (Path(tmpdir) / "events.jsonl").read_text().splitlines()
            assert len(lines) == 2
            assert json.loads(lines[0])["subject"] == "loan-001"


class TestKafkaSink:
    """Tests for KafkaSink using a mocked producer."""

    @patch("tablebank.sinks.kafka.Producer")
    def test_init_with_string(self, mock_producer_class: MagicMock) -> None:
        """Test KafkaSink initialization with string."""
        from tablebank.sinks.kafka import KafkaSink

        sink = KafkaSink("localhost:9092")

        assert sink.config.bootstrap_servers == "localhost:9092"
        mock_producer_class.assert_called_once()
        assert mock_producer_class.call_args[0][0]["bootstrap.servers"] == "localhost:9092"

    @patch("tablebank.sinks.kafka.Producer")
    def test_init_with_config(self, mock_producer_class: MagicMock) -> None:
        """Test KafkaSink initialization with KafkaConfig."""
        from tablebank.sinks.kafka import KafkaSink

        config = KafkaConfig(bootstrap_servers="kafka:9092", acks="1", topic_prefix="chama")
        sink = KafkaSink(config)

        assert sink.config is config
        assert sink.topic_for("registration_fees") == "chama.registration-fees"

    @patch("tablebank.sinks.kafka.Producer")
    def test_write_batch_keys_by_entity(self, mock_producer_class: MagicMock) -> None:
        """Test batch records are keyed by their entity id."""
        from tablebank.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer_class.return_value = mock_producer

        sink = KafkaSink("localhost:9092")
        repayments = [
            Repayment(f"r{i}", "loan-001", Decimal("100"), date(2024, 2, 1)) for i in range(3)
        ]
        sink.write_batch("repayments", repayments)

        assert mock_producer.produce.call_count == 3
        call_kwargs = mock_producer.produce.call_args[1]
        assert call_kwargs["topic"] == "tablebank.repayments"
        assert call_kwargs["key"] == b"loan-001"
        assert json.loads(call_kwargs["value"])["amount_paid"] == "100"
        mock_producer.flush.assert_called_once()
        assert sink.stats.sent == 3

    @patch("tablebank.sinks.kafka.Producer")
    def test_write_batch_unknown_entity_has_no_key(self, mock_producer_class: MagicMock) -> None:
        """Test records of unknown entities are sent without a key."""
        from tablebank.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer_class.return_value = mock_producer

        KafkaSink("localhost:9092").write_batch("audit", [{"id": 1}])

        assert mock_producer.produce.call_args[1]["key"] is None

    @patch("tablebank.sinks.kafka.Producer")
    def test_publish_event(self, mock_producer_class: MagicMock) -> None:
        """Test events go to the entity event topic keyed by subject."""
        from tablebank.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer_class.return_value = mock_producer

        sink = KafkaSink("localhost:9092")
        sink.publish(_event())

        call_kwargs = mock_producer.produce.call_args[1]
        assert call_kwargs["topic"] == "tablebank.loan-events"
        assert call_kwargs["key"] == b"loan-001"
        payload = json.loads(call_kwargs["value"])
        assert payload["event_type"] == "loan.completed"
        assert payload["event_time"] == "2024-07-01T12:00:00"

    @patch("tablebank.sinks.kafka.Producer")
    def test_delivery_callback(self, mock_producer_class: MagicMock) -> None:
        """Test delivery callback counts successes and failures."""
        from tablebank.sinks.kafka import KafkaSink

        sink = KafkaSink("localhost:9092")
        mock_msg = MagicMock()
        mock_msg.topic.return_value = "tablebank.loans"
        mock_msg.partition.return_value = 0
        mock_msg.offset.return_value = 1

        sink._delivery_callback(None, mock_msg)
        sink._delivery_callback("Connection error", None)

        assert sink.stats.delivered == 1
        assert sink.stats.failed == 1
        assert sink.stats.success_rate == 0.5

    @patch("tablebank.sinks.kafka.Producer")
    def test_close_flushes(self, mock_producer_class: MagicMock) -> None:
        """Test close flushes the producer."""
        from tablebank.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer_class.return_value = mock_producer

        KafkaSink("localhost:9092").close()

        mock_producer.flush.assert_called_once_with(30.0)

    @patch("tablebank.sinks.kafka.Producer")
    def test_as_store_listener(self, mock_producer_class: MagicMock, store, sample_member_id) -> None:
        """Test a store publishes approvals through the sink."""
        from tablebank.models import LoanRequest
        from tablebank.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer_class.return_value = mock_producer
        sink = KafkaSink("localhost:9092")
        store.listeners.append(sink.publish)

        store.approve_loan(
            LoanRequest(sample_member_id, "1000", date(2024, 1, 1), date(2024, 6, 1), loan_id="loan-k"),
            as_of=date(2024, 1, 1),
        )

        call_kwargs = mock_producer.produce.call_args[1]
        assert call_kwargs["key"] == b"loan-k"
        payload = json.loads(call_kwargs["value"])
        assert payload["event_type"] == "loan.approved"
        assert payload["data"]["status"] == LoanStatus.ONGOING.value


class TestProducerStats:
    """Tests for ProducerStats."""

    def test_success_rate_empty(self) -> None:
        from tablebank.sinks.kafka import ProducerStats

        assert ProducerStats().success_rate == 0.0
