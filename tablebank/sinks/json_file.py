"""JSON file sink for exporting ledger data to files."""

import json
import logging
from pathlib import Path
from typing import Any

from tablebank.exceptions import SinkError
from tablebank.models.base import Event
from tablebank.sinks.serialization import to_dict, to_json

logger = logging.getLogger(__name__)


class JsonFileSink:
    """Output ledger tables to JSON files and events to a JSON Lines file."""

    def __init__(self, output_dir: str | Path, pretty: bool = False) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write JSON files.
        pretty : bool
            Pretty-print JSON output.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.pretty = pretty
        self._counts: dict[str, int] = {}
        self._events_file = None

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of records to ``<entity_type>.json``."""
        file_path = self.output_dir / f"{entity_type}.json"
        data = [to_dict(record) for record in records]

        try:
            with open(file_path, "w", encoding="utf-8") as f:
                if self.pretty:
                    json.dump(data, f, indent=2, ensure_ascii=False, default=str)
                else:
                    json.dump(data, f, ensure_ascii=False, default=str)
        except OSError as e:
            raise SinkError(f"Failed to write {file_path}: {e}") from e

        self._counts[entity_type] = len(records)

    def publish(self, event: Event) -> None:
        """Append a ledger event to ``events.jsonl``."""
        if self._events_file is None:
            self._events_file = open(self.output_dir / "events.jsonl", "a", encoding="utf-8")
        self._events_file.write(to_json(event) + "\n")
        self._counts["events"] = self._counts.get("events", 0) + 1

    def close(self) -> None:
        """Close the event log and log a summary."""
        if self._events_file is not None:
            self._events_file.close()
            self._events_file = None
        logger.info("JSON files written to: %s", self.output_dir)
        for entity_type, count in self._counts.items():
            logger.info("  %s: %d records", entity_type, count)
