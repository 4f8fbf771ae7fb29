"""Output sinks for exporting ledger data and events."""

from tablebank.sinks.console import ConsoleSink
from tablebank.sinks.json_file import JsonFileSink
from tablebank.sinks.kafka import KafkaSink

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink"]
