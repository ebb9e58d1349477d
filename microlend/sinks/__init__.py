"""Output sinks for exporting ledgers, reports and events."""

from microlend.sinks.console import ConsoleSink
from microlend.sinks.json_file import JsonFileSink
from microlend.sinks.kafka import KafkaSink

__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink"]
