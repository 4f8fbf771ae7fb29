"""Kafka sink for streaming ledger tables and change events."""

import logging
from dataclasses import dataclass, is_dataclass
from typing import Any

from confluent_kafka import Producer

from tablebank.config import KafkaConfig
from tablebank.models.base import Event
from tablebank.sinks.serialization import to_json

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Output ledger records and events to Kafka topics.

    Table topics are ``<prefix>.<entity>``; events go to
    ``<prefix>.<entity>-events`` keyed by the affected entity id, so all
    changes to one loan land on one partition in order.
    """

    # Entity to key field mapping
    KEY_FIELDS = {
        "members": "member_id",
        "loans": "loan_id",
        "repayments": "loan_id",
        "contributions": "member_id",
        "registration_fees": "member_id",
        "fines": "member_id",
        "external_funds": "fund_id",
        "expenses": "expense_id",
    }

    def __init__(self, config: KafkaConfig | str) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.producer = Producer(config.to_dict())
        self.stats = ProducerStats()

    def topic_for(self, entity_type: str) -> str:
        """Topic name for an entity table (``loans`` -> ``tablebank.loans``)."""
        return f"{self.config.topic_prefix}.{entity_type.replace('_', '-')}"

    def event_topic(self, event: Event) -> str:
        """Topic name for an event (``loan.completed`` -> ``tablebank.loan-events``)."""
        entity = event.event_type.split(".")[0]
        return f"{self.config.topic_prefix}.{entity}-events"

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Send a single record to a Kafka topic."""
        value = to_json(record).encode("utf-8")
        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8") if key else None,
            value=value,
            callback=self._delivery_callback,
        )
        self.stats.sent += 1
        self.producer.poll(0)

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of ledger records to the entity's topic."""
        topic = self.topic_for(entity_type)
        logger.info("Writing batch to %s: %d records", topic, len(records))

        for record in records:
            self.send(topic, record, self._get_key(entity_type, record))

        self.flush()
        logger.info(
            "Batch complete: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def publish(self, event: Event) -> None:
        """Send a ledger event (usable as a store listener)."""
        self.send(self.event_topic(event), event, event.subject)

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        self.producer.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def _get_key(self, entity_type: str, record: Any) -> str | None:
        """Extract message key from record based on entity type."""
        key_field = self.KEY_FIELDS.get(entity_type)
        if not key_field:
            return None

        if is_dataclass(record):
            return getattr(record, key_field, None)
        elif isinstance(record, dict):
            return record.get(key_field)
        return None
