"""Kafka consumer used when rain telemetry is bridged onto Kafka.

Wraps ``confluent-kafka`` so the aggregator only sees
``(topic, payload)`` pairs, same as with MQTT. Payloads are raw UTF-8
text, not JSON.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

import structlog

from shared.errors import TransportFault
from shared.config import Settings, get_settings

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[str, str], None]


class KafkaTelemetryClient:
    """Blocking confluent_kafka consume loop running in a daemon thread."""

    kind = "kafka"

    def __init__(
        self,
        topics: List[str],
        on_message: MessageHandler,
        settings: Optional[Settings] = None,
        group_id: str = "aggregator",
        poll_timeout: float = 1.0,
    ) -> None:
        self.topics = list(topics)
        self._on_message_cb = on_message
        self._settings = settings or get_settings()
        self._group_id = group_id
        self._poll_timeout = poll_timeout
        self._consumer: Any = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self.faults = 0

    @property
    def is_connected(self) -> bool:
        return self._running and self._consumer is not None

    def start(self) -> None:
        """Subscribe and start polling in the background."""
        from confluent_kafka import Consumer, KafkaException  # lazy import

        s = self._settings
        try:
            self._consumer = Consumer(
                {
                    "bootstrap.servers": s.KAFKA_BOOTSTRAP_SERVERS,
                    "group.id": f"{s.KAFKA_GROUP_PREFIX}.{self._group_id}",
                    "auto.offset.reset": "latest",
                    "enable.auto.commit": True,
                }
            )
            self._consumer.subscribe(self.topics)
        except KafkaException as e:
            self._fault("kafka_subscribe_failed", error=str(e))
            raise TransportFault(f"cannot start Kafka consumer: {e}") from e

        self._running = True
        self._thread = threading.Thread(
            target=self._consume_loop, name="kafka-telemetry", daemon=True
        )
        self._thread.start()
        logger.info(
            "kafka_consumer_init",
            group=self._group_id,
            topics=self.topics,
            bootstrap=s.KAFKA_BOOTSTRAP_SERVERS,
        )

    def stop(self) -> None:
        """Signal the consume loop to stop and wait for it."""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=self._poll_timeout * 3)
            self._thread = None

    def _consume_loop(self) -> None:
        """Blocking Kafka consume loop (runs in a thread)."""
        try:
            while self._running:
                msg = self._consumer.poll(self._poll_timeout)
                if msg is None:
                    continue
                if msg.error():
                    self._fault("kafka_consume_error", error=str(msg.error()))
                    continue
                try:
                    payload = msg.value().decode("utf-8")
                except (AttributeError, UnicodeDecodeError):
                    logger.error("kafka_bad_message", topic=msg.topic())
                    continue
                self._on_message_cb(msg.topic(), payload)
        finally:
            self._consumer.close()
            self._consumer = None
            logger.info("kafka_consumer_closed")

    def _fault(self, event: str, **kw: Any) -> None:
        self.faults += 1
        logger.error("transport_fault", transport=self.kind, fault=event, **kw)
