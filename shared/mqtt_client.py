"""MQTT subscriber used to receive rain sensor telemetry.

Wraps ``paho-mqtt`` so the aggregator only sees ``(topic, payload)``
pairs. Reconnection is left to paho's network loop.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

import structlog

from shared.errors import TransportFault
from shared.config import Settings, get_settings

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[str, str], None]


class MqttTelemetryClient:
    """Thin wrapper around paho ``Client`` with text payloads.

    *on_message* is called from paho's network thread and must not
    block or touch shared state directly.
    """

    kind = "mqtt"

    def __init__(
        self,
        topics: List[str],
        on_message: MessageHandler,
        settings: Optional[Settings] = None,
        qos: int = 1,
    ) -> None:
        self.topics = list(topics)
        self._on_message_cb = on_message
        self._settings = settings or get_settings()
        self._qos = qos
        self._client: Any = None
        self._connected = threading.Event()
        self.faults = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def start(self) -> None:
        """Connect in the background and start paho's network loop."""
        import paho.mqtt.client as mqtt  # lazy import

        s = self._settings
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=s.MQTT_CLIENT_ID)
        if s.MQTT_USERNAME:
            client.username_pw_set(s.MQTT_USERNAME, s.MQTT_PASSWORD or None)
        if s.MQTT_TLS:
            client.tls_set()
        client.on_connect = self._on_connect
        client.on_subscribe = self._on_subscribe
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.reconnect_delay_set(min_delay=1, max_delay=30)

        try:
            client.connect_async(s.MQTT_BROKER, s.MQTT_PORT, keepalive=s.MQTT_KEEPALIVE_S)
            client.loop_start()
        except (OSError, ValueError) as e:
            self._fault("mqtt_start_failed", error=str(e))
            raise TransportFault(f"cannot start MQTT client: {e}") from e

        self._client = client
        logger.info(
            "mqtt_client_started",
            broker=f"{s.MQTT_BROKER}:{s.MQTT_PORT}",
            tls=s.MQTT_TLS,
            topics=self.topics,
        )

    def stop(self) -> None:
        """Disconnect and stop the network loop."""
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._client = None
        self._connected.clear()
        logger.info("mqtt_client_stopped")

    # ── paho callbacks (network thread) ──────────────────────
    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self._fault("mqtt_connect_refused", reason=str(reason_code))
            return
        self._connected.set()
        logger.info("mqtt_connected")
        client.subscribe([(topic, self._qos) for topic in self.topics])

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties) -> None:
        for topic, rc in zip(self.topics, reason_code_list):
            if rc.is_failure:
                self._fault("mqtt_subscribe_failed", topic=topic, reason=str(rc))
            else:
                logger.info("mqtt_subscribed", topic=topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            self._fault("mqtt_disconnected", reason=str(reason_code))
        else:
            logger.info("mqtt_disconnected")

    def _on_message(self, client, userdata, msg) -> None:
        payload = msg.payload.decode("utf-8", errors="replace")
        logger.debug("mqtt_message", topic=msg.topic, payload=payload)
        self._on_message_cb(msg.topic, payload)

    def _fault(self, event: str, **kw: Any) -> None:
        self.faults += 1
        logger.error("transport_fault", transport=self.kind, fault=event, **kw)
