import json
from typing import Optional

import structlog
from kafka import KafkaProducer
from kafka.errors import KafkaError

from storefront.core.config import settings

logger = structlog.get_logger(__name__)

class EventProducer:
    """Publishes JSON events to Kafka; a no-op when no bootstrap server is set."""

    def __init__(self, bootstrap: Optional[str] = None):
        self.bootstrap = settings.KAFKA_BOOTSTRAP if bootstrap is None else bootstrap
        self._producer = None

    @property
    def enabled(self) -> bool:
        return bool(self.bootstrap)

    def get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=[s.strip() for s in self.bootstrap.split(",")],
                value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
                linger_ms=5,
                retries=3,
            )
        return self._producer

    def send(self, topic: str, key: str, value: dict):
        if not self.enabled:
            return
        try:
            p = self.get_producer()
            p.send(topic, key=key, value=value)
            p.flush(5)
        except KafkaError:
            # the state change is already committed; the event is lost, not the order
            logger.exception("Event publish failed", topic=topic, key=key, event_type=value.get("type"))

    def close(self):
        if self._producer is not None:
            self._producer.close(5)
            self._producer = None
