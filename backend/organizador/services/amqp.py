"""
AMQP Service

Thin wrapper over pika used to publish per-user notifications, system events
and queued emails, and to consume them from the worker.

Topology:
    user_events   (topic, durable)  -> notifications queue, routing key ``user.*``
    system_events (fanout, durable) -> events queue
    default exchange                -> emails queue
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import pika
from pika.exceptions import AMQPConnectionError, AMQPError, ChannelClosed, ConnectionClosed

from ..config import settings

logger = logging.getLogger(__name__)

USER_EXCHANGE = "user_events"
SYSTEM_EXCHANGE = "system_events"
NOTIFICATIONS_QUEUE = "notifications"
EVENTS_QUEUE = "events"
EMAILS_QUEUE = "emails"
NOTIFICATION_TTL_MS = 24 * 60 * 60 * 1000


def build_user_message(user_id: int, notification: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "userId": user_id,
        "type": notification.get("type", "info"),
        "title": notification.get("title", ""),
        "message": notification.get("message", ""),
        "data": notification.get("data") or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "read": False,
    }


def build_system_event(event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": event_type,
        "data": data or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def user_routing_key(user_id: int) -> str:
    return f"user.{user_id}"


class AMQPService:
    """Blocking pika connection guarded by a lock.

    Publishing happens from request background threads, so every channel
    operation is serialized.
    """

    def __init__(self, url: Optional[str] = None, connection_factory: Optional[Callable[[], Any]] = None):
        self.url = url or settings.rabbitmq.url
        self._connection_factory = connection_factory or self._default_connection
        self._connection = None
        self._channel = None
        self._lock = threading.RLock()

    def _default_connection(self):
        return pika.BlockingConnection(pika.URLParameters(self.url))

    @property
    def is_connected(self) -> bool:
        return bool(self._connection is not None and self._connection.is_open and self._channel is not None and self._channel.is_open)

    def connect(self) -> None:
        with self._lock:
            if self.is_connected:
                return
            logger.info("Conectando a RabbitMQ en %s", self.url)
            self._connection = self._connection_factory()
            self._channel = self._connection.channel()
            self._setup_topology(self._channel)
            logger.info("Conexión AMQP establecida")

    def _setup_topology(self, channel) -> None:
        channel.exchange_declare(exchange=USER_EXCHANGE, exchange_type="topic", durable=True)
        channel.exchange_declare(exchange=SYSTEM_EXCHANGE, exchange_type="fanout", durable=True)
        channel.queue_declare(
            queue=NOTIFICATIONS_QUEUE,
            durable=True,
            arguments={"x-message-ttl": NOTIFICATION_TTL_MS},
        )
        channel.queue_declare(queue=EVENTS_QUEUE, durable=True)
        channel.queue_declare(queue=EMAILS_QUEUE, durable=True)
        channel.queue_bind(queue=NOTIFICATIONS_QUEUE, exchange=USER_EXCHANGE, routing_key="user.*")
        channel.queue_bind(queue=EVENTS_QUEUE, exchange=SYSTEM_EXCHANGE, routing_key="")

    def _publish(self, exchange: str, routing_key: str, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, default=str).encode("utf-8")
        properties = pika.BasicProperties(content_type="application/json", delivery_mode=2)
        with self._lock:
            for attempt in (1, 2):
                try:
                    self.connect()
                    self._channel.basic_publish(exchange=exchange, routing_key=routing_key, body=body, properties=properties)
                    return
                except (ConnectionClosed, ChannelClosed, AMQPConnectionError):
                    self._reset()
                    if attempt == 2:
                        raise
                    logger.warning("Conexión AMQP cerrada, reintentando publicación")

    def _reset(self) -> None:
        self._channel = None
        self._connection = None

    def publish_user_notification(self, user_id: int, notification: Dict[str, Any]) -> Dict[str, Any]:
        message = build_user_message(user_id, notification)
        self._publish(USER_EXCHANGE, user_routing_key(user_id), message)
        logger.info("Notificación %s enviada al usuario %s", message["type"], user_id)
        return message

    def send_bulk_notifications(self, user_ids: Iterable[int], notification: Dict[str, Any]) -> Dict[str, List[Any]]:
        results: Dict[str, List[Any]] = {"successful": [], "failed": []}
        for user_id in user_ids:
            try:
                self.publish_user_notification(user_id, notification)
                results["successful"].append(user_id)
            except AMQPError as exc:
                results["failed"].append({"userId": user_id, "error": str(exc)})
        return results

    def send_system_event(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        event = build_system_event(event_type, data)
        self._publish(SYSTEM_EXCHANGE, "", event)
        logger.info("Evento de sistema publicado: %s", event_type)
        return event

    def queue_email(self, email: Dict[str, Any]) -> None:
        self._publish("", EMAILS_QUEUE, email)

    def consume(self, queue: str, handler: Callable[[Dict[str, Any]], None], prefetch: int = 10) -> None:
        """Block consuming ``queue``; each decoded message is passed to ``handler``.

        Messages are acked when the handler returns and dropped (nack without
        requeue) when it raises.
        """
        self.connect()
        channel = self._channel
        channel.basic_qos(prefetch_count=prefetch)

        def _on_message(ch, method, properties, body):
            try:
                payload = json.loads(body)
                handler(payload)
            except Exception:
                logger.exception("Error procesando mensaje de la cola %s", queue)
                ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
                return
            ch.basic_ack(delivery_tag=method.delivery_tag)

        channel.basic_consume(queue=queue, on_message_callback=_on_message)
        logger.info("Consumiendo la cola %s", queue)
        channel.start_consuming()

    def queue_stats(self) -> Dict[str, int]:
        self.connect()
        stats = {}
        for queue in (NOTIFICATIONS_QUEUE, EVENTS_QUEUE, EMAILS_QUEUE):
            declared = self._channel.queue_declare(queue=queue, passive=True)
            stats[queue] = declared.method.message_count
        return stats

    def close(self) -> None:
        with self._lock:
            try:
                if self._connection is not None and self._connection.is_open:
                    self._connection.close()
            except AMQPError as exc:
                logger.warning("Error cerrando la conexión AMQP: %s", exc)
            finally:
                self._reset()
        logger.info("Conexión AMQP cerrada")


_amqp_service: Optional[AMQPService] = None


def get_amqp_service() -> AMQPService:
    global _amqp_service
    if _amqp_service is None:
        _amqp_service = AMQPService()
    return _amqp_service
