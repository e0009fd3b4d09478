"""
events.py — Order Event Publishing (RabbitMQ)

After an order is committed, downstream systems (invoicing, fulfillment,
notifications) are told about it through a persistent message on the
`config.ORDER_EVENTS_QUEUE` queue. Publishing happens after the response is
sent; a broker outage never undoes or fails a committed order.
"""

import json
import logging
import time
import uuid

import pika

from . import config
from .money import format_money

log = logging.getLogger(__name__)


class OrderEventPublisher:
    """
    Publisher for order lifecycle events.
    Manages its own RabbitMQ connection and declares the target queue.
    """
    def __init__(self, host: str = None, queue: str = None):
        """Initializes the RabbitMQ connection and declares the events queue."""
        self.host = host or config.RABBITMQ_HOST
        self.queue = queue or config.ORDER_EVENTS_QUEUE
        self.connection = None
        self.channel = None
        self._connect()

    def _connect(self):
        """
        Establishes a RabbitMQ connection using the configured credentials.
        Raises:
            pika.exceptions.AMQPConnectionError: If the connection fails.
        """
        try:
            credentials = pika.PlainCredentials(config.RABBITMQ_USER, config.RABBITMQ_PASSWORD)
            self.connection = pika.BlockingConnection(
                pika.ConnectionParameters(host=self.host, credentials=credentials, heartbeat=60)
            )
            self.channel = self.connection.channel()
            self.channel.queue_declare(queue=self.queue, durable=True)
            log.info("Order event publisher connected to RabbitMQ.")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Cannot connect to RabbitMQ at {self.host}: {e}")
            raise

    def publish(self, event_type: str, payload: dict):
        """
        Publishes one event message.
        Args:
            event_type (str): Event name, e.g. 'order.placed'.
            payload (dict): JSON-serializable event body.
        Raises:
            pika.exceptions.AMQPError: If message publishing fails.
        """
        message = {
            "eventId": str(uuid.uuid4()),
            "eventType": event_type,
            "occurredAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "payload": payload,
        }
        if not self.connection or self.connection.is_closed:
            self._connect()

        self.channel.basic_publish(
            exchange='',
            routing_key=self.queue,
            body=json.dumps(message),
            properties=pika.BasicProperties(delivery_mode=2, content_type="application/json")
        )
        log.info(f"[Order: {payload.get('orderId', 'UNKNOWN')}] '{event_type}' event published.")

    def close(self):
        if self.connection and self.connection.is_open:
            self.connection.close()


def order_placed_payload(result) -> dict:
    """Event body for a `PlacementResult`."""
    order = result.order
    return {
        "orderId": order.id,
        "userId": order.user_id,
        "role": order.placed_by_role,
        "promoCodeId": order.promo_code_id,
        "items": [
            {"productId": i.product_id, "quantity": i.quantity, "unitPrice": format_money(i.unit_price)}
            for i in order.items
        ],
        "pricing": result.pricing.to_dict(),
    }


def publish_order_placed(payload: dict):
    """
    Background task: announces a committed order.

    Does nothing unless `config.ORDER_EVENTS_ENABLED` is set. Broker errors are
    logged; the order itself is already durable.
    """
    order_id = payload.get("orderId", "UNKNOWN")
    if not config.ORDER_EVENTS_ENABLED:
        log.debug(f"[Order: {order_id}] Event publishing disabled; skipping 'order.placed'.")
        return

    publisher = None
    try:
        publisher = OrderEventPublisher()
        publisher.publish("order.placed", payload)
    except pika.exceptions.AMQPError as e:
        # The order is committed; downstream systems must be reconciled manually.
        log.critical(f"[Order: {order_id}] Could not publish 'order.placed' event: {e}")
    finally:
        if publisher:
            publisher.close()
