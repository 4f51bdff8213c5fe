from __future__ import annotations

import logging
import aio_pika
import json
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """Publishes JSON events to a single durable topic exchange."""

    def __init__(self, amqp_url: str, exchange_name: str):
        self.amqp_url = amqp_url
        self.exchange_name = exchange_name
        self.connection: aio_pika.abc.AbstractRobustConnection | None = None
        self.channel: aio_pika.abc.AbstractChannel | None = None
        self.exchange: aio_pika.abc.AbstractExchange | None = None

    async def connect(self):
        logger.info("Connecting to RabbitMQ at %s", self.amqp_url)
        self.connection = await aio_pika.connect_robust(self.amqp_url, heartbeat=300)
        self.channel = await self.connection.channel()
        self.exchange = await self.channel.declare_exchange(
            self.exchange_name,
            type=aio_pika.ExchangeType.TOPIC,
            durable=True
        )
        logger.info(f"RabbitMQ Producer connected to exchange '{self.exchange_name}'")

    async def close(self):
        if self.connection:
            await self.connection.close()
        self.connection = None
        self.channel = None
        self.exchange = None

    async def publish(self, routing_key: str, message: BaseModel | dict):
        if not self.connection or self.connection.is_closed or not self.channel or self.channel.is_closed:
            logger.warning("Connection lost, reconnecting...")
            await self.connect()

        if isinstance(message, BaseModel):
            body = message.model_dump_json().encode()
        else:
            body = json.dumps(message).encode()

        await self.exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT
            ),
            routing_key=routing_key
        )
        logger.debug(f"Published to {self.exchange_name}/{routing_key}")
