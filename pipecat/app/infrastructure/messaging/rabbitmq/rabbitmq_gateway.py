"""
RabbitMQ gateway: connection lifecycle, queue declaration, publish and consume.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> CHANNEL_OPEN ->
  QUEUE_DECLARED -> READY -> CONSUMING.
  On close(): CLOSING -> cancel consumer, close channel/connection -> CLOSED.

There is no reconnect: the plain (non-robust) aio_pika connection is used and
every broker failure is raised as one of the pipecat.app.core.errors types.
Close callbacks are registered on the connection and the channel; when either
goes away outside of close(), the gateway is marked BROKEN and the delivery
stream raises the failure from its next() call.

Consumed messages are pushed by aio_pika's consumer callback into an
asyncio.Queue; DeliveryStream.next() waits on that queue, so a timed-out wait
never drops a delivery.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
)
from loguru import logger

from pipecat.app.config.settings import Settings
from pipecat.app.core import SERVICE_NAME
from pipecat.app.core.backoff import exponential_backoff
from pipecat.app.core.errors import (
    BrokerConnectionError,
    ChannelError,
    ConsumeRegistrationError,
    DeclarationError,
    PipecatError,
    PublishError,
)
from pipecat.app.domain.models import SessionConfig
from pipecat.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import AioPikaMessageAdapter
from pipecat.app.infrastructure.messaging.rabbitmq.constants import CONTENT_TYPE, GatewayState


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQDeliveryStream:
    """DeliveryStream fed by an aio_pika consumer callback."""

    def __init__(self) -> None:
        self._buffer: asyncio.Queue[Any] = asyncio.Queue()
        self._failure: PipecatError | None = None

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        await self._buffer.put(AioPikaMessageAdapter(message))

    def fail(self, error: PipecatError) -> None:
        """Wake any waiter; every later next() raises ``error``."""
        if self._failure is None:
            self._failure = error
            self._buffer.put_nowait(error)

    async def next(self, timeout: float | None = None) -> AioPikaMessageAdapter | None:
        if self._failure is not None:
            raise self._failure
        try:
            item = await asyncio.wait_for(self._buffer.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if isinstance(item, PipecatError):
            raise item
        return item


class RabbitMQGateway:
    """QueueGateway implementation"""

    def __init__(self, settings: Settings, config: SessionConfig) -> None:
        self._settings = settings
        self._config = config
        self._state = GatewayState.DISCONNECTED
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None
        self._stream: RabbitMQDeliveryStream | None = None
        self._closing = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> GatewayState:
        return self._state

    def _set_state(self, state: GatewayState) -> None:
        self._state = state

    def _register_close_callback(self, owner: Any, callback: Any) -> None:
        callbacks = getattr(owner, "close_callbacks", None)
        if callable(getattr(callbacks, "add", None)):
            callbacks.add(callback)

    def _on_connection_closed(self, sender: Any, exc: BaseException | None = None, *args: Any) -> None:
        self._on_broker_lost(BrokerConnectionError(f"Connection to AMQP broker lost: {exc}"), "connection", exc)

    def _on_channel_closed(self, sender: Any, exc: BaseException | None = None, *args: Any) -> None:
        self._on_broker_lost(ChannelError(f"AMQP channel closed: {exc}"), "channel", exc)

    def _on_broker_lost(self, error: PipecatError, what: str, exc: BaseException | None) -> None:
        if self._closing or self._state == GatewayState.BROKEN:
            return
        self._set_state(GatewayState.BROKEN)
        _log("broker_disconnect_detected", closed=what, error=str(exc))
        if self._stream is not None:
            self._stream.fail(error)

    async def connect(self) -> None:
        self._set_state(GatewayState.CONNECTING)
        _log("rmq_connecting")
        async for attempt, delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect(self._settings.amqp_uri)
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(GatewayState.DISCONNECTED)
                    raise BrokerConnectionError(f"Failed to connect to AMQP broker: {e}") from e
        if self._connection is None:
            self._set_state(GatewayState.DISCONNECTED)
            raise BrokerConnectionError("Failed to connect to AMQP broker: no attempts allowed")
        self._register_close_callback(self._connection, self._on_connection_closed)
        self._set_state(GatewayState.CONNECTED)
        _log("rmq_connected")
        await self._open_channel_and_declare()

    async def _open_channel_and_declare(self) -> None:
        if not self._connection:
            return
        try:
            self._channel = await self._connection.channel()
            if self._settings.prefetch_count > 0:
                await self._channel.set_qos(prefetch_count=self._settings.prefetch_count)
        except Exception as e:
            raise ChannelError(f"Failed to open a channel: {e}") from e
        self._register_close_callback(self._channel, self._on_channel_closed)
        self._set_state(GatewayState.CHANNEL_OPEN)

        if self._config.create_queue:
            try:
                self._queue = await self._channel.declare_queue(self._config.queue_name, durable=True)
            except Exception as e:
                raise DeclarationError(f"Failed to declare queue {self._config.queue_name!r}: {e}") from e
            self._set_state(GatewayState.QUEUE_DECLARED)
            _log("queue_declared", queue=self._config.queue_name)
        self._set_state(GatewayState.READY)

    async def _get_exchange(self, channel: AbstractChannel) -> AbstractExchange:
        if self._exchange is None:
            if self._config.exchange:
                self._exchange = await channel.get_exchange(self._config.exchange, ensure=False)
            else:
                self._exchange = channel.default_exchange
        return self._exchange

    async def publish(self, body: bytes) -> None:
        channel = self._channel
        if self._state not in (GatewayState.READY, GatewayState.CONSUMING) or channel is None:
            _log("publish_rejected", reason="gateway_not_ready", state=self._state.value)
            raise PublishError("Failed to publish a message: gateway not ready")
        delivery_mode = (
            aio_pika.DeliveryMode.PERSISTENT if self._config.durable else aio_pika.DeliveryMode.NOT_PERSISTENT
        )
        message = aio_pika.Message(body, delivery_mode=delivery_mode, content_type=CONTENT_TYPE)
        async with self._lock:
            try:
                exchange = await self._get_exchange(channel)
                await exchange.publish(message, routing_key=self._config.queue_name)
            except Exception as e:
                _log("publish_failed", error=str(e))
                raise PublishError(f"Failed to publish a message: {e}") from e

    async def consume(self) -> RabbitMQDeliveryStream:
        if self._state != GatewayState.READY or self._channel is None:
            raise ConsumeRegistrationError("Failed to register consumer: gateway not ready")
        stream = RabbitMQDeliveryStream()
        async with self._lock:
            try:
                if self._queue is None:
                    self._queue = await self._channel.get_queue(self._config.queue_name, ensure=False)
                self._consumer_tag = await self._queue.consume(stream.on_message, no_ack=self._config.auto_ack)
            except Exception as e:
                raise ConsumeRegistrationError(f"Failed to register consumer: {e}") from e
        self._stream = stream
        self._set_state(GatewayState.CONSUMING)
        _log("consumer_registered", queue=self._config.queue_name, auto_ack=self._config.auto_ack)
        return stream

    async def _close_channel_and_connection(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            try:
                await self._queue.cancel(self._consumer_tag)
            except Exception as e:
                logger.warning("consumer cancel failed (continuing to close channel): {}", e)
        self._queue = None
        self._consumer_tag = None
        self._exchange = None
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def close(self) -> None:
        if self._state == GatewayState.CLOSED:
            return
        self._closing = True
        self._set_state(GatewayState.CLOSING)
        _log("gateway_shutdown")
        async with self._lock:
            await self._close_channel_and_connection()
        self._stream = None
        self._set_state(GatewayState.CLOSED)
