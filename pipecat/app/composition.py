"""Composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from pipecat.app.application.consume_session import ConsumeSession
from pipecat.app.application.publish_service import PublishService
from pipecat.app.config.settings import Settings
from pipecat.app.core import SERVICE_NAME
from pipecat.app.domain.ledger import PendingDeliveryLedger, create_ledger
from pipecat.app.domain.models import SessionConfig
from pipecat.app.infrastructure.io.stdio import StdinLineSource, StdoutLineSink
from pipecat.app.infrastructure.messaging.factory import create_queue_gateway
from pipecat.app.ports.line_io import LineSink, LineSource
from pipecat.app.ports.queue_gateway import QueueGateway


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class SessionDependencies:
    """Holds wired session dependencies and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        config: SessionConfig,
        gateway: QueueGateway | None = None,
        source: LineSource | None = None,
        sink: LineSink | None = None,
    ) -> None:
        self._settings = settings
        self._config = config
        self._gateway = gateway
        self._source = source or StdinLineSource()
        self._sink = sink or StdoutLineSink()
        self._ledger: PendingDeliveryLedger | None = None

    @property
    def gateway(self) -> QueueGateway:
        if self._gateway is None:
            raise RuntimeError("gateway is not initialized")
        return self._gateway

    @property
    def ledger(self) -> PendingDeliveryLedger:
        if self._ledger is None:
            raise RuntimeError("ledger is not initialized")
        return self._ledger

    async def connect(self) -> None:
        if self._gateway is None:
            self._gateway = create_queue_gateway(self._settings, self._config)
        self._ledger = create_ledger(self._settings.ledger_backend)
        await self._gateway.connect()
        _log("session_connected", queue=self._config.queue_name)

    def publish_service(self) -> PublishService:
        return PublishService(self.gateway)

    def consume_session(self) -> ConsumeSession:
        return ConsumeSession(
            self._config,
            self.gateway,
            self.ledger,
            sink=self._sink,
            ack_source=None if self._config.auto_ack else self._source,
        )

    async def run_publish(self) -> int:
        return await self.publish_service().run(self._source, self._sink)

    async def close(self) -> None:
        if self._gateway is not None:
            try:
                await self._gateway.close()
            except Exception as exc:
                logger.warning("gateway close failed: {}", exc)
        self._ledger = None


def create_session_dependencies(
    config: SessionConfig,
    settings: Settings | None = None,
) -> SessionDependencies:
    return SessionDependencies(settings=settings or Settings(), config=config)
