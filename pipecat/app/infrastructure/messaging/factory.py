"""Queue gateway factory: selects implementation from config. Only place that imports concrete gateways."""
from __future__ import annotations

from pipecat.app.config.settings import Settings
from pipecat.app.domain.models import SessionConfig
from pipecat.app.infrastructure.messaging.inmemory.in_memory_gateway import InMemoryGateway
from pipecat.app.infrastructure.messaging.rabbitmq.rabbitmq_gateway import RabbitMQGateway
from pipecat.app.ports.queue_gateway import QueueGateway


def create_queue_gateway(settings: Settings, config: SessionConfig) -> QueueGateway:
    backend = settings.gateway_backend.strip().lower()

    if backend == "rabbitmq":
        return RabbitMQGateway(settings, config)

    if backend == "inmemory":
        return InMemoryGateway(config)

    raise ValueError(f"Unsupported gateway backend: {backend}")
