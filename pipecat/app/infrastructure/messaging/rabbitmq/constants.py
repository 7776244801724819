"""RabbitMQ gateway lifecycle states."""
from enum import Enum


class GatewayState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CHANNEL_OPEN = "CHANNEL_OPEN"
    QUEUE_DECLARED = "QUEUE_DECLARED"
    READY = "READY"
    CONSUMING = "CONSUMING"
    BROKEN = "BROKEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


CONTENT_TYPE = "text/plain"
