"""Fatal error taxonomy.

Every error here means the transport or an input stream is broken and this
tool cannot repair it; the CLI logs it and exits non-zero.
"""
from __future__ import annotations


class PipecatError(Exception):
    """Base for all fatal pipecat failures."""


class BrokerConnectionError(PipecatError):
    """Raised when the broker connection cannot be opened."""


class ChannelError(PipecatError):
    """Raised when a channel cannot be opened on the connection."""


class DeclarationError(PipecatError):
    """Raised when the queue cannot be declared."""


class PublishError(PipecatError):
    """Raised when a message cannot be published."""


class ConsumeRegistrationError(PipecatError):
    """Raised when the broker refuses the consumer registration."""


class InputStreamError(PipecatError):
    """Raised when reading lines from an input stream fails."""
