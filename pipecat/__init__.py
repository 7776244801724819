"""pipecat: connect unix pipes and message queues."""

__version__ = "0.3.0"
