"""Application metrics with pluggable outputs, proxies, background queues and scheduled flushing."""

__version__ = "0.1.0"