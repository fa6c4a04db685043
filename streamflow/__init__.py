"""Lazy streams, backpressure channels, an asynchronous buffered writer and cancellation contexts."""

__version__ = "0.1.0"
__all__ = ["context", "sources", "operations", "stream", "channel", "writer"]