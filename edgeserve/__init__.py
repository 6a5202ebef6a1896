"""Readiness-driven HTTP server with a worker pool, connection timers and asynchronous logging."""

__version__ = "0.6.0"
__all__ = [
    "sync",
    "logstream",
    "logfile",
    "async_logging",
    "logger",
    "util",
    "timer",
    "threadpool",
    "http",
    "connection",
    "server",
]