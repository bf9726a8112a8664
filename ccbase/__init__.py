"""Concurrency building blocks: rate limiting, queues, reclamation, timers and worker threads."""

__version__ = "1.0.0b2"