"""
Shared test fixtures for the bullmq_instrumentation tests.

Usage:
    from tests.fixtures import broker

    queue = broker.Queue("emails")
    worker = broker.Worker("emails", processor)
"""

from tests.fixtures import broker

__all__ = ["broker"]
