"""
Integration tests for the bullmq_instrumentation library.

These tests run the full producer to worker path against the in-memory
queue library in ``tests.fixtures.broker`` and inspect the exported spans.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
