"""Boundary-Foundry Test Suite.

Test organization:
- test_coordinator.py: deduplication, debouncing, TTL cache
- test_resilience.py: backoff and RetryExecutor
- test_manager.py / test_selection.py: layers, selection cascade, markers
- test_hierarchy.py: point resolution and zoom gating
- test_supabase.py: PostgREST adapter and error mapping (httpx.MockTransport)

FakeBackend in conftest.py records every backend call so tests can assert
on call counts.
"""
