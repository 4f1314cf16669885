# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Tests - Fixtures
# PURPOSE: In-memory store, clock and per-instance sessions
# CREATED: 19 OCT 2026
# ============================================================================

import pytest

from core.config import reset_defaults

from store_fakes import FakeClock, FakeSession, FakeStore


@pytest.fixture(autouse=True)
def _fresh_defaults():
    reset_defaults()
    yield
    reset_defaults()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return FakeStore(clock)


@pytest.fixture
def session(store):
    return FakeSession(store)


@pytest.fixture
def other_session(store):
    """Second instance sharing the same store."""
    return FakeSession(store)
