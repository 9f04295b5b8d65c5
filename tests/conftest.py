# tests/conftest.py
"""Shared test fixtures.

Fixtures:
- clock: ManualClock starting at 100.0
- counter: isolated QueryCounter driven by that clock
- notifications: list collecting every notification the counter publishes

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os

import pytest
from hypothesis import Phase, Verbosity, settings

from query_counter import ManualClock, QueryCounter, ThresholdNotification


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=100.0)


@pytest.fixture
def counter(clock: ManualClock) -> QueryCounter:
    """A QueryCounter isolated from the process-wide default."""
    return QueryCounter(clock=clock)


@pytest.fixture
def notifications(counter: QueryCounter) -> list[ThresholdNotification]:
    """Every notification published by the counter fixture, in order."""
    received: list[ThresholdNotification] = []
    counter.bus.subscribe(received.append)
    return received


# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
