"""Property-based tests for the requeue backoff policy."""

from hypothesis import given
from hypothesis import strategies as st

from taint_preserver.backoff import (
    MAX_RETRY_SECONDS,
    REQUEUE_SECONDS,
    Action,
    BackoffPolicy,
    next_delay,
)


@given(attempt=st.integers(min_value=0, max_value=10_000))
def test_delay_never_exceeds_ceiling(attempt):
    assert 0 < next_delay(attempt) <= MAX_RETRY_SECONDS


@given(attempt=st.integers(min_value=0, max_value=10_000))
def test_delay_is_non_decreasing(attempt):
    assert next_delay(attempt) <= next_delay(attempt + 1)


@given(attempt=st.integers(min_value=64, max_value=10**18))
def test_huge_attempts_saturate(attempt):
    assert next_delay(attempt) == MAX_RETRY_SECONDS


@given(
    base=st.floats(min_value=0.1, max_value=60),
    ceiling=st.floats(min_value=60, max_value=86_400),
    attempt=st.integers(min_value=0, max_value=200),
)
def test_custom_bounds(base, ceiling, attempt):
    delay = next_delay(attempt, base, ceiling)

    assert delay <= ceiling
    assert delay >= min(base, ceiling)


def test_doubling_until_ceiling():
    assert next_delay(0) == REQUEUE_SECONDS
    assert next_delay(1) == 4.0
    assert next_delay(2) == 8.0
    assert next_delay(10) == 2048.0
    assert next_delay(11) == MAX_RETRY_SECONDS


def test_negative_attempt_treated_as_zero():
    assert next_delay(-5) == REQUEUE_SECONDS


def test_attempt_counter_is_process_wide():
    policy = BackoffPolicy()

    first = policy.error_policy("worker-1", RuntimeError("boom"))
    second = policy.error_policy("worker-2", RuntimeError("boom"))
    third = policy.error_policy("worker-1", RuntimeError("boom"))

    assert first == Action.requeue(4.0)
    assert second == Action.requeue(8.0)
    assert third == Action.requeue(16.0)
