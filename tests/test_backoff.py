from __future__ import annotations

import allure
import pytest

from studio_batch.orchestrator.backoff import BackoffPolicy

pytestmark = [
    allure.epic("Generation Gateway"),
    allure.feature("Backoff Policy"),
]


def test_default_schedule_doubles_from_two_seconds() -> None:
    policy = BackoffPolicy()

    assert policy.max_attempts == 4
    assert policy.schedule() == (2.0, 4.0, 8.0)
    assert sum(policy.schedule()) == 14.0


def test_should_retry_respects_budget_and_retryability() -> None:
    policy = BackoffPolicy(max_retries=2)

    assert policy.should_retry(retryable=True, retries_done=0)
    assert policy.should_retry(retryable=True, retries_done=1)
    assert not policy.should_retry(retryable=True, retries_done=2)
    assert not policy.should_retry(retryable=False, retries_done=0)


def test_zero_retries_means_single_attempt() -> None:
    policy = BackoffPolicy(max_retries=0)

    assert policy.max_attempts == 1
    assert policy.schedule() == ()


def test_delay_for_rejects_non_positive_retry_number() -> None:
    with pytest.raises(ValueError, match="retry_number must be >= 1"):
        BackoffPolicy().delay_for(0)


def test_policy_rejects_negative_values() -> None:
    with pytest.raises(ValueError, match="max_retries"):
        BackoffPolicy(max_retries=-1)
    with pytest.raises(ValueError, match="initial_delay_seconds"):
        BackoffPolicy(initial_delay_seconds=-0.5)
