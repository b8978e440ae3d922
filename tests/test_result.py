from __future__ import annotations

import dataclasses

import pytest

from loanlink.result import Failure, Result, RetryBudget


def test_budget_defaults():
    b = RetryBudget()
    assert b.attempts == 0
    assert b.max_attempts == 10
    assert b.delay_s == 1.0
    assert not b.exhausted


def test_spend_returns_new_budget():
    b = RetryBudget(max_attempts=2)
    spent = b.spend()
    assert b.attempts == 0
    assert spent.attempts == 1
    assert spent.spend().exhausted


def test_budget_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        RetryBudget().attempts = 3


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay_s": -1.0}])
def test_budget_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        RetryBudget(**kwargs)


def test_result_success_and_failure():
    ok = Result.success("report", attempts=2)
    assert ok.ok
    assert ok.value == "report"
    assert ok.attempts == 2
    assert ok.describe() == "ok"

    bad = Result.fail(Failure.ACK_EXHAUSTED, "no response after 1s", attempts=10)
    assert not bad.ok
    assert bad.value is None
    assert bad.describe() == "acknowledgment attempts exhausted: no response after 1s"


def test_terminal_failures():
    assert Failure.CONNECTION_EXHAUSTED.terminal
    assert Failure.ACK_EXHAUSTED.terminal
    assert not Failure.ACK_TIMEOUT.terminal
    assert not Failure.CONNECTION_REFUSED.terminal
