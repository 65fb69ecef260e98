# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Bounded retry submission for remote create-and-verify operations.

Minting on a test network fails often and for boring reasons: an expired
blockhash, a node that is briefly behind, a storage gateway timing out. This
module runs a caller-supplied async operation until it succeeds or until a
fixed number of attempts is used up, sleeping a fixed delay in between, and
always resolves to one of two outcomes:

- :class:`Success` carrying whatever the operation returned (usually the
  address of the created artifact), or
- :class:`ExhaustedRetries` carrying the last error observed.

Failures never escape :func:`submit_with_retry`. Deciding what an exhausted
submission means for the rest of a batch is left to the caller, see
:mod:`seven_seas.batch`.

Retry bound:
    ``RetryPolicy.max_retries`` counts retries, not attempts. The operation is
    tried once and then retried up to ``max_retries`` times, so
    ``max_total_attempts == max_retries + 1``. With the default of 5 retries an
    operation that always fails is invoked 6 times with 5 sleeps in between.
    There is no sleep after the final failure.

Examples:
    Retry a mint until it sticks::

        from seven_seas.retry import RetryPolicy, Success, submit_with_retry

        async def mint():
            nft = await nft_client.create(payer, metadata, uri, collection=collection)
            await nft_client.verify_collection(payer, collection, nft.mint)
            return nft.mint

        outcome = await submit_with_retry(mint, RetryPolicy(max_retries=5, delay=5.0))
        if isinstance(outcome, Success):
            print(f"Minted {outcome.artifact}")
        else:
            print(f"Gave up: {outcome.last_error}")

    Drive the state machine by hand (useful in tests)::

        attempt = RetryAttempt(max_total_attempts=3, delay=0.0)
        attempt.start()
        attempt.record_failure(Exception("boom"))   # -> RetryState.WAITING
"""

from __future__ import annotations

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5
DEFAULT_DELAY_SECONDS = 5.0
DEFAULT_ATTEMPT_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed retry bound and pacing for a single submission.

    Attributes:
        max_retries: Number of retries after the first failed attempt.
        delay: Seconds to wait between a failed attempt and the next one.
        attempt_timeout: Upper bound in seconds for one invocation of the
            operation. A hung call is cancelled and counted as a failure.
            ``None`` disables the bound.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    delay: float = DEFAULT_DELAY_SECONDS
    attempt_timeout: Optional[float] = DEFAULT_ATTEMPT_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative: {self.max_retries}")
        if self.delay < 0:
            raise ValueError(f"delay must not be negative: {self.delay}")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError(
                f"attempt_timeout must be positive: {self.attempt_timeout}"
            )

    @property
    def max_total_attempts(self) -> int:
        """One initial attempt plus ``max_retries`` retries."""
        return self.max_retries + 1


class RetryState(Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class InvalidTransition(Exception):
    """A RetryAttempt was driven out of order"""

    state: RetryState

    def __init__(self, message: str, state: RetryState):
        super().__init__(message)
        self.state = state


class RetryAttempt:
    """Bookkeeping for one submission: attempt counter, bound and last error.

    The attempt is a small state machine::

        IDLE -> ATTEMPTING -> SUCCEEDED            (terminal)
                           -> WAITING -> ATTEMPTING
                           -> EXHAUSTED            (terminal)

    ``index`` counts attempts started so far (0 before the first one) and never
    exceeds ``max_total_attempts``. Nothing here sleeps or touches the network,
    so the transitions can be checked without an event loop.
    """

    max_total_attempts: int
    delay: float
    index: int
    last_error: Optional[Exception]
    state: RetryState

    def __init__(self, max_total_attempts: int, delay: float):
        if max_total_attempts < 1:
            raise ValueError("At least one attempt is required")
        self.max_total_attempts = max_total_attempts
        self.delay = delay
        self.index = 0
        self.last_error = None
        self.state = RetryState.IDLE

    @staticmethod
    def from_policy(policy: RetryPolicy) -> RetryAttempt:
        return RetryAttempt(policy.max_total_attempts, policy.delay)

    def __str__(self) -> str:
        return f"RetryAttempt[{self.index}/{self.max_total_attempts}, {self.state.value}]"

    @property
    def remaining(self) -> int:
        return self.max_total_attempts - self.index

    def start(self):
        if self.state not in (RetryState.IDLE, RetryState.WAITING):
            raise InvalidTransition(f"Cannot start an attempt from {self}", self.state)
        if self.index >= self.max_total_attempts:
            raise InvalidTransition(f"No attempts left in {self}", self.state)
        self.index += 1
        self.state = RetryState.ATTEMPTING

    def record_success(self):
        self._expect_attempting()
        self.state = RetryState.SUCCEEDED

    def record_failure(self, error: Exception) -> RetryState:
        """Record a failed attempt and return the next state.

        Returns ``WAITING`` while attempts remain and ``EXHAUSTED`` once the
        bound is reached.
        """
        self._expect_attempting()
        self.last_error = error
        if self.index >= self.max_total_attempts:
            self.state = RetryState.EXHAUSTED
        else:
            self.state = RetryState.WAITING
        return self.state

    def _expect_attempting(self):
        if self.state != RetryState.ATTEMPTING:
            raise InvalidTransition(f"No attempt in progress: {self}", self.state)


@dataclass(frozen=True)
class Success(Generic[T]):
    artifact: T
    attempts: int = 1


@dataclass(frozen=True)
class ExhaustedRetries:
    last_error: Exception
    attempts: int


SubmissionOutcome = Union[Success[T], ExhaustedRetries]


async def submit_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    label: str = "Submission",
) -> SubmissionOutcome[T]:
    """Invoke ``operation`` until it succeeds or the retry budget is used up.

    Args:
        operation: Zero-argument coroutine function. It is invoked again after
            every failure, so it must be safe to call more than once.
        policy: Retry bound, delay and per-attempt timeout.
        sleep: Awaitable sleep, replaceable in tests. Defaults to
            ``asyncio.sleep``, which keeps the wait cancellable.
        label: Prefix of the diagnostic line logged for each failure.

    Returns:
        :class:`Success` with the operation's result, or
        :class:`ExhaustedRetries` with the last error once
        ``policy.max_total_attempts`` attempts have failed.

    Raises:
        asyncio.CancelledError: If the surrounding task is cancelled. Only
            ``Exception`` subclasses count as failed attempts.
    """
    if sleep is None:
        sleep = asyncio.sleep
    attempt = RetryAttempt.from_policy(policy)
    while True:
        attempt.start()
        try:
            if policy.attempt_timeout is None:
                result = await operation()
            else:
                result = await asyncio.wait_for(operation(), policy.attempt_timeout)
        except Exception as e:
            state = attempt.record_failure(e)
            message = str(e) or type(e).__name__
            logging.warning(
                f"{label} failed with error {message}. "
                f"Trying {attempt.remaining} more time(s)"
            )
            if state == RetryState.EXHAUSTED:
                return ExhaustedRetries(e, attempt.index)
            await sleep(attempt.delay)
            continue
        attempt.record_success()
        return Success(result, attempt.index)


class FlakyOperation:
    """Test helper failing a fixed number of times before returning a value."""

    def __init__(self, failures: int, result: Any = "artifact"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise Exception(f"attempt {self.calls} failed")
        return self.result


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sleeps: List[float] = []

    async def fake_sleep(self, seconds: float):
        self.sleeps.append(seconds)

    async def test_first_try(self):
        operation = FlakyOperation(0)
        outcome = await submit_with_retry(
            operation, RetryPolicy(), sleep=self.fake_sleep
        )
        self.assertEqual(outcome, Success("artifact", 1))
        self.assertEqual(operation.calls, 1)
        self.assertEqual(self.sleeps, [])

    async def test_fails_then_succeeds(self):
        policy = RetryPolicy(max_retries=5, delay=5.0)
        for failures in range(policy.max_total_attempts):
            self.sleeps = []
            operation = FlakyOperation(failures)
            outcome = await submit_with_retry(operation, policy, sleep=self.fake_sleep)
            self.assertIsInstance(outcome, Success)
            self.assertEqual(operation.calls, failures + 1)
            self.assertEqual(self.sleeps, [5.0] * failures)

    async def test_three_failures_then_success(self):
        operation = FlakyOperation(3, result="mint")
        outcome = await submit_with_retry(
            operation, RetryPolicy(max_retries=5, delay=5.0), sleep=self.fake_sleep
        )
        self.assertEqual(outcome, Success("mint", 4))
        self.assertEqual(operation.calls, 4)
        self.assertEqual(self.sleeps, [5.0, 5.0, 5.0])

    async def test_always_fails(self):
        operation = FlakyOperation(100)
        with self.assertLogs(level="WARNING") as logs:
            outcome = await submit_with_retry(
                operation, RetryPolicy(max_retries=5, delay=5.0), sleep=self.fake_sleep
            )
        assert isinstance(outcome, ExhaustedRetries)
        self.assertEqual(outcome.attempts, 6)
        self.assertEqual(str(outcome.last_error), "attempt 6 failed")
        self.assertEqual(operation.calls, 6)
        self.assertEqual(self.sleeps, [5.0] * 5)
        self.assertEqual(len(logs.output), 6)
        self.assertIn("Trying 5 more time(s)", logs.output[0])
        self.assertIn("Trying 0 more time(s)", logs.output[-1])

    async def test_zero_retries(self):
        operation = FlakyOperation(1)
        outcome = await submit_with_retry(
            operation, RetryPolicy(max_retries=0), sleep=self.fake_sleep
        )
        self.assertIsInstance(outcome, ExhaustedRetries)
        self.assertEqual(operation.calls, 1)
        self.assertEqual(self.sleeps, [])

    async def test_idempotent_operation(self):
        operation = FlakyOperation(0, result="0xabc")
        first = await submit_with_retry(operation, sleep=self.fake_sleep)
        second = await submit_with_retry(operation, sleep=self.fake_sleep)
        assert isinstance(first, Success) and isinstance(second, Success)
        self.assertEqual(first.artifact, second.artifact)

    async def test_timeout_counts_as_failure(self):
        calls = 0

        async def hangs_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.Event().wait()
            return "late"

        outcome = await submit_with_retry(
            hangs_once,
            RetryPolicy(max_retries=1, delay=0.0, attempt_timeout=0.01),
            sleep=self.fake_sleep,
        )
        self.assertEqual(outcome, Success("late", 2))
        self.assertEqual(self.sleeps, [0.0])

    async def test_cancellation_propagates(self):
        async def cancelled():
            raise asyncio.CancelledError()

        with self.assertRaises(asyncio.CancelledError):
            await submit_with_retry(cancelled, sleep=self.fake_sleep)

    async def test_uses_asyncio_sleep_by_default(self):
        with unittest.mock.patch("asyncio.sleep") as patched:
            patched.return_value = None
            await submit_with_retry(
                FlakyOperation(1),
                RetryPolicy(max_retries=1, delay=2.5, attempt_timeout=None),
            )
        patched.assert_called_once_with(2.5)


class StateMachineTest(unittest.TestCase):
    def test_transitions(self):
        attempt = RetryAttempt(max_total_attempts=2, delay=1.0)
        self.assertEqual(attempt.state, RetryState.IDLE)
        attempt.start()
        self.assertEqual((attempt.index, attempt.state), (1, RetryState.ATTEMPTING))
        error = Exception("boom")
        self.assertEqual(attempt.record_failure(error), RetryState.WAITING)
        self.assertIs(attempt.last_error, error)
        attempt.start()
        self.assertEqual(attempt.record_failure(error), RetryState.EXHAUSTED)
        self.assertEqual(attempt.index, 2)
        with self.assertRaises(InvalidTransition):
            attempt.start()

    def test_success_is_terminal(self):
        attempt = RetryAttempt(max_total_attempts=3, delay=0.0)
        attempt.start()
        attempt.record_success()
        self.assertEqual(attempt.state, RetryState.SUCCEEDED)
        with self.assertRaises(InvalidTransition):
            attempt.start()
        with self.assertRaises(InvalidTransition):
            attempt.record_failure(Exception("late"))

    def test_policy(self):
        self.assertEqual(RetryPolicy().max_total_attempts, 6)
        self.assertEqual(RetryPolicy(max_retries=0).max_total_attempts, 1)
        with self.assertRaises(ValueError):
            RetryPolicy(max_retries=-1)
        with self.assertRaises(ValueError):
            RetryPolicy(attempt_timeout=0)


if __name__ == "__main__":
    unittest.main()
