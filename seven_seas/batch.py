# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Sequential batch driver on top of :func:`seven_seas.retry.submit_with_retry`.

Items are submitted strictly one after another. A successful item is recorded
and the batch moves on; the first item that exhausts its retry budget stops
the batch. Later items are never attempted and artifacts created earlier are
left in place (the ledger is append-only).

The driver itself never raises for an exhausted item, it returns a
:class:`BatchReport`. Callers that want the whole run to fail call
:meth:`BatchReport.raise_if_aborted`, which raises :class:`BatchAborted`.
"""

from __future__ import annotations

import asyncio
import unittest
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from .retry import ExhaustedRetries, RetryPolicy, submit_with_retry

Item = TypeVar("Item")
T = TypeVar("T")


class BatchAborted(Exception):
    """An item of the batch used up its retries, so the batch was stopped"""

    index: int
    last_error: Exception

    def __init__(self, message: str, index: int, last_error: Exception):
        super().__init__(message)
        self.index = index
        self.last_error = last_error


@dataclass
class BatchReport(Generic[T]):
    total: int
    completed: List[T] = field(default_factory=list)
    failed_index: Optional[int] = None
    last_error: Optional[Exception] = None

    @property
    def aborted(self) -> bool:
        return self.failed_index is not None

    def raise_if_aborted(self):
        if self.failed_index is None or self.last_error is None:
            return
        raise BatchAborted(
            f"Item {self.failed_index + 1} of {self.total} exhausted its retries "
            f"after {len(self.completed)} completed: {self.last_error}",
            self.failed_index,
            self.last_error,
        )


async def run_batch(
    items: Sequence[Item],
    make_operation: Callable[[int, Item], Callable[[], Awaitable[T]]],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    on_success: Optional[Callable[[int, T], Any]] = None,
) -> BatchReport[T]:
    """Submit every item in order, stopping at the first exhausted item.

    Args:
        items: The ordered items to submit.
        make_operation: Builds the zero-argument operation for ``(index, item)``.
            It is called once per item, so state kept by the operation survives
            retries of that item.
        policy: Retry policy applied to each item separately.
        sleep: Forwarded to :func:`submit_with_retry`.
        on_success: Called with ``(index, artifact)`` after each success.
    """
    report: BatchReport[T] = BatchReport(total=len(items))
    for index, item in enumerate(items):
        outcome = await submit_with_retry(
            make_operation(index, item),
            policy,
            sleep=sleep,
            label=f"Item {index + 1}",
        )
        if isinstance(outcome, ExhaustedRetries):
            report.failed_index = index
            report.last_error = outcome.last_error
            return report
        report.completed.append(outcome.artifact)
        if on_success is not None:
            on_success(index, outcome.artifact)
    return report


class Test(unittest.IsolatedAsyncioTestCase):
    async def no_sleep(self, seconds: float):
        pass

    async def test_all_items_complete(self):
        async def echo(value):
            return value

        report = await run_batch(
            ["a", "b", "c"],
            lambda index, item: lambda: echo(item.upper()),
            sleep=self.no_sleep,
        )
        self.assertFalse(report.aborted)
        self.assertEqual(report.completed, ["A", "B", "C"])
        report.raise_if_aborted()

    async def test_abort_on_exhausted_item(self):
        attempted: List[int] = []
        successes: List[int] = []

        def make_operation(index: int, item: str):
            async def operation():
                attempted.append(index)
                if index == 1:
                    raise Exception("node unavailable")
                return item

            return operation

        report = await run_batch(
            ["ship-1", "ship-2", "ship-3"],
            make_operation,
            RetryPolicy(max_retries=5, delay=5.0),
            sleep=self.no_sleep,
            on_success=lambda index, artifact: successes.append(index),
        )
        self.assertTrue(report.aborted)
        self.assertEqual(report.completed, ["ship-1"])
        self.assertEqual(report.failed_index, 1)
        self.assertEqual(attempted, [0, 1, 1, 1, 1, 1, 1])
        self.assertEqual(successes, [0])
        with self.assertRaises(BatchAborted) as context:
            report.raise_if_aborted()
        self.assertEqual(context.exception.index, 1)
        self.assertEqual(str(context.exception.last_error), "node unavailable")

    async def test_operation_built_once_per_item(self):
        built: List[int] = []

        def make_operation(index: int, item: int):
            built.append(index)
            calls = 0

            async def operation():
                nonlocal calls
                calls += 1
                if calls < 3:
                    raise asyncio.TimeoutError()
                return item * 10

            return operation

        report = await run_batch([1, 2], make_operation, sleep=self.no_sleep)
        self.assertEqual(built, [0, 1])
        self.assertEqual(report.completed, [10, 20])


if __name__ == "__main__":
    unittest.main()
