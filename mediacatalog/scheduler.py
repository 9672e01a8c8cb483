"""Bounded-concurrency execution of independent jobs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

T = TypeVar("T")

Job = Callable[[], Awaitable[T]]


@dataclass
class Outcome(Generic[T]):
    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Scheduler:
    """Runs jobs with at most ``parallelism`` of them in flight.

    A job's exception is captured in its Outcome and never reaches sibling
    jobs. Outcomes are returned in completion order.
    """

    def __init__(self, parallelism: int = 1) -> None:
        self.parallelism = max(1, int(parallelism or 1))
        self.peak_in_flight = 0

    async def run(
        self,
        jobs: Sequence[Job[T]],
        on_done: Callable[[Outcome[T]], Any] | None = None,
    ) -> list[Outcome[T]]:
        outcomes: list[Outcome[T]] = []
        in_flight: dict[asyncio.Task, int] = {}
        next_index = 0

        def _start_next() -> None:
            nonlocal next_index
            index = next_index
            next_index += 1
            task = asyncio.ensure_future(jobs[index]())
            in_flight[task] = index
            self.peak_in_flight = max(self.peak_in_flight, len(in_flight))

        while len(in_flight) < self.parallelism and next_index < len(jobs):
            _start_next()

        while in_flight:
            done, _pending = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                index = in_flight.pop(task)
                if task.cancelled():
                    outcome: Outcome[T] = Outcome(index=index, error=asyncio.CancelledError())
                elif task.exception() is not None:
                    outcome = Outcome(index=index, error=task.exception())
                else:
                    outcome = Outcome(index=index, value=task.result())
                outcomes.append(outcome)
                if on_done:
                    on_done(outcome)
            while len(in_flight) < self.parallelism and next_index < len(jobs):
                _start_next()
        return outcomes
