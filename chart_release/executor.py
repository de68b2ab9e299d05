"""Execution of pipeline operations under a fatal or non-fatal policy.

Every operation in the pipeline runs through an `Executor` passed into the
component constructors. Operations that define the consistency of a run
(reading and writing the inventory, discovery) use `must_succeed` and
propagate errors to the caller. Per-chart operations use `best_effort`, which
logs the error, records it as a `Failure` and returns a neutral result so the
rest of the batch continues.

A `MalformedResponse` is never swallowed since a partial read of a paginated
listing would silently break the version and retention invariants.
"""

from collections.abc import Awaitable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
from time import perf_counter
from typing import TypeVar, overload

from .exceptions import ChartReleaseException, MalformedResponse, ReleaseException

__all__ = [
    "Executor",
    "Failure",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

_OPERATIONS: ContextVar[tuple[str, ...]] = ContextVar("operations", default=())


@contextmanager
def _operation(name: str) -> Generator[None, None, None]:
    """Log the timing of an operation nested in the running ones."""
    operations = (*_OPERATIONS.get(), name)
    token = _OPERATIONS.set(operations)
    label = " > ".join(operations)
    start = perf_counter()
    _LOGGER.debug("Starting %s", label)
    try:
        yield
    finally:
        _OPERATIONS.reset(token)
        _LOGGER.debug("Finished %s in %0.2fs", label, perf_counter() - start)


@dataclass(frozen=True)
class Failure:
    """A non-fatal failure recorded during a run."""

    operation: str
    """The operation that failed."""

    error: str
    """The error message."""

    def __str__(self) -> str:
        return f"Failed to {self.operation}: {self.error}"


class Executor:
    """Runs operations and records non-fatal failures for the run summary."""

    def __init__(self) -> None:
        """Initialize Executor."""
        self._failures: list[Failure] = []

    @property
    def failures(self) -> list[Failure]:
        """Return the non-fatal failures recorded so far."""
        return list(self._failures)

    async def must_succeed(self, operation: str, action: Awaitable[_T]) -> _T:
        """Run an operation, propagating any error to the caller."""
        with _operation(operation):
            try:
                return await action
            except ChartReleaseException:
                raise
            except Exception as err:
                raise ReleaseException(operation, err) from err

    @overload
    async def best_effort(self, operation: str, action: Awaitable[_T]) -> _T | None:
        ...

    @overload
    async def best_effort(
        self, operation: str, action: Awaitable[_T], default: _T
    ) -> _T:
        ...

    async def best_effort(
        self, operation: str, action: Awaitable[_T], default: _T | None = None
    ) -> _T | None:
        """Run an operation, logging and recording errors instead of raising."""
        with _operation(operation):
            try:
                return await action
            except MalformedResponse:
                raise
            except Exception as err:  # pylint: disable=broad-except
                failure = Failure(operation=operation, error=str(err))
                _LOGGER.warning("%s", failure)
                _LOGGER.debug("Failure details for '%s'", operation, exc_info=err)
                self._failures.append(failure)
                return default
