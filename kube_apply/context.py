"""Utilities for tracing reconcile steps."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


@contextmanager
def trace_context(
    name: str, timings: dict[str, float] | None = None
) -> Generator[None, None, None]:
    """Trace a named step, optionally recording its duration in `timings`.

    Nested traces are labeled with the full path of step names, for example
    `apply/app > apply`.
    """
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        elapsed = perf_counter() - t1
        trace.reset(token)
        if timings is not None:
            timings[name] = timings.get(name, 0.0) + elapsed
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, elapsed)
