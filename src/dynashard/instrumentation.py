"""Timing instrumentation wrapped around every store call."""

from __future__ import annotations

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def instrument_name(operation: str, table_name: str | None) -> str:
    """Dotted event name, e.g. ``dynashard.users.batch.get.item``."""
    parts = ".".join(p.lower() for p in operation.split("_") if p)
    if table_name:
        return f"dynashard.{table_name}.{parts}"
    return f"dynashard.{parts}"


def _label(operation: str) -> str:
    return " ".join(p.upper() for p in operation.split("_") if p)


@contextmanager
def benchmark(operation: str, table_name: str | None, *args: Any) -> Iterator[None]:
    """Time the enclosed block and log ``(12.34 ms) OPERATION NAME - [args]``.

    Nothing is logged when the block raises; the store's error propagates as-is.
    """
    start = time.perf_counter()
    yield
    duration_ms = round((time.perf_counter() - start) * 1000.0, 2)
    suffix = f" - {list(args)!r}" if args else ""
    logger.info(
        "(%s ms) %s%s",
        duration_ms,
        _label(operation),
        suffix,
        extra={
            "instrument": instrument_name(operation, table_name),
            "duration_ms": duration_ms,
        },
    )


def _table_of(args: tuple[Any, ...]) -> str | None:
    if not args:
        return None
    first = args[0]
    if isinstance(first, str):
        return first
    if isinstance(first, dict):
        return ",".join(str(k) for k in first) or None
    return None


def instrumented(operation: str | None = None) -> Callable[[F], F]:
    """Decorate a method whose first argument names the table (or maps tables to keys)."""

    def decorator(func: F) -> F:
        name = operation or func.__name__

        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            logged = args + ((kwargs,) if kwargs else ())
            with benchmark(name, _table_of(args), *logged):
                return func(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
