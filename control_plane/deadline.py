"""Request-scoped deadline propagated down to store calls."""
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from control_plane.exceptions import DeadlineExceededError

# Absolute time.monotonic() value; None means no deadline
deadline_ctx: ContextVar[Optional[float]] = ContextVar("deadline", default=None)


def remaining() -> Optional[float]:
    """Seconds left before the current deadline, or None if unbounded."""
    expires_at = deadline_ctx.get()
    if expires_at is None:
        return None
    return expires_at - time.monotonic()


def check_deadline() -> None:
    left = remaining()
    if left is not None and left <= 0:
        raise DeadlineExceededError()


@contextmanager
def deadline_scope(timeout_seconds: Optional[float]) -> Iterator[None]:
    """Bound every store call made inside the block to ``timeout_seconds``.

    A nested scope can only shorten the enclosing deadline.
    """
    if timeout_seconds is None:
        yield
        return
    expires_at = time.monotonic() + timeout_seconds
    current = deadline_ctx.get()
    if current is not None:
        expires_at = min(expires_at, current)
    token = deadline_ctx.set(expires_at)
    try:
        yield
    finally:
        deadline_ctx.reset(token)
