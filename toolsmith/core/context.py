"""Cancellation context threaded through every network call.

A ``Context`` is shared by all calls made on behalf of one operation. It is
checked before each request and between download chunks; archive extraction
and hashing never look at it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

__all__ = ["Context"]


@dataclass(frozen=True, slots=True)
class Context:
    """Cancel flag plus optional monotonic deadline.

    Attributes:
        deadline: ``time.monotonic()`` value after which the context is done
    """

    deadline: float | None = None
    _cancel: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @classmethod
    def background(cls) -> Context:
        """Context that is never done unless cancelled."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> Context:
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def done(self) -> bool:
        """True once cancelled or past the deadline."""
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def reason(self) -> str:
        return "context cancelled" if self.cancelled else "context deadline exceeded"

    def bound_timeout(self, timeout: float) -> float:
        """Clamp a per-request timeout to the time left on this context."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)
