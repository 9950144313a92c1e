"""Cooperative cancellation and the batch pacing policy.

``CancellationToken`` is shared between a caller and one pipeline invocation;
long waits (OCR polling, AI retry backoff, batch pacing) sleep on it so a
cancel wakes them immediately.

``FixedIntervalScheduler`` enforces a minimum interval between the starts of
consecutive batch items, keeping the pacing policy out of the pipeline.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .errors import ProcessingCancelled
from .logging_setup import get_logger

_logger = get_logger("statement_ingest.scheduling")


class CancellationToken:
    """Thread-safe cancellation flag."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            suffix = f" during {where}" if where else ""
            raise ProcessingCancelled(f"{self._reason or 'cancelled'}{suffix}")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``True`` when cancelled meanwhile."""

        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)


def sleep_or_cancel(
    seconds: float,
    cancel: CancellationToken | None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    where: str = "",
) -> None:
    """Sleep, raising :class:`ProcessingCancelled` if ``cancel`` fires.

    Without a token the injected ``sleep`` is used, which keeps tests free of
    real delays.
    """

    if cancel is None:
        if seconds > 0:
            sleep(seconds)
        return
    cancel.raise_if_cancelled(where)
    if cancel.wait(seconds):
        cancel.raise_if_cancelled(where)


class FixedIntervalScheduler:
    """Admit one item at a time, at least ``interval`` seconds apart."""

    def __init__(
        self,
        interval: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_start: float | None = None
        self._lock = threading.Lock()

    def acquire(self, cancel: CancellationToken | None = None) -> float:
        """Block until the next slot opens; return the seconds waited."""

        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_start is not None:
                remaining = self.interval - (now - self._last_start)
                if remaining > 0:
                    _logger.debug("scheduler:wait seconds=%.3f", remaining)
                    sleep_or_cancel(remaining, cancel, sleep=self._sleep, where="batch pacing")
                    waited = remaining
                    now = self._clock()
            elif cancel is not None:
                cancel.raise_if_cancelled("batch pacing")
            self._last_start = now
            return waited

    def reset(self) -> None:
        with self._lock:
            self._last_start = None


__all__ = ["CancellationToken", "FixedIntervalScheduler", "sleep_or_cancel"]
