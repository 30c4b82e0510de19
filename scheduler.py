"""Single-slot deferred task scheduling for the edit cycle.

Each concern (whole-form validation, progress repaint, auto-save) owns one
named slot. ``debounce`` replaces whatever is pending in the slot and restarts
its timer; ``request_frame`` coalesces, leaving an already pending task alone.
Nothing runs on its own: the embedding host calls ``run_due`` from its event
loop (once per repaint is enough), and tests drive a ``VirtualClock``.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List

logger = logging.getLogger("dealform.scheduler")

FRAME_INTERVAL_S = 1.0 / 60.0

Task = Callable[[], None]


class VirtualClock:
    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        if value < self._now:
            raise ValueError("cannot move the clock backwards")
        self._now = value


@dataclass(order=True)
class _Pending:
    due: float
    seq: int
    key: str = field(compare=False)
    task: Task = field(compare=False)


class Scheduler:
    def __init__(self, clock: Callable[[], float] | None = None, frame_interval: float = FRAME_INTERVAL_S) -> None:
        self._clock = clock or time.monotonic
        self._frame_interval = frame_interval
        self._slots: Dict[str, _Pending] = {}
        self._seq = itertools.count()

    def now(self) -> float:
        return self._clock()

    def debounce(self, key: str, delay_s: float, task: Task) -> None:
        """Schedule ``task`` after ``delay_s`` of quiet, cancelling any pending task for ``key``."""
        if key in self._slots:
            logger.debug("debounce_reset key=%s", key)
        self._slots[key] = _Pending(self.now() + max(0.0, delay_s), next(self._seq), key, task)

    def request_frame(self, key: str, task: Task) -> bool:
        """Run ``task`` on the next frame unless one is already pending for ``key``."""
        if key in self._slots:
            return False
        self._slots[key] = _Pending(self.now() + self._frame_interval, next(self._seq), key, task)
        return True

    def cancel(self, key: str) -> bool:
        return self._slots.pop(key, None) is not None

    def is_pending(self, key: str) -> bool:
        return key in self._slots

    def pending_keys(self) -> list[str]:
        return sorted(self._slots.keys())

    def flush(self, key: str) -> bool:
        """Run the pending task for ``key`` right away."""
        pending = self._slots.pop(key, None)
        if pending is None:
            return False
        pending.task()
        return True

    def run_due(self) -> int:
        """Run every task whose due time has passed, earliest first.

        Tasks scheduled while this pass runs wait for the next call.
        """
        now = self.now()
        due: List[_Pending] = sorted(p for p in self._slots.values() if p.due <= now)
        ran = 0
        for pending in due:
            # A task earlier in this pass may have replaced or cancelled the slot.
            if self._slots.get(pending.key) is not pending:
                continue
            del self._slots[pending.key]
            pending.task()
            ran += 1
        return ran

    def advance(self, seconds: float) -> int:
        """Move a ``VirtualClock`` forward, running tasks at their due times."""
        if not isinstance(self._clock, VirtualClock):
            raise TypeError("advance() requires a VirtualClock")
        target = self._clock() + seconds
        ran = 0
        while True:
            upcoming = [p for p in self._slots.values() if p.due <= target]
            if not upcoming:
                break
            self._clock.set(max(self._clock(), min(upcoming).due))
            ran += self.run_due()
        self._clock.set(target)
        return ran
