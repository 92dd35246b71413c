"""Wall-clock cadences for periodic simulation work.

Everything that runs "every N seconds" (weather steps, hazard checks, thought
cycles, spawn checks) is throttled by plain timestamp comparisons rather than
timers or threads. ``Cadence`` describes the period; ``CadenceClock`` stores the
last firing time per key so a single object can drive many independent loops.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Hashable, Optional


@dataclass(frozen=True)
class Cadence:
    """An ``every N seconds`` cadence with an optional initial delay."""

    every: float
    delay: float = 0.0

    def is_due(self, *, now: float, last_run: Optional[float]) -> bool:
        """Return ``True`` when the cadence should fire at ``now``."""

        if self.every <= 0:
            return True

        if last_run is None:
            return now >= self.delay

        return now - last_run >= self.every


@dataclass
class CadenceClock:
    """Last-run bookkeeping for a family of keyed cadences."""

    last_run: Dict[Hashable, float] = field(default_factory=dict)

    def due(self, key: Hashable, cadence: Cadence, now: float) -> bool:
        """Check and, if due, mark ``key`` as run at ``now``."""

        if cadence.is_due(now=now, last_run=self.last_run.get(key)):
            self.last_run[key] = now
            return True
        return False

    def peek(self, key: Hashable, cadence: Cadence, now: float) -> bool:
        return cadence.is_due(now=now, last_run=self.last_run.get(key))

    def mark(self, key: Hashable, now: float) -> None:
        self.last_run[key] = now

    def reset(self, key: Hashable) -> None:
        self.last_run.pop(key, None)


__all__ = ["Cadence", "CadenceClock"]
