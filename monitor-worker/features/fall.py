# monitor-worker/features/fall.py
"""
Fall heuristic over the per-tick motion score.

A spike (sudden large change) opens a pending candidate. The candidate is
confirmed after a run of consecutive low-motion ticks, cancelled as soon as
motion resumes, and dropped once it is older than the pending timeout.
Only one candidate is tracked at a time, so a second spike arriving while
one is pending is ignored until the first resolves.
"""
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FallTunables:
    spike_threshold: float = 0.25
    low_motion_threshold: float = 0.02
    confirmation_count: int = 3
    pending_timeout: float = 15.0


@dataclass
class PendingFall:
    timestamp: float
    spike_score: float
    confirm_count: int = 0

    def age(self, now: float) -> float:
        return now - self.timestamp


class FallDetector:
    def __init__(self, tunables: Optional[FallTunables] = None):
        self.tunables = tunables or FallTunables()
        self.pending: Optional[PendingFall] = None

    def step(self, score: float, now: float) -> Optional[PendingFall]:
        """
        Feed one tick's score. Returns the confirmed candidate when this tick
        completes a fall, otherwise None.
        """
        t = self.tunables

        # an expired candidate can no longer confirm
        if self.pending is not None and self.pending.age(now) > t.pending_timeout:
            logger.debug("[fall] candidate expired after %.1fs (spike=%.3f, confirms=%d)",
                         self.pending.age(now), self.pending.spike_score, self.pending.confirm_count)
            self.pending = None

        if self.pending is None:
            if score >= t.spike_threshold:
                self.pending = PendingFall(timestamp=now, spike_score=score)
                logger.debug("[fall] spike %.3f, candidate opened", score)
            return None

        if score > t.low_motion_threshold:
            logger.debug("[fall] motion resumed (%.3f), candidate cancelled", score)
            self.pending = None
            return None

        self.pending.confirm_count += 1
        if self.pending.confirm_count >= t.confirmation_count:
            confirmed, self.pending = self.pending, None
            return confirmed
        return None

    def reset(self):
        self.pending = None
