"""
Lock-guarded session state for a PHD2 connection.

The reader thread is the only writer (through the EventDispatcher); any
thread may read through the snapshot accessors. The same Condition also
guards the CommandClient's pending-response slot, so one lock covers all
shared mutable state of a connection.
"""

import threading
from typing import Optional

from .accumulator import Accumulator
from .protocol import AppStates
from ..models.guiding import GuideStarInfo, GuideStats, SettleProgress, StarLostInfo


class SessionState:
    """
    Mutable snapshot of what PHD2 has reported.

    Writers must hold ``condition``. Compound values (stats, current star)
    are copied on the way out since later events mutate or replace them.
    """

    def __init__(self, condition: Optional[threading.Condition] = None):
        self.condition = condition or threading.Condition(threading.Lock())

        self.app_state: str = AppStates.STOPPED
        self.avg_dist: float = 0.0
        self.stats: GuideStats = GuideStats()
        self.version: Optional[str] = None
        self.phd_subver: Optional[str] = None
        self.last_star_lost: Optional[StarLostInfo] = None
        self.current_star: GuideStarInfo = GuideStarInfo()

        # Absent when idle; replaced wholesale on each settle event
        self.settle: Optional[SettleProgress] = None
        # Threshold requested by the last successful guide/dither call
        self.settle_px: float = 0.0

        self.accum_ra = Accumulator()
        self.accum_dec = Accumulator()
        self.accum_active = False

    def reset(self) -> None:
        """Return to the initial state, used when a new session connects."""
        with self.condition:
            self.app_state = AppStates.STOPPED
            self.avg_dist = 0.0
            self.stats = GuideStats()
            self.version = None
            self.phd_subver = None
            self.last_star_lost = None
            self.current_star = GuideStarInfo()
            self.settle = None
            self.settle_px = 0.0
            self.accum_ra.reset()
            self.accum_dec.reset()
            self.accum_active = False

    def recompute_stats(self) -> None:
        """Caller holds the condition."""
        self.stats = GuideStats.from_accumulators(self.accum_ra, self.accum_dec)

    # ----- snapshot accessors -----

    def get_app_state(self) -> str:
        with self.condition:
            return self.app_state

    def get_avg_dist(self) -> float:
        with self.condition:
            return self.avg_dist

    def get_version(self):
        """Return (version, subversion)."""
        with self.condition:
            return self.version, self.phd_subver

    def snapshot_stats(self) -> GuideStats:
        with self.condition:
            return self.stats.copy()

    def snapshot_current_star(self) -> GuideStarInfo:
        with self.condition:
            return self.current_star.copy()

    def snapshot_last_star_lost(self) -> Optional[StarLostInfo]:
        with self.condition:
            return self.last_star_lost

    def snapshot_settle(self) -> Optional[SettleProgress]:
        with self.condition:
            return self.settle

    def is_guiding(self) -> bool:
        with self.condition:
            return self.app_state in (AppStates.GUIDING, AppStates.LOST_LOCK)

    # ----- settle slot -----

    def set_settle(self, progress: Optional[SettleProgress]) -> None:
        with self.condition:
            self.settle = progress

    def set_settle_if_absent(self, progress: SettleProgress) -> None:
        with self.condition:
            if self.settle is None:
                self.settle = progress

    def set_settle_px(self, pixels: float) -> None:
        with self.condition:
            self.settle_px = pixels

    def take_settle(self) -> Optional[SettleProgress]:
        """
        Check-and-clear read of the settle record.

        A finished record is returned and cleared; an active record is
        returned as a progress snapshot (carrying the requested settle
        threshold) and kept. None when no record exists.
        """
        with self.condition:
            record = self.settle
            if record is None:
                return None

            if record.done:
                self.settle = None
                return SettleProgress(done=True, status=record.status, error=record.error)

            return SettleProgress(
                done=False,
                distance=record.distance,
                settle_px=self.settle_px,
                time=record.time,
                settle_time=record.settle_time,
            )
