"""
Unit tests for session state and the settle record.
"""

import unittest

from py2phd2.core.protocol import AppStates
from py2phd2.core.session_state import SessionState
from py2phd2.models.guiding import SettleProgress


class TestTakeSettle(unittest.TestCase):
    """Check-and-clear semantics of the settle record."""

    def setUp(self):
        self.state = SessionState()

    def test_no_record_returns_none(self):
        self.assertIsNone(self.state.take_settle())

    def test_active_record_is_kept(self):
        self.state.set_settle_px(1.5)
        self.state.set_settle(SettleProgress(done=False, distance=2.0, time=3.0, settle_time=10.0))

        first = self.state.take_settle()
        second = self.state.take_settle()

        self.assertFalse(first.done)
        self.assertEqual(first.distance, 2.0)
        self.assertEqual(first.settle_px, 1.5)
        self.assertEqual(first, second)

    def test_finished_record_returned_once(self):
        self.state.set_settle(SettleProgress(done=True, status=1, error="timed out"))

        progress = self.state.take_settle()

        self.assertTrue(progress.done)
        self.assertEqual(progress.status, 1)
        self.assertEqual(progress.error, "timed out")
        self.assertIsNone(self.state.take_settle())

    def test_set_if_absent_keeps_existing(self):
        existing = SettleProgress(done=False, distance=4.0)
        self.state.set_settle(existing)
        self.state.set_settle_if_absent(SettleProgress(done=False, distance=-1.0))
        self.assertEqual(self.state.snapshot_settle(), existing)


class TestSessionStateSnapshots(unittest.TestCase):

    def test_stats_snapshot_is_a_copy(self):
        state = SessionState()
        snapshot = state.snapshot_stats()
        snapshot.rms_ra = 9.0
        self.assertEqual(state.snapshot_stats().rms_ra, 0.0)

    def test_is_guiding_includes_lost_lock(self):
        state = SessionState()
        self.assertFalse(state.is_guiding())
        with state.condition:
            state.app_state = AppStates.LOST_LOCK
        self.assertTrue(state.is_guiding())

    def test_reset(self):
        state = SessionState()
        with state.condition:
            state.app_state = AppStates.GUIDING
            state.version = "2.6.13"
            state.accum_ra.add(1.0)
            state.accum_active = True
        state.set_settle(SettleProgress(done=True))

        state.reset()

        self.assertEqual(state.get_app_state(), AppStates.STOPPED)
        self.assertEqual(state.get_version(), (None, None))
        self.assertIsNone(state.snapshot_settle())
        self.assertEqual(state.accum_ra.count, 0)
        self.assertFalse(state.accum_active)


if __name__ == '__main__':
    unittest.main()
