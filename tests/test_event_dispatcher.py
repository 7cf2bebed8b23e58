"""
Unit tests for the EventDispatcher.

Lines are fed directly to dispatch(), the way the reader thread does, and
the resulting session state is inspected.
"""

import json
import math
import unittest
from unittest.mock import Mock

from py2phd2.core.command_client import CommandClient
from py2phd2.core.protocol import AppStates
from py2phd2.core.session_state import SessionState
from py2phd2.core.socket_reader import EventDispatcher


def guide_step(ra, dec, avg_dist=0.5, **extra):
    event = {
        "Event": "GuideStep",
        "Frame": 1,
        "RADistanceRaw": ra,
        "DECDistanceRaw": dec,
        "AvgDist": avg_dist,
    }
    event.update(extra)
    return json.dumps(event)


class DispatcherTestCase(unittest.TestCase):

    def setUp(self):
        self.state = SessionState()
        self.command_client = Mock(spec=CommandClient)
        self.dispatcher = EventDispatcher(self.state, self.command_client)

    def send(self, event):
        self.dispatcher.dispatch(event if isinstance(event, str) else json.dumps(event))


class TestRouting(DispatcherTestCase):

    def test_response_goes_to_command_client(self):
        self.send({"jsonrpc": "2.0", "result": 0, "id": 1})
        self.command_client.deliver.assert_called_once_with({"jsonrpc": "2.0", "result": 0, "id": 1})

    def test_event_not_delivered_as_response(self):
        self.send({"Event": "Paused"})
        self.command_client.deliver.assert_not_called()

    def test_malformed_line_is_dropped(self):
        self.send('{"Event": "GuideStep", ')
        self.send("not json at all")
        self.assertEqual(self.dispatcher.get_stats()['messages_dropped'], 2)
        self.command_client.deliver.assert_not_called()

    def test_blank_line_ignored(self):
        self.send("   ")
        self.assertEqual(self.dispatcher.get_stats()['messages_dropped'], 0)

    def test_event_missing_required_field_is_dropped(self):
        self.send({"Event": "GuideStep", "AvgDist": 0.3})
        self.assertEqual(self.dispatcher.get_stats()['messages_dropped'], 1)
        self.assertEqual(self.state.get_app_state(), AppStates.STOPPED)

    def test_processing_continues_after_bad_line(self):
        self.send("garbage")
        self.send({"Event": "AppState", "State": "Looping"})
        self.assertEqual(self.state.get_app_state(), "Looping")


class TestStateEvents(DispatcherTestCase):

    def test_version(self):
        self.send({"Event": "Version", "PHDVersion": "2.6.13", "PHDSubver": "dev2"})
        self.assertEqual(self.state.get_version(), ("2.6.13", "dev2"))

    def test_app_state(self):
        self.send({"Event": "AppState", "State": "Calibrating"})
        self.assertEqual(self.state.get_app_state(), "Calibrating")

    def test_guiding_stopped_and_paused(self):
        self.send({"Event": "StartGuiding"})
        self.assertEqual(self.state.get_app_state(), AppStates.GUIDING)
        self.send({"Event": "Paused"})
        self.assertEqual(self.state.get_app_state(), AppStates.PAUSED)
        self.send({"Event": "GuidingStopped"})
        self.assertEqual(self.state.get_app_state(), AppStates.STOPPED)

    def test_star_lost(self):
        self.send({
            "Event": "StarLost", "Frame": 42, "Time": 12.5, "StarMass": 100.0,
            "SNR": 3.1, "AvgDist": 1.7, "ErrorCode": 2, "Status": "star lost - low mass",
        })

        lost = self.state.snapshot_last_star_lost()
        self.assertEqual(self.state.get_app_state(), AppStates.LOST_LOCK)
        self.assertEqual(self.state.get_avg_dist(), 1.7)
        self.assertEqual(lost.frame, 42)
        self.assertEqual(lost.error_code, 2)
        self.assertEqual(lost.status, "star lost - low mass")
        self.assertIsNotNone(lost.timestamp)

    def test_star_lost_with_missing_fields(self):
        self.send({"Event": "StarLost", "Frame": 3})
        lost = self.state.snapshot_last_star_lost()
        self.assertEqual(lost.frame, 3)
        self.assertEqual(lost.status, "")


class TestGuideStepAccumulation(DispatcherTestCase):

    def test_three_steps_yield_expected_rms(self):
        self.send({"Event": "StartGuiding"})
        for ra in (1.0, -1.0, 2.0):
            self.dispatcher.dispatch(guide_step(ra, 0.0))

        stats = self.state.snapshot_stats()
        self.assertAlmostEqual(stats.rms_ra, math.sqrt(((1 + 1 + 4) - 2 * (2 / 3)) / 2))
        self.assertEqual(stats.peak_ra, 2.0)
        self.assertEqual(stats.rms_dec, 0.0)

    def test_step_ignored_while_inactive(self):
        self.dispatcher.dispatch(guide_step(5.0, 5.0, avg_dist=0.8))

        self.assertEqual(self.state.snapshot_stats().peak_ra, 0.0)
        self.assertEqual(self.state.get_app_state(), AppStates.GUIDING)
        self.assertEqual(self.state.get_avg_dist(), 0.8)

    def test_settle_suspends_accumulation_until_done(self):
        self.send({"Event": "StartGuiding"})
        self.dispatcher.dispatch(guide_step(1.0, 0.0))

        self.send({"Event": "SettleBegin"})
        self.dispatcher.dispatch(guide_step(9.0, 9.0))
        self.assertEqual(self.state.snapshot_stats().peak_ra, 1.0)

        self.send({"Event": "SettleDone", "Status": 0})
        self.dispatcher.dispatch(guide_step(3.0, 0.0))
        self.assertEqual(self.state.snapshot_stats().peak_ra, 3.0)

    def test_start_guiding_resets_accumulators(self):
        self.send({"Event": "StartGuiding"})
        self.dispatcher.dispatch(guide_step(4.0, -4.0))
        self.send({"Event": "StartGuiding"})
        self.dispatcher.dispatch(guide_step(0.5, 0.5))

        with self.state.condition:
            self.assertEqual(self.state.accum_ra.count, 1)
            self.assertEqual(self.state.accum_ra.peak(), 0.5)

    def test_star_quality_merged(self):
        self.dispatcher.dispatch(guide_step(0.1, 0.1, SNR=25.0, HFD=2.1))
        self.dispatcher.dispatch(guide_step(0.1, 0.1, StarMass=5000.0))

        star = self.state.snapshot_current_star()
        self.assertEqual(star.snr, 25.0)
        self.assertEqual(star.hfd, 2.1)
        self.assertEqual(star.star_mass, 5000.0)
        self.assertIsNotNone(star.last_update)


class TestSettleEvents(DispatcherTestCase):

    def test_settling_record(self):
        self.state.set_settle_px(1.5)
        self.send({"Event": "Settling", "Distance": 2.0, "Time": 4.0, "SettleTime": 10.0})

        record = self.state.snapshot_settle()
        self.assertFalse(record.done)
        self.assertEqual(record.distance, 2.0)
        self.assertEqual(record.settle_px, 1.5)
        self.assertEqual(record.time, 4.0)
        self.assertEqual(record.settle_time, 10.0)

    def test_settle_done_failure(self):
        self.send({"Event": "SettleDone", "Status": 1, "Error": "timed-out waiting for guider to settle"})

        record = self.state.snapshot_settle()
        self.assertTrue(record.done)
        self.assertEqual(record.status, 1)
        self.assertEqual(record.error, "timed-out waiting for guider to settle")

    def test_settle_done_replaces_progress(self):
        self.send({"Event": "Settling", "Distance": 2.0, "Time": 1.0, "SettleTime": 10.0})
        self.send({"Event": "SettleDone", "Status": 0})
        self.assertTrue(self.state.snapshot_settle().done)
        self.assertIsNone(self.state.snapshot_settle().error)


class TestListeners(DispatcherTestCase):

    def test_listeners_receive_events_in_order(self):
        received = []
        self.dispatcher.add_listener(lambda event: received.append(event["Event"]))

        self.send({"Event": "StartGuiding"})
        self.send({"Event": "LockPositionSet", "X": 1.0, "Y": 2.0})
        self.send({"Event": "GuidingStopped"})

        self.assertEqual(received, ["StartGuiding", "LockPositionSet", "GuidingStopped"])

    def test_listener_sees_updated_state(self):
        seen = []
        self.dispatcher.add_listener(lambda event: seen.append(self.state.get_app_state()))
        self.send({"Event": "Paused"})
        self.assertEqual(seen, [AppStates.PAUSED])

    def test_listener_not_called_for_responses(self):
        listener = Mock()
        self.dispatcher.add_listener(listener)
        self.send({"jsonrpc": "2.0", "result": 0, "id": 1})
        listener.assert_not_called()

    def test_failing_listener_does_not_stop_dispatch(self):
        good = Mock()
        self.dispatcher.add_listener(Mock(side_effect=RuntimeError("listener bug")))
        self.dispatcher.add_listener(good)

        self.send({"Event": "Paused"})

        good.assert_called_once()
        self.assertEqual(self.state.get_app_state(), AppStates.PAUSED)

    def test_remove_listener(self):
        listener = Mock()
        self.dispatcher.add_listener(listener)
        self.dispatcher.remove_listener(listener)
        self.dispatcher.remove_listener(listener)
        self.send({"Event": "Paused"})
        listener.assert_not_called()


if __name__ == '__main__':
    unittest.main()
