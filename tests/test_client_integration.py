"""
Integration tests for PHD2Client against a mock PHD2 server.

These tests run the real transport, reader thread and call engine over a
loopback socket. Events are pushed from the server side and the client's
state is polled until the reader thread has applied them.
"""

import math
import threading
import time
import unittest

from py2phd2.client import PHD2Client
from py2phd2.core.errors import (
    CallTimeoutError,
    DisconnectedError,
    ErrorCodes,
    NotSettlingError,
    ProtocolError,
)
from py2phd2.models.connection import ConnectionConfig, ConnectionState

from mock_phd2_server import MockPHD2Server, wait_until


def make_config(port, **overrides):
    settings = dict(
        host="127.0.0.1",
        instance=1,
        base_port=port,
        connect_timeout=1.0,
        call_timeout=1.0,
        poll_interval=0.1,
        join_timeout=2.0,
    )
    settings.update(overrides)
    return ConnectionConfig(**settings)


class ClientTestCase(unittest.TestCase):

    def setUp(self):
        self.server = MockPHD2Server()
        self.server.start()
        self.client = PHD2Client(config=make_config(self.server.port))

    def tearDown(self):
        self.client.disconnect()
        self.server.stop()

    def connect(self):
        self.client.connect()
        self.assertTrue(self.server.wait_for_client())
        # Greeting processed means the reader thread is pumping
        self.assertTrue(wait_until(lambda: self.client.version == "2.6.13"))


class TestConnectionLifecycle(ClientTestCase):

    def test_connect_reads_greeting(self):
        self.connect()

        self.assertTrue(self.client.is_connected)
        self.assertEqual(self.client.phd_subver, "dev1")
        self.assertEqual(self.client.app_state, "Stopped")
        self.assertEqual(self.client.get_connection_status().state, ConnectionState.CONNECTED)
        self.assertEqual(self.client.get_connection_status().port, self.server.port)

    def test_disconnect_is_idempotent(self):
        self.connect()

        self.client.disconnect()
        self.client.disconnect()

        self.assertFalse(self.client.is_connected)
        self.assertEqual(self.client.get_connection_status().state, ConnectionState.DISCONNECTED)
        self.assertIsNone(self.client.get_stats()['reader'])

    def test_reconnect(self):
        self.connect()
        self.client.disconnect()
        self.assertTrue(wait_until(lambda: not self.server.wait_for_client(timeout=0)))

        self.client.connect()
        self.assertTrue(self.server.wait_for_client())
        self.assertEqual(self.client.call("get_app_state"), 0)

    def test_connect_failure_raises_disconnected(self):
        self.server.stop()
        client = PHD2Client(config=make_config(self.server.port))

        with self.assertRaises(DisconnectedError) as ctx:
            client.connect()

        self.assertEqual(ctx.exception.error_code, ErrorCodes.CONNECTION_REFUSED)
        self.assertTrue(ctx.exception.suggestions)
        self.assertEqual(client.get_connection_status().state, ConnectionState.ERROR)

    def test_context_manager(self):
        with PHD2Client(config=make_config(self.server.port)) as client:
            self.assertTrue(client.is_connected)
        self.assertFalse(client.is_connected)

    def test_server_drop_marks_error(self):
        self.connect()

        self.server.drop_client()

        self.assertTrue(wait_until(lambda: not self.client.is_connected))
        self.assertTrue(wait_until(
            lambda: self.client.get_connection_status().state == ConnectionState.ERROR
        ))


class TestCalls(ClientTestCase):

    def test_call_while_disconnected_sends_nothing(self):
        with self.assertRaises(DisconnectedError):
            self.client.call("get_app_state")
        with self.assertRaises(DisconnectedError):
            self.client.loop()

        self.assertEqual(self.server.requests, [])

    def test_call_returns_result(self):
        self.server.set_result("get_exposure", 2000)
        self.connect()

        self.assertEqual(self.client.call("get_exposure"), 2000)
        self.assertEqual(self.server.requests[-1], {"method": "get_exposure", "id": 1})

    def test_call_timeout(self):
        self.server.set_silent("loop")
        self.connect()

        with self.assertRaises(CallTimeoutError):
            self.client.loop()

    def test_unsolicited_response_is_discarded(self):
        self.server.set_result("get_app_state", "Guiding")
        self.connect()

        self.server.send({"jsonrpc": "2.0", "result": "stale", "id": 1})
        self.assertTrue(wait_until(
            lambda: self.client.get_stats()["calls"]["unmatched_responses"] == 1
        ))

        self.assertEqual(self.client.call("get_app_state"), "Guiding")

    def test_protocol_error_carries_message(self):
        self.server.set_error("find_star", "could not find a suitable guide star")
        self.connect()

        with self.assertRaises(ProtocolError) as ctx:
            self.client.call("find_star")

        self.assertEqual(ctx.exception.message, "could not find a suitable guide star")

    def test_connection_lost_mid_call(self):
        def drop(params):
            self.server.drop_client()
            return None

        self.server.set_responder("loop", drop)
        self.client = PHD2Client(config=make_config(self.server.port, call_timeout=10.0))
        self.connect()

        start = time.monotonic()
        with self.assertRaises(DisconnectedError) as ctx:
            self.client.loop()
        self.assertLess(time.monotonic() - start, 5.0)
        self.assertEqual(ctx.exception.error_code, ErrorCodes.CONNECTION_LOST)

        # Later calls fail immediately
        with self.assertRaises(DisconnectedError):
            self.client.call("get_app_state")

    def test_events_between_request_and_response(self):
        self.server.set_responder("loop", lambda params: [
            {"Event": "LoopingExposures", "Frame": 1},
            {"Event": "AppState", "State": "Looping"},
            {"jsonrpc": "2.0", "result": 0, "id": 1},
        ])
        self.connect()

        self.client.loop()

        # Events precede the response on the wire, so they are already applied
        self.assertEqual(self.client.app_state, "Looping")

    def test_concurrent_callers_each_get_a_response(self):
        def slow_answer(params):
            time.sleep(0.02)
            return [{"jsonrpc": "2.0", "result": "Guiding", "id": 1}]

        self.server.set_responder("get_app_state", slow_answer)
        self.connect()
        results = []

        def worker():
            results.append(self.client.call("get_app_state"))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        self.assertEqual(results, ["Guiding"] * 5)


class TestGuidingControls(ClientTestCase):

    def test_guide_settle_scenario(self):
        self.connect()

        self.client.guide(settle_pixels=1.5, settle_time=10, settle_timeout=30)
        request = self.server.wait_for_request("guide")
        self.assertEqual(request["params"], [{"pixels": 1.5, "time": 10, "timeout": 30}, False])

        self.server.send({"Event": "Settling", "Distance": 2.0, "Time": 1.0, "SettleTime": 10.0})
        self.assertTrue(wait_until(lambda: self.client.get_status().settle_progress is not None))

        progress = self.client.check_settling()
        self.assertFalse(progress.done)
        self.assertEqual(progress.distance, 2.0)
        self.assertEqual(progress.settle_px, 1.5)

        self.server.send({"Event": "SettleDone", "Status": 0})
        self.assertTrue(wait_until(
            lambda: self.client.get_status().settle_progress is not None
            and self.client.get_status().settle_progress.done
        ))

        progress = self.client.check_settling()
        self.assertTrue(progress.done)
        self.assertEqual(progress.status, 0)

        with self.assertRaises(NotSettlingError):
            self.client.check_settling()

    def test_guide_failure_clears_settle_record(self):
        self.server.set_responder("guide", lambda params: [
            {"Event": "Settling", "Distance": 5.0, "Time": 0.0, "SettleTime": 10.0},
            {"jsonrpc": "2.0", "error": {"code": 1, "message": "cannot guide while not looping"}, "id": 1},
        ])
        self.connect()

        with self.assertRaises(ProtocolError):
            self.client.guide(1.5, 10, 60)

        with self.assertRaises(NotSettlingError):
            self.client.check_settling()

    def test_dither_params(self):
        self.connect()

        self.client.dither(3.0, 1.5, 10, 60, ra_only=True)

        request = self.server.wait_for_request("dither")
        self.assertEqual(request["params"], [3.0, True, {"pixels": 1.5, "time": 10, "timeout": 60}])

    def test_is_settling_queries_server_without_record(self):
        self.server.set_result("get_settling", True)
        self.connect()

        self.assertTrue(self.client.is_settling())
        progress = self.client.check_settling()
        self.assertFalse(progress.done)
        self.assertEqual(progress.distance, -1.0)

        # The local record now answers without another query
        self.assertTrue(self.client.is_settling())
        self.assertEqual(self.server.methods().count("get_settling"), 1)

    def test_is_settling_false(self):
        self.server.set_result("get_settling", False)
        self.connect()

        self.assertFalse(self.client.is_settling())
        with self.assertRaises(NotSettlingError):
            self.client.check_settling()

    def test_check_settling_requires_connection(self):
        with self.assertRaises(DisconnectedError):
            self.client.check_settling()

    def test_pause_variants(self):
        self.server.set_result("get_paused", True)
        self.connect()

        self.client.pause()
        self.client.unpause()
        self.client.set_paused(True, full=True)

        params = [r.get("params") for r in self.server.requests if r["method"] == "set_paused"]
        self.assertEqual(params, [[True], [False], [True, "full"]])
        self.assertTrue(self.client.get_paused())

    def test_stop_and_loop(self):
        self.connect()
        self.client.stop_capture()
        self.client.loop()
        self.assertEqual(self.server.methods(), ["stop_capture", "loop"])


class TestEventState(ClientTestCase):

    def test_guide_step_statistics_scenario(self):
        self.connect()

        self.server.send({"Event": "StartGuiding"})
        for ra in (1.0, -1.0, 2.0):
            self.server.send({
                "Event": "GuideStep", "Frame": 1, "RADistanceRaw": ra,
                "DECDistanceRaw": 0.0, "AvgDist": 0.4, "SNR": 30.0,
            })

        self.assertTrue(wait_until(lambda: self.client.stats.peak_ra == 2.0))

        stats = self.client.stats
        self.assertAlmostEqual(stats.rms_ra, math.sqrt(((1 + 1 + 4) - 2 * (2 / 3)) / 2))
        self.assertTrue(self.client.is_guiding())
        self.assertEqual(self.client.current_star.snr, 30.0)

    def test_status_snapshot(self):
        self.connect()
        self.server.send({"Event": "StarLost", "Frame": 9, "AvgDist": 2.5, "Status": "lost"})
        self.assertTrue(wait_until(lambda: self.client.last_star_lost is not None))

        status = self.client.get_status()
        self.assertTrue(status.is_connected)
        self.assertTrue(status.is_guiding)
        self.assertEqual(status.app_state, "LostLock")
        self.assertEqual(status.avg_dist, 2.5)
        self.assertEqual(status.to_dict()['last_star_lost']['frame'], 9)

    def test_event_listener(self):
        received = []
        self.client.add_event_listener(lambda event: received.append(event["Event"]))
        self.connect()

        self.server.send({"Event": "Alert", "Msg": "dark library missing", "Type": "warning"})

        self.assertTrue(wait_until(lambda: "Alert" in received))
        self.assertEqual(received[:2], ["Version", "AppState"])

    def test_malformed_line_does_not_stop_reader(self):
        self.connect()

        self.server.send("{this is not json")
        self.server.send({"Event": "AppState", "State": "Looping"})

        self.assertTrue(wait_until(lambda: self.client.app_state == "Looping"))
        self.assertTrue(self.client.is_connected)

    def test_state_reset_on_reconnect(self):
        self.connect()
        self.server.send({"Event": "AppState", "State": "Guiding"})
        self.assertTrue(wait_until(lambda: self.client.app_state == "Guiding"))

        self.server.greeting = []
        self.client.connect()

        self.assertEqual(self.client.app_state, "Stopped")
        self.assertIsNone(self.client.version)


if __name__ == '__main__':
    unittest.main()
