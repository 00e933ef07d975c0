"""Tests for RefreshScheduler and ArrivalsSession."""

import unittest
from unittest.mock import MagicMock

from helpers import DeferredExecutor, FakeClock, ImmediateExecutor, make_arrival, make_directory, make_station

from bartarrivals.bart_client import BARTClient
from bartarrivals.config import PHONE_SETTINGS
from bartarrivals.errors import NetworkError, ParseError, StationMismatchError
from bartarrivals.models import LocationAuthorization, LocationSample, Status, StatusKind
from bartarrivals.persistence import InMemoryStationMemory
from bartarrivals.scheduler import EMPTY_FEED_MESSAGE, UNEXPECTED_ERROR_MESSAGE, RefreshScheduler
from bartarrivals.session import ArrivalsSession
from bartarrivals.timers import CancellationToken

NEAR_A = LocationSample(0.1, 0.1)
NEAR_B = LocationSample(0.95, 0.95)


class SchedulerTestCase(unittest.TestCase):
    """Scheduler wired to a fake client, a fake clock and a synchronous executor."""

    def setUp(self):
        self.a = make_station("A", 0.0, 0.0, "Alpha")
        self.b = make_station("B", 1.0, 1.0, "Bravo")
        self.directory = make_directory(self.a, self.b)
        self.clock = FakeClock(1000.0)
        self.memory = InMemoryStationMemory()
        self.feeds = {
            "A": [make_arrival("X", 5), make_arrival("Y", 2)],
            "B": [make_arrival("Z", 7, "YELLOW")],
        }
        self.client = MagicMock(spec=BARTClient)
        self.client.fetch.side_effect = lambda station: list(self.feeds[station.code])
        self.executor = self.make_executor()
        self.scheduler = RefreshScheduler(
            self.directory,
            self.client,
            settings=PHONE_SETTINGS,
            memory=self.memory,
            clock=self.clock,
            executor=self.executor,
        )
        self.state = self.scheduler.state

    def make_executor(self):
        return ImmediateExecutor()

    def tearDown(self):
        self.scheduler.close()

    def fetched_codes(self):
        return [call.args[0].code for call in self.client.fetch.call_args_list]


class TestLocationFlow(SchedulerTestCase):

    def test_first_sample_fetches_and_publishes(self):
        future = self.scheduler.on_location_sample(NEAR_A)

        delivery = future.result()
        self.assertTrue(delivery.changed)
        self.assertEqual(self.state.station, self.a)
        self.assertEqual([a.destination for a in self.state.arrivals], ["Y", "X"])
        self.assertEqual(self.state.status, Status.ready())
        self.assertEqual(self.memory.get_last_station_code(), "A")

    def test_station_change_bypasses_rate_limit(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.clock.advance(1)

        future = self.scheduler.on_location_sample(NEAR_B)

        self.assertIsNotNone(future)
        self.assertEqual(self.fetched_codes(), ["A", "B"])
        self.assertEqual(self.state.station, self.b)
        self.assertEqual(self.state.arrivals[0].destination, "Z")

    def test_same_station_waits_for_refresh_interval(self):
        self.scheduler.on_location_sample(NEAR_A)

        self.clock.advance(30)
        self.assertIsNone(self.scheduler.on_location_sample(NEAR_A))

        self.clock.advance(31)
        self.assertIsNotNone(self.scheduler.on_location_sample(NEAR_A))
        self.assertEqual(self.fetched_codes(), ["A", "A"])

    def test_tick_refreshes_when_due(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.clock.advance(30)
        self.assertIsNone(self.scheduler.tick())
        self.clock.advance(30)
        self.assertIsNotNone(self.scheduler.tick())
        self.assertEqual(self.fetched_codes(), ["A", "A"])

    def test_manual_refresh_honours_floor(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.clock.advance(5)
        self.assertIsNone(self.scheduler.refresh())
        self.clock.advance(11)
        self.assertIsNotNone(self.scheduler.refresh())

    def test_unchanged_result_keeps_list_identity(self):
        self.scheduler.on_location_sample(NEAR_A)
        exposed = self.state.arrivals

        self.clock.advance(61)
        delivery = self.scheduler.tick().result()

        self.assertFalse(delivery.changed)
        self.assertIs(self.state.arrivals, exposed)

    def test_empty_feed(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.feeds["A"] = []
        self.clock.advance(61)

        self.scheduler.tick().result()

        self.assertEqual(self.state.arrivals, [])
        self.assertEqual(self.state.status, Status.ready(EMPTY_FEED_MESSAGE))

    def test_subscribers_notified(self):
        seen = []
        unsubscribe = self.state.subscribe(lambda state: seen.append((state.status.kind, state.is_loading)))

        self.scheduler.on_location_sample(NEAR_A)
        self.assertIn((StatusKind.LOADING, True), seen)
        self.assertEqual(seen[-1], (StatusKind.READY, False))

        unsubscribe()
        count = len(seen)
        self.scheduler.on_location_sample(NEAR_B)
        self.assertEqual(len(seen), count)

    def test_unchanged_poll_only_toggles_loading_flag(self):
        self.scheduler.on_location_sample(NEAR_A)
        seen = []
        self.state.subscribe(lambda state: seen.append((state.status, state.is_loading)))
        self.clock.advance(61)

        self.scheduler.tick().result()

        self.assertEqual(seen, [(Status.ready(), True), (Status.ready(), False)])


class TestManualSelection(SchedulerTestCase):

    def test_manual_selection_always_fetches(self):
        self.scheduler.on_location_sample(NEAR_A)

        self.scheduler.select_station(self.b)
        self.scheduler.select_station("B")

        self.assertEqual(self.fetched_codes(), ["A", "B", "B"])
        self.assertEqual(self.memory.get_last_station_code(), "B")

    def test_location_ignored_during_window(self):
        self.scheduler.select_station(self.b)
        self.clock.advance(300)

        self.scheduler.on_location_sample(NEAR_A)

        self.assertEqual(self.state.station, self.b)

    def test_falls_back_to_location_after_window(self):
        self.scheduler.select_station(self.b)
        self.clock.advance(600)

        future = self.scheduler.on_location_sample(NEAR_A)

        self.assertIsNotNone(future)
        self.assertEqual(self.state.station, self.a)
        self.assertEqual(self.fetched_codes(), ["B", "A"])

    def test_unknown_station_code(self):
        with self.assertRaises(ValueError):
            self.scheduler.select_station("NOPE")


class TestFailures(SchedulerTestCase):

    def test_network_error_keeps_arrivals(self):
        self.scheduler.on_location_sample(NEAR_A)
        arrivals = self.state.arrivals
        self.client.fetch.side_effect = NetworkError("down")
        self.clock.advance(61)

        self.assertIsNone(self.scheduler.tick().result())

        self.assertIs(self.state.arrivals, arrivals)
        self.assertEqual(self.state.status, Status.error("Network error"))

    def test_parse_error_keeps_arrivals(self):
        self.scheduler.on_location_sample(NEAR_A)
        arrivals = self.state.arrivals
        self.client.fetch.side_effect = ParseError("bad")
        self.clock.advance(61)

        self.scheduler.tick().result()

        self.assertIs(self.state.arrivals, arrivals)
        self.assertEqual(self.state.status, Status.error("Error parsing data"))

    def test_error_retried_on_next_due_tick(self):
        self.client.fetch.side_effect = NetworkError("down")
        self.scheduler.on_location_sample(NEAR_A)
        self.assertEqual(self.state.status.kind, StatusKind.ERROR)

        self.client.fetch.side_effect = lambda station: list(self.feeds[station.code])
        self.clock.advance(5)
        self.assertIsNone(self.scheduler.tick())
        self.clock.advance(25)
        self.scheduler.tick().result()
        self.assertEqual(self.state.status, Status.ready())

    def test_station_mismatch_leaves_state_untouched(self):
        self.scheduler.on_location_sample(NEAR_A)
        arrivals = self.state.arrivals
        status = self.state.status
        last_success = self.scheduler.store.last_successful_call_at
        self.client.fetch.side_effect = StationMismatchError("A", "B", "Bravo")
        self.clock.advance(61)

        self.assertIsNone(self.scheduler.tick().result())

        self.assertIs(self.state.arrivals, arrivals)
        self.assertEqual(self.state.status, status)
        self.assertEqual(self.scheduler.store.last_successful_call_at, last_success)

    def test_location_denied_without_station(self):
        self.scheduler.set_authorization(LocationAuthorization.DENIED)
        self.assertEqual(self.state.status.kind, StatusKind.ERROR)

    def test_authorization_grant_resolves_last_sample(self):
        self.scheduler.set_authorization(LocationAuthorization.DENIED)
        self.assertIsNone(self.scheduler.on_location_sample(NEAR_A))
        self.assertIsNone(self.state.station)

        future = self.scheduler.set_authorization(LocationAuthorization.AUTHORIZED)

        self.assertIsNotNone(future)
        self.assertEqual(self.state.station, self.a)

    def test_unexpected_client_error_surfaces_as_error(self):
        self.client.fetch.side_effect = KeyError("boom")

        with self.assertLogs("bartarrivals.scheduler", level="ERROR") as logs:
            future = self.scheduler.on_location_sample(NEAR_A)

        self.assertIsNone(future.result())
        self.assertEqual(self.state.status, Status.error(UNEXPECTED_ERROR_MESSAGE))
        self.assertFalse(self.state.is_loading)
        self.assertTrue(any("Unexpected error fetching A" in line for line in logs.output))

    def test_subscriber_failure_is_logged(self):
        def render(state):
            if state.status.kind is StatusKind.READY:
                raise RuntimeError("render failed")

        self.state.subscribe(render)

        with self.assertLogs("bartarrivals.scheduler", level="ERROR") as logs:
            future = self.scheduler.on_location_sample(NEAR_A)

        self.assertIsInstance(future.exception(), RuntimeError)
        self.assertTrue(any("render failed" in line for line in logs.output))


class TestInFlight(SchedulerTestCase):

    def make_executor(self):
        return DeferredExecutor()

    def test_stale_response_is_dropped(self):
        first = self.scheduler.on_location_sample(NEAR_A)
        self.clock.advance(1)
        self.scheduler.on_location_sample(NEAR_B)

        self.executor.run_next(0)
        self.assertIsNone(first.result())
        self.assertEqual(self.state.arrivals, [])

        self.executor.run_all()
        self.assertEqual(self.state.station, self.b)
        self.assertEqual(self.state.arrivals[0].destination, "Z")

    def test_no_duplicate_fetch_while_in_flight(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.clock.advance(120)
        self.assertIsNone(self.scheduler.tick())
        self.assertEqual(len(self.executor.pending), 1)

    def test_foreground_does_not_repeat_in_flight_fetch(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.scheduler.enter_background()
        self.clock.advance(30)

        self.assertIsNone(self.scheduler.enter_foreground())

        self.executor.run_all()
        self.assertEqual(self.state.station, self.a)
        self.assertEqual(len(self.state.arrivals), 2)

    def test_response_after_reset_is_dropped(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.scheduler.enter_background()
        self.clock.advance(700)
        self.scheduler.enter_foreground()

        # Old fetch (epoch before reset) then the fresh one
        stale = self.executor.run_next(0)
        self.assertIsNone(stale.result())
        self.executor.run_all()
        self.assertEqual(len(self.state.arrivals), 2)

    def test_mismatch_never_touches_status(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.executor.run_all()
        statuses = []
        self.state.subscribe(lambda state: statuses.append(state.status))
        self.clock.advance(61)

        self.assertIsNotNone(self.scheduler.tick())
        self.client.fetch.side_effect = StationMismatchError("A", "B", "Bravo")
        self.executor.run_all()

        self.assertEqual(statuses, [Status.ready(), Status.ready()])
        self.assertFalse(self.state.is_loading)

    def test_mismatch_after_newer_failure_keeps_error_status(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.executor.run_all()
        self.clock.advance(16)
        older = self.scheduler.refresh()
        newer = self.scheduler.select_station("A")

        self.client.fetch.side_effect = NetworkError("down")
        self.executor.run_next(1)
        self.client.fetch.side_effect = StationMismatchError("A", "B", "Bravo")
        self.executor.run_next(0)

        self.assertIsNone(newer.result())
        self.assertIsNone(older.result())
        self.assertEqual(self.state.status, Status.error("Network error"))
        self.assertFalse(self.state.is_loading)

    def test_older_reply_for_same_station_is_dropped(self):
        older = self.scheduler.select_station("A")
        newer = self.scheduler.select_station("A")

        self.feeds["A"] = [make_arrival("New", 3)]
        self.executor.run_next(1)
        self.feeds["A"] = [make_arrival("Old", 9)]
        self.executor.run_next(0)

        self.assertIsNotNone(newer.result())
        self.assertIsNone(older.result())
        self.assertEqual([a.destination for a in self.state.arrivals], ["New"])


class TestLifecycle(SchedulerTestCase):

    def test_background_suspends_fetching(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.scheduler.enter_background()
        self.clock.advance(120)

        self.assertIsNone(self.scheduler.tick())
        self.assertIsNone(self.scheduler.on_location_sample(NEAR_B))
        self.assertEqual(self.state.station, self.a)

    def test_foreground_forces_fetch_and_resolves(self):
        self.scheduler.on_location_sample(NEAR_A)
        self.scheduler.enter_background()
        self.scheduler.on_location_sample(NEAR_B)
        self.clock.advance(5)

        future = self.scheduler.enter_foreground()

        self.assertIsNotNone(future)
        self.assertEqual(self.state.station, self.b)

    def test_short_background_keeps_state_and_forces_fetch(self):
        self.scheduler.on_location_sample(NEAR_A)
        arrivals = self.state.arrivals
        self.scheduler.enter_background()
        self.clock.advance(5)

        self.assertIsNotNone(self.scheduler.enter_foreground())
        self.assertEqual(self.fetched_codes(), ["A", "A"])
        self.assertIs(self.state.arrivals, arrivals)

    def test_long_background_starts_fresh(self):
        self.scheduler.select_station(self.b)
        self.scheduler.on_location_sample(NEAR_A)
        self.scheduler.enter_background()
        self.clock.advance(600)

        self.scheduler.enter_foreground()

        # Manual pick discarded; resolution restarted from the last sample
        self.assertEqual(self.state.station, self.a)
        self.assertFalse(self.scheduler.resolver.is_manual_active(self.clock()))

    def test_start_restores_last_station(self):
        self.memory.set_last_station_code("B")

        future = self.scheduler.start()

        self.assertIsNotNone(future)
        self.assertEqual(self.state.station, self.b)
        self.assertEqual(self.fetched_codes(), ["B"])
        self.assertTrue(self.scheduler.is_running)

    def test_start_ignores_unknown_saved_station(self):
        self.memory.set_last_station_code("GONE")
        self.assertIsNone(self.scheduler.start())
        self.assertIsNone(self.state.station)

    def test_stop_cancels_timers(self):
        self.scheduler.start()
        self.scheduler.select_station(self.a)
        self.scheduler.stop()

        self.assertFalse(self.scheduler.is_running)
        self.assertIsNone(self.scheduler._periodic)
        self.assertIsNone(self.scheduler._expiry_timer)

    def test_cancelled_token_blocks_callbacks(self):
        token = CancellationToken()
        token.cancel()
        callback = MagicMock()

        self.scheduler._guarded(token, callback)

        callback.assert_not_called()


class TestArrivalsSession(unittest.TestCase):

    def test_describe_groups(self):
        a = make_station("A", 0.0, 0.0, "Alpha")
        client = MagicMock(spec=BARTClient)
        client.fetch.return_value = [
            make_arrival("Daly City", 12, "RED"),
            make_arrival("Daly City", 0, "RED"),
            make_arrival("Richmond", 4, "PURPLE"),
        ]
        session = ArrivalsSession(
            directory=make_directory(a),
            client=client,
            executor=ImmediateExecutor(),
        )
        try:
            session.scheduler.on_location_sample(LocationSample(0.0, 0.0))
            rows = session.describe_groups()
        finally:
            session.close()

        self.assertEqual(rows, ["Daly City (Red): Now, 12 mins", "Richmond (PURPLE): 4 mins"])
        client.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
