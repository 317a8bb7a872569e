"""Monitoring loop: counters, escalation, pacing and quiet mode."""

import itertools
import logging

import httpx
import pytest

from netkeeper.core.config import MonitorConfig, WifiConfig
from netkeeper.monitor import (
    MonitorState,
    MonitorStateMachine,
    record_error,
    record_failure,
    record_online,
)
from netkeeper.network.connectivity import ConnectivityClassifier

from conftest import (
    OFFLINE,
    ONLINE,
    PORTAL,
    FakeAuthenticator,
    FakeClock,
    FakeLink,
    ScriptedClassifier,
)

pytestmark = pytest.mark.monitor

WIFI = WifiConfig(ssid="CampusWiFi", password="supersecret")


def make_monitor(script, clock=None, link=None, authenticator=None, **config):
    classifier = script if hasattr(script, "classify") else ScriptedClassifier(script)
    return MonitorStateMachine(
        classifier,
        authenticator or FakeAuthenticator(),
        link or FakeLink(),
        WIFI,
        MonitorConfig(**config),
        clock=clock or FakeClock(),
    )


class TestStateTransitions:
    """Pure state functions."""

    @pytest.mark.parametrize(
        "sequence", list(itertools.product([ONLINE, OFFLINE, PORTAL], repeat=4))
    )
    def test_failures_and_online_checks_are_mutually_exclusive(self, sequence):
        state = MonitorState()
        for status in sequence:
            if status is ONLINE:
                state = record_online(state, now=0.0)
            else:
                state = record_failure(state)
            assert (state.consecutive_failures > 0) == (state.consecutive_online_checks == 0)

    def test_successes_count_recoveries_not_checks(self):
        state = MonitorState()
        for status, now in [(ONLINE, 1), (ONLINE, 2), (OFFLINE, 3), (ONLINE, 4), (ONLINE, 5)]:
            state = record_online(state, now) if status is ONLINE else record_failure(state)
        assert state.total_successes == 2
        assert state.last_success_at == 4
        assert state.consecutive_online_checks == 2

    def test_error_clears_failures_only(self):
        state = MonitorState(consecutive_failures=3, total_successes=2, last_success_at=5.0)
        new = record_error(state)
        assert new.consecutive_failures == 0
        assert new.total_successes == 2
        assert new.last_success_at == 5.0

    def test_state_is_immutable(self):
        state = MonitorState()
        new = record_failure(state)
        assert state.consecutive_failures == 0
        assert new.consecutive_failures == 1


class TestScenarios:
    async def test_two_online_checks(self):
        """Two 204 responses: two online checks, one success, no portal login."""
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        authenticator = FakeAuthenticator()
        link = FakeLink()
        monitor = make_monitor(
            ConnectivityClassifier(transport=transport),
            link=link,
            authenticator=authenticator,
        )

        await monitor.run(max_cycles=2)

        assert monitor.state.consecutive_online_checks == 2
        assert monitor.state.consecutive_failures == 0
        assert monitor.state.total_successes == 1
        assert authenticator.calls == 0
        assert link.joins == []

    async def test_offline_offline_portal(self):
        link = FakeLink()
        authenticator = FakeAuthenticator()
        monitor = make_monitor([OFFLINE, OFFLINE, PORTAL], link=link, authenticator=authenticator)

        await monitor.run(max_cycles=3)

        assert link.joins == [("CampusWiFi", "supersecret"), ("CampusWiFi", "supersecret")]
        assert authenticator.calls == 1
        assert monitor.state.consecutive_failures == 3
        assert monitor.state.consecutive_online_checks == 0

    async def test_recovery_after_failures(self, caplog):
        monitor = make_monitor([OFFLINE, PORTAL, ONLINE])
        with caplog.at_level(logging.INFO, logger="netkeeper.monitor"):
            await monitor.run(max_cycles=3)

        assert monitor.state.consecutive_failures == 0
        assert monitor.state.total_successes == 1
        assert "Connection restored after 2 attempt(s)" in caplog.text


class TestEscalation:
    async def test_cooldown_after_ceiling_and_counter_reset(self):
        clock = FakeClock()
        monitor = make_monitor([OFFLINE] * 4, clock=clock, interval_ms=5000)

        for _ in range(3):
            await monitor.run_cycle()
        assert 30.0 not in clock.sleeps

        await monitor.run_cycle()

        assert 30.0 in clock.sleeps
        assert monitor.state.consecutive_failures == 1

    async def test_portal_cooldown_is_longer(self):
        clock = FakeClock()
        monitor = make_monitor([PORTAL] * 4, clock=clock)

        for _ in range(4):
            await monitor.run_cycle()

        assert 60.0 in clock.sleeps
        assert monitor.state.consecutive_failures == 1

    async def test_offline_and_portal_share_the_counter(self):
        clock = FakeClock()
        monitor = make_monitor([OFFLINE, PORTAL, OFFLINE, PORTAL], clock=clock)

        for _ in range(4):
            await monitor.run_cycle()

        assert 60.0 in clock.sleeps
        assert monitor.state.consecutive_failures == 1

    async def test_settle_pauses(self):
        clock = FakeClock()
        monitor = make_monitor([OFFLINE, PORTAL], clock=clock)

        await monitor.run_cycle()
        assert clock.sleeps == [5.0]
        await monitor.run_cycle()
        assert clock.sleeps == [5.0, 2.0]


class SlowClassifier:
    """Takes ``duration`` seconds of fake time per classification."""

    def __init__(self, clock, duration):
        self._clock = clock
        self._duration = duration

    async def classify(self):
        self._clock.advance(self._duration)
        return ONLINE


class TestPacing:
    async def test_sleep_subtracts_elapsed_time(self):
        clock = FakeClock()
        monitor = make_monitor(SlowClassifier(clock, 1.5), clock=clock, interval_ms=5000)

        await monitor.run(max_cycles=2)

        assert clock.sleeps == [pytest.approx(3.5), pytest.approx(3.5)]

    async def test_overrunning_cycle_does_not_sleep(self):
        clock = FakeClock()
        monitor = make_monitor(SlowClassifier(clock, 7.0), clock=clock, interval_ms=5000)

        await monitor.run(max_cycles=1)

        assert clock.sleeps == [0.0]

    async def test_cycles_start_on_a_constant_period(self):
        clock = FakeClock()
        starts = []

        class Recording(SlowClassifier):
            async def classify(self):
                starts.append(clock.monotonic())
                return await super().classify()

        monitor = make_monitor(Recording(clock, 0.8), clock=clock, interval_ms=2000)
        await monitor.run(max_cycles=3)

        assert [b - a for a, b in zip(starts, starts[1:])] == [
            pytest.approx(2.0),
            pytest.approx(2.0),
        ]

    async def test_stop_ends_the_loop(self):
        monitor = None

        class Stopping:
            calls = 0

            async def classify(self):
                self.calls += 1
                monitor.stop()
                return ONLINE

        classifier = Stopping()
        monitor = make_monitor(classifier)
        await monitor.run()

        assert classifier.calls == 1
        assert not monitor.is_running


class TestQuietMode:
    async def test_entered_only_at_threshold(self):
        monitor = make_monitor([ONLINE] * 5, quiet_threshold=5)

        for _ in range(4):
            await monitor.run_cycle()
            assert not monitor.state.quiet_mode

        await monitor.run_cycle()
        assert monitor.state.quiet_mode
        assert monitor.state.quiet_since is not None

    async def test_routine_logs_suppressed_while_quiet(self, caplog):
        monitor = make_monitor([ONLINE] * 4, quiet_threshold=2)

        with caplog.at_level(logging.INFO, logger="netkeeper.monitor"):
            await monitor.run(max_cycles=4)

        consecutive = [r for r in caplog.records if "consecutive)" in r.getMessage()]
        assert [r.getMessage() for r in consecutive] == ["Connection status: ONLINE (2 consecutive)"]

    @pytest.mark.parametrize("status", [OFFLINE, PORTAL])
    async def test_exited_on_failure(self, status, caplog):
        clock = FakeClock()
        monitor = make_monitor([ONLINE, ONLINE, status], clock=clock, quiet_threshold=2)

        await monitor.run_cycle()
        await monitor.run_cycle()
        assert monitor.state.quiet_mode

        clock.advance(75)
        with caplog.at_level(logging.INFO, logger="netkeeper.monitor"):
            await monitor.run_cycle()

        assert not monitor.state.quiet_mode
        assert "Exiting quiet mode" in caplog.text
        assert "1 minute 15 seconds" in caplog.text

    async def test_exited_on_error(self, caplog):
        monitor = make_monitor([ONLINE, ONLINE, RuntimeError("classifier exploded")], quiet_threshold=2)

        await monitor.run_cycle()
        await monitor.run_cycle()
        assert monitor.state.quiet_mode

        with caplog.at_level(logging.INFO, logger="netkeeper.monitor"):
            assert await monitor.run_cycle() is None

        assert not monitor.state.quiet_mode
        assert "classifier exploded" in caplog.text


class TestLoopResilience:
    async def test_error_does_not_stop_the_loop(self):
        classifier = ScriptedClassifier([RuntimeError("boom"), ONLINE])
        monitor = make_monitor(classifier)

        await monitor.run(max_cycles=2)

        assert classifier.calls == 2
        assert monitor.state.total_successes == 1

    async def test_error_restarts_failure_count(self):
        monitor = make_monitor([OFFLINE, OFFLINE, RuntimeError("boom"), OFFLINE])

        await monitor.run_cycle()
        await monitor.run_cycle()
        assert monitor.state.consecutive_failures == 2

        assert await monitor.run_cycle() is None
        assert monitor.state.consecutive_failures == 0

        await monitor.run_cycle()
        assert monitor.state.consecutive_failures == 1

    async def test_reset_link_on_start(self):
        clock = FakeClock()
        link = FakeLink()
        monitor = MonitorStateMachine(
            ScriptedClassifier([ONLINE]),
            FakeAuthenticator(),
            link,
            WifiConfig(ssid="CampusWiFi", reset_link_on_start=True),
            MonitorConfig(),
            clock=clock,
        )

        await monitor.run(max_cycles=1)

        assert link.leaves == 1
        assert clock.sleeps[0] == 3

    async def test_open_network_joins_without_password(self):
        link = FakeLink()
        monitor = MonitorStateMachine(
            ScriptedClassifier([OFFLINE]),
            FakeAuthenticator(),
            link,
            WifiConfig(ssid="OpenNet"),
            clock=FakeClock(),
        )

        await monitor.run_cycle()

        assert link.joins == [("OpenNet", None)]
