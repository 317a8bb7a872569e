"""Connectivity monitoring loop.

Each cycle classifies connectivity, acts on the result (join the network,
authenticate against the portal, or nothing) and then sleeps so that cycles
start at a roughly constant period. Counters live in an immutable
``MonitorState``; every cycle produces a new value through the pure
``record_*`` functions below.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Protocol

from .core.clock import Clock, SYSTEM_CLOCK
from .core.config import MonitorConfig, WifiConfig
from .core.logging import format_duration
from .network.link import NetworkLink
from .network.connectivity import ConnectivityStatus

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    async def classify(self) -> ConnectivityStatus: ...


class Authenticator(Protocol):
    async def authenticate(self) -> bool: ...


@dataclass(frozen=True)
class MonitorState:
    """Counters carried from one cycle to the next.

    ``consecutive_failures`` and ``consecutive_online_checks`` are never both
    nonzero.
    """

    consecutive_failures: int = 0
    consecutive_online_checks: int = 0
    total_successes: int = 0
    last_success_at: float | None = None
    quiet_mode: bool = False
    quiet_since: float | None = None


def record_online(state: MonitorState, now: float) -> MonitorState:
    """Account for an ONLINE classification.

    ``total_successes`` counts recoveries, not checks: it only moves on the
    first ONLINE after anything else.
    """
    regained = state.consecutive_online_checks == 0
    return replace(
        state,
        consecutive_failures=0,
        consecutive_online_checks=state.consecutive_online_checks + 1,
        total_successes=state.total_successes + 1 if regained else state.total_successes,
        last_success_at=now if regained else state.last_success_at,
    )


def record_failure(state: MonitorState) -> MonitorState:
    """Account for an OFFLINE or CAPTIVE_PORTAL classification."""
    return replace(
        state,
        consecutive_failures=state.consecutive_failures + 1,
        consecutive_online_checks=0,
    )


def record_error(state: MonitorState) -> MonitorState:
    """Account for a cycle that raised instead of completing.

    Failures restart from zero so an error does not push the next failure
    straight into a cooldown.
    """
    return replace(state, consecutive_failures=0)


def enter_quiet(state: MonitorState, now: float) -> MonitorState:
    return replace(state, quiet_mode=True, quiet_since=now)


def exit_quiet(state: MonitorState) -> MonitorState:
    return replace(state, quiet_mode=False, quiet_since=None)


class MonitorStateMachine:
    """The indefinite keep-online loop.

    Usage:
        monitor = MonitorStateMachine(classifier, navigator, link, config.wifi, config.monitor)
        await monitor.run()
    """

    def __init__(
        self,
        classifier: Classifier,
        authenticator: Authenticator,
        link: NetworkLink,
        wifi: WifiConfig,
        config: MonitorConfig | None = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> None:
        self._classifier = classifier
        self._authenticator = authenticator
        self._link = link
        self._wifi = wifi
        self._config = config or MonitorConfig()
        self._clock = clock

        self._state = MonitorState()
        self._running = False

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask the loop to finish after the current step."""
        self._running = False

    async def run(self, max_cycles: int | None = None) -> None:
        """Run the loop until ``stop()`` is called.

        Args:
            max_cycles: Stop after this many cycles (None = forever)
        """
        self._running = True
        interval = self._config.interval_ms / 1000
        logger.info("Starting monitoring loop (interval %dms)", self._config.interval_ms)

        await self._start_of_day()

        cycles = 0
        while self._running and (max_cycles is None or cycles < max_cycles):
            started = self._clock.monotonic()
            await self.run_cycle()
            cycles += 1

            if not self._running:
                break

            elapsed = self._clock.monotonic() - started
            sleep_for = max(0.0, interval - elapsed)
            self._report("Sleeping %.1fs (check took %dms)", sleep_for, int(elapsed * 1000))
            await self._clock.sleep(sleep_for)

        self._running = False
        logger.info("Monitoring loop stopped")

    async def run_cycle(self) -> ConnectivityStatus | None:
        """Classify once and act on the result.

        Errors are logged and end quiet mode; they never escape the cycle.

        Returns:
            The status handled, or None if the cycle failed
        """
        try:
            status = await self._classifier.classify()

            if status is ConnectivityStatus.ONLINE:
                await self._handle_online()
            elif status is ConnectivityStatus.CAPTIVE_PORTAL:
                await self._handle_captive_portal()
            else:
                await self._handle_offline()

            return status

        except Exception as e:
            logger.exception("Unhandled error in monitoring loop: %s", e)
            self._state = record_error(self._state)
            self._exit_quiet("error in monitoring loop")
            return None

    async def _start_of_day(self) -> None:
        mac = await self._link.local_mac_address()
        logger.debug("Local interface MAC address: %s", mac or "unknown")

        if self._wifi.reset_link_on_start:
            logger.info("Resetting wireless link before the first check")
            await self._link.leave()
            await self._clock.sleep(3)

    # -------------------------------------------------------------------------
    # Status handlers
    # -------------------------------------------------------------------------

    async def _handle_online(self) -> None:
        previous = self._state
        self._state = record_online(previous, self._clock.now())

        if previous.consecutive_online_checks == 0:
            if previous.consecutive_failures:
                logger.info(
                    "Connection restored after %d attempt(s)", previous.consecutive_failures
                )
            logger.info(
                "Connection status: ONLINE (total successes: %d)", self._state.total_successes
            )
        else:
            self._report(
                "Connection status: ONLINE (%d consecutive)",
                self._state.consecutive_online_checks,
            )

        if (
            not self._state.quiet_mode
            and self._state.consecutive_online_checks >= self._config.quiet_threshold
        ):
            self._state = enter_quiet(self._state, self._clock.now())
            logger.info(
                "Entering quiet mode after %d consecutive online checks",
                self._state.consecutive_online_checks,
            )

    async def _handle_captive_portal(self) -> None:
        await self._record_failure(
            ConnectivityStatus.CAPTIVE_PORTAL, self._config.portal_cooldown_seconds
        )

        if await self._authenticator.authenticate():
            logger.info("Portal authentication attempt finished, re-checking status")
        else:
            logger.warning("Portal authentication attempt failed")

        await self._clock.sleep(self._config.portal_settle_seconds)

    async def _handle_offline(self) -> None:
        await self._record_failure(
            ConnectivityStatus.OFFLINE, self._config.offline_cooldown_seconds
        )

        password = self._wifi.password.get_secret_value() if self._wifi.password else None
        await self._link.join(self._wifi.ssid, password)

        await self._clock.sleep(self._config.offline_settle_seconds)

    async def _record_failure(self, status: ConnectivityStatus, cooldown: float) -> None:
        """Count a failed check and back off when failures pile up."""
        label = status.name
        self._exit_quiet(f"status {label}")
        self._state = record_failure(self._state)

        logger.warning(
            "Connection status: %s (attempt %d/%d)",
            label,
            self._state.consecutive_failures,
            self._config.failure_ceiling,
        )

        if self._state.consecutive_failures > self._config.failure_ceiling:
            logger.warning(
                "Too many consecutive %s attempts, pausing for %.0fs", label, cooldown
            )
            await self._clock.sleep(cooldown)
            self._state = replace(self._state, consecutive_failures=1)

    # -------------------------------------------------------------------------
    # Quiet mode
    # -------------------------------------------------------------------------

    def _report(self, msg: str, *args: Any) -> None:
        """Routine status output, suppressed in quiet mode."""
        if not self._state.quiet_mode:
            logger.info(msg, *args)

    def _exit_quiet(self, reason: str) -> None:
        if not self._state.quiet_mode:
            return
        since = self._state.quiet_since
        self._state = exit_quiet(self._state)
        duration = f" after {format_duration(self._clock.now() - since)}" if since else ""
        logger.info("Exiting quiet mode: %s%s", reason, duration)
