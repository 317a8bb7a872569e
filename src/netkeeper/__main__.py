"""netkeeper entry point.

Usage:
    python -m netkeeper [options]

Options:
    --config PATH     Path to config file (default: ~/.config/netkeeper/config.yaml)
    --setup           Prompt for settings and write the config file
    --debug           Enable debug logging
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from . import __version__
from .core.clock import SYSTEM_CLOCK
from .core.config import DEFAULT_CONFIG_PATH, Config, ConfigManager, prompt_for_config
from .core.errors import ConfigurationError
from .core.logging import get_logger, mask_value, setup_logging
from .monitor import MonitorStateMachine
from .network.link import NmcliLink
from .network.connectivity import ConnectivityClassifier
from .portal.navigator import PortalNavigator

logger = get_logger(__name__)

# Upper bound for releasing the browser on shutdown
SHUTDOWN_TIMEOUT = 10.0


class NetkeeperService:
    """Wires the components together and owns their lifecycle."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._link = NmcliLink(config.wifi.interface)
        self._classifier = ConnectivityClassifier(config.connectivity)
        self._navigator = PortalNavigator.from_config(config.portal, clock=SYSTEM_CLOCK)
        self._monitor = MonitorStateMachine(
            self._classifier,
            self._navigator,
            self._link,
            config.wifi,
            config.monitor,
            clock=SYSTEM_CLOCK,
        )

    async def run(self) -> None:
        """Run the monitor until a termination signal arrives."""
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._on_signal, sig, task)

        try:
            await self._monitor.run()
        except asyncio.CancelledError:
            logger.info("Monitoring cancelled")
        finally:
            await self.shutdown()

    def _on_signal(self, sig: signal.Signals, task: asyncio.Task | None) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._monitor.stop()
        if task is not None:
            task.cancel()

    async def shutdown(self) -> None:
        """Release the browser session within a bounded time."""
        try:
            await asyncio.wait_for(self._navigator.close(), timeout=SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("Browser did not close within %.0fs", SHUTDOWN_TIMEOUT)
        logger.info("netkeeper stopped")


def load_or_prompt_config(config_path: Path, force_setup: bool = False) -> Config:
    """Load the config file, running interactive setup on first start.

    Raises:
        ConfigurationError: If the file is invalid, or missing without a TTY
    """
    manager = ConfigManager(config_path)

    if force_setup or (not manager.exists() and sys.stdin.isatty()):
        if not force_setup:
            logger.warning("Config file not found at %s, starting setup", manager.path)
        config = prompt_for_config()
        manager.save(config)
        return config

    return manager.load()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Keep a host online behind a captive portal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config file",
    )
    parser.add_argument(
        "--setup",
        action="store_true",
        help="Prompt for settings and write the config file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.debug else "INFO")
    logger.info("netkeeper v%s", __version__)

    try:
        config = load_or_prompt_config(args.config, force_setup=args.setup)
    except ConfigurationError as e:
        logger.log(e.severity.log_level, "Configuration error: %s", e, extra={"error": e.to_dict()})
        return 1

    setup_logging(
        level="DEBUG" if args.debug else config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )
    logger.debug(
        "Config: ssid=%s auth_url=%s interval=%dms",
        config.wifi.ssid,
        config.portal.auth_url,
        config.monitor.interval_ms,
    )
    logger.debug(
        "Identity: id=%s birth_year=%s",
        mask_value(config.portal.identity.id_number),
        config.portal.identity.birth_year,
    )

    try:
        service = NetkeeperService(config)
    except Exception as e:
        logger.exception("Failed to initialize: %s", e)
        return 1

    asyncio.run(service.run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
