"""Configuration management with Pydantic validation.

Provides type-safe configuration with:
- Pydantic models for validation
- YAML file persistence
- Interactive first-run setup
"""

import getpass
import logging
import re
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/netkeeper/config.yaml")


# =============================================================================
# Configuration Models
# =============================================================================


def _http_url(value: str) -> str:
    """Strip and check an absolute http(s) URL with a host."""
    value = value.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError("URL must start with http:// or https://")
    # urlsplit raises on malformed IPv6 hosts, .port on bad port numbers
    parts = urlsplit(value)
    if not parts.hostname or parts.port == 0:
        raise ValueError("URL needs a host and a valid port")
    return value


class WifiConfig(BaseModel):
    """Target wireless network."""

    ssid: str = Field(..., min_length=1, max_length=32, description="Network SSID")
    password: SecretStr | None = Field(None, description="Network password (None=open)")
    interface: str = Field("wlan0", description="Wireless interface name")
    reset_link_on_start: bool = Field(
        False, description="Disconnect once before the first connectivity check"
    )


class IdentityConfig(BaseModel):
    """Values typed into the captive portal login form."""

    id_number: str = Field(..., min_length=1, description="National identity number")
    first_name: str = Field(..., min_length=1, description="First name")
    last_name: str = Field(..., min_length=1, description="Last name")
    birth_year: str = Field(..., description="Birth year (YYYY)")

    @field_validator("id_number")
    @classmethod
    def validate_id_number(cls, v: str) -> str:
        """Identity numbers are digits only."""
        v = v.strip()
        if not v.isdigit():
            raise ValueError("identity number must contain digits only")
        return v

    @field_validator("birth_year", mode="before")
    @classmethod
    def validate_birth_year(cls, v: Any) -> str:
        """Accept 1990 or "1990", store as a four digit string."""
        v = str(v).strip()
        if not re.fullmatch(r"\d{4}", v):
            raise ValueError("birth year must be four digits (YYYY)")
        return v


class PortalConfig(BaseModel):
    """Captive portal authentication settings."""

    auth_url: str = Field(..., description="Portal login URL, tried first")
    identity: IdentityConfig
    headless: bool = Field(True, description="Run Chromium without a window")
    navigation_timeout_ms: int = Field(15000, ge=1000, description="Per-URL navigation timeout")
    settle_seconds: float = Field(10.0, ge=0, description="Pause after submitting the form")
    keystroke_delay_ms: int = Field(50, ge=0, le=1000, description="Delay between typed keys")
    snapshot_dir: str = Field(
        "~/.local/state/netkeeper/snapshots", description="Diagnostic snapshot directory"
    )
    max_html_bytes: int = Field(65536, ge=0, description="HTML snapshot size cap")

    @field_validator("auth_url")
    @classmethod
    def validate_auth_url(cls, v: str) -> str:
        """Auth URL must be an http(s) URL."""
        return _http_url(v)


class ConnectivityConfig(BaseModel):
    """Connectivity check endpoints."""

    primary_url: str = Field(
        "http://connectivitycheck.gstatic.com/generate_204",
        description="No-content check, expects HTTP 204",
    )
    fallback_url: str = Field(
        "http://www.msftconnecttest.com/connecttest.txt",
        description="Marker check used when the primary check is inconclusive",
    )
    fallback_marker: str = Field("Microsoft Connect Test", min_length=1)
    timeout_seconds: float = Field(5.0, gt=0, le=60)

    @field_validator("primary_url", "fallback_url")
    @classmethod
    def validate_check_url(cls, v: str) -> str:
        return _http_url(v)


class MonitorConfig(BaseModel):
    """Monitoring loop pacing and backoff."""

    interval_ms: int = Field(5000, gt=0, description="Target period between checks")
    quiet_threshold: int = Field(5, ge=1, description="Online checks before quiet mode")
    failure_ceiling: int = Field(3, ge=1, description="Failures before a cooldown pause")
    offline_cooldown_seconds: float = Field(30.0, ge=0)
    portal_cooldown_seconds: float = Field(60.0, ge=0)
    offline_settle_seconds: float = Field(5.0, ge=0, description="Pause after joining")
    portal_settle_seconds: float = Field(2.0, ge=0, description="Pause after authenticating")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Log level")
    format: str = Field("simple", description="Format: simple, structured")
    file: str | None = Field(None, description="Log file path")
    max_size_mb: int = Field(10, ge=1, description="Max log file size")
    backup_count: int = Field(3, ge=0, description="Number of backup files")


class Config(BaseModel):
    """Root configuration model."""

    wifi: WifiConfig
    portal: PortalConfig
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Manager
# =============================================================================


class ConfigManager:
    """Configuration loading and persistence.

    Usage:
        manager = ConfigManager("~/.config/netkeeper/config.yaml")
        config = manager.load()
    """

    def __init__(self, config_path: str | Path = DEFAULT_CONFIG_PATH) -> None:
        self._config_path = Path(config_path).expanduser()

    @property
    def path(self) -> Path:
        return self._config_path

    def exists(self) -> bool:
        return self._config_path.exists()

    def load(self) -> Config:
        """Load and validate configuration from file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        if not self._config_path.exists():
            raise ConfigurationError(
                "Config file not found", details={"path": str(self._config_path)}
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                "Failed to read config file",
                details={"path": str(self._config_path)},
                cause=e,
            ) from e

        try:
            config = Config.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details={"path": str(self._config_path)},
                cause=e,
            ) from e

        logger.info("Loaded config from %s", self._config_path)
        return config

    def save(self, config: Config) -> None:
        """Persist configuration to file."""
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)

            data = config.model_dump(mode="json")
            # model_dump masks secrets, write the real password
            if config.wifi.password is not None:
                data["wifi"]["password"] = config.wifi.password.get_secret_value()

            # Write atomically via temp file
            temp_path = self._config_path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            temp_path.chmod(0o600)
            temp_path.replace(self._config_path)

            logger.info("Saved config to %s", self._config_path)
        except OSError as e:
            logger.error("Failed to save config: %s", e)
            raise ConfigurationError(
                "Failed to save config file",
                details={"path": str(self._config_path)},
                cause=e,
            ) from e


# =============================================================================
# First-run setup
# =============================================================================


def _ask(
    prompt: str,
    read: Callable[[str], str],
    check: Callable[[str], bool] = bool,
    error: str = "Value cannot be empty.",
    default: str | None = None,
) -> str:
    """Ask until ``check`` accepts the answer."""
    suffix = f" [{default}]" if default is not None else ""
    while True:
        answer = read(f"{prompt}{suffix}: ").strip()
        if not answer and default is not None:
            answer = default
        if check(answer):
            return answer
        print(error)


def prompt_for_config(
    read: Callable[[str], str] = input,
    read_secret: Callable[[str], str] = getpass.getpass,
) -> Config:
    """Interactively build a configuration.

    Args:
        read: Line reader (``input`` by default)
        read_secret: Reader for the Wi-Fi password (``getpass`` by default)

    Returns:
        Validated configuration
    """
    ssid = _ask("Wi-Fi SSID (network name)", read)
    password = read_secret("Wi-Fi password (leave blank if none): ").strip()
    auth_url = _ask(
        "Captive portal URL (e.g. http://192.168.1.1/login)",
        read,
        check=lambda v: v.startswith(("http://", "https://")),
        error="Please enter a valid http(s) URL.",
    )
    id_number = _ask(
        "Identity number",
        read,
        check=lambda v: re.fullmatch(r"\d{11}", v) is not None,
        error="Please enter a valid 11-digit identity number.",
    )
    first_name = _ask("First name", read)
    last_name = _ask("Last name", read)
    birth_year = _ask(
        "Birth year (YYYY)",
        read,
        check=lambda v: re.fullmatch(r"\d{4}", v) is not None,
        error="Please enter a valid 4-digit year.",
    )
    interval_ms = _ask(
        "Check interval in milliseconds",
        read,
        check=lambda v: v.isdigit() and int(v) > 0,
        error="Interval must be a positive number.",
        default="5000",
    )

    try:
        return Config.model_validate(
            {
                "wifi": {"ssid": ssid, "password": password or None},
                "portal": {
                    "auth_url": auth_url,
                    "identity": {
                        "id_number": id_number,
                        "first_name": first_name,
                        "last_name": last_name,
                        "birth_year": birth_year,
                    },
                },
                "monitor": {"interval_ms": int(interval_ms)},
            }
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e
