"""Core infrastructure module.

Provides foundational components:
- Configuration management with validation
- Custom exception hierarchy
- Structured logging
- Retry logic with exponential backoff
- Injectable clock
"""

from .clock import Clock, SYSTEM_CLOCK
from .config import Config, ConfigManager, prompt_for_config
from .errors import (
    NetkeeperError,
    ConfigurationError,
    NetworkError,
    BrowserError,
)
from .logging import setup_logging, get_logger
from .retry import async_retry, RetryConfig

__all__ = [
    # Clock
    "Clock",
    "SYSTEM_CLOCK",
    # Config
    "Config",
    "ConfigManager",
    "prompt_for_config",
    # Errors
    "NetkeeperError",
    "ConfigurationError",
    "NetworkError",
    "BrowserError",
    # Logging
    "setup_logging",
    "get_logger",
    # Retry
    "async_retry",
    "RetryConfig",
]
