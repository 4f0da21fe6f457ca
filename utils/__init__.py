"""
Utilities Module
=================

Configuration loading and the desk's logging setup (console, rotating
files and the dedicated trade log).
"""

from utils.config_loader import AppConfig, ConfigError, get_default_config, load_config
from utils.logging_utils import market_logger, setup_logging, trade_logger

__all__ = [
    "AppConfig",
    "ConfigError",
    "get_default_config",
    "load_config",
    "setup_logging",
    "trade_logger",
    "market_logger",
]
