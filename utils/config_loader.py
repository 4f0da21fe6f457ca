"""
Configuration Loader
=====================

YAML configuration for the market desk: one dataclass per section,
environment overrides for credentials, and validation that reports every
problem at once.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass
class ApiConfig:
    """Provider endpoints and credentials."""
    yahoo_url: str = "https://query1.finance.yahoo.com"
    finnhub_url: str = "https://finnhub.io/api/v1"
    alphavantage_url: str = "https://www.alphavantage.co"
    # A missing key disables that news provider
    finnhub_api_key: str = ""
    alphavantage_api_key: str = ""
    timeout_seconds: float = 10.0


@dataclass
class MarketConfig:
    """Quote refresh configuration."""
    refresh_interval_seconds: float = 15.0
    snapshot_interval_seconds: float = 60.0
    default_watchlist: list[str] = field(
        default_factory=lambda: ["AAPL", "TSLA", "NVDA", "BTC-USD"]
    )


@dataclass
class LedgerConfig:
    """Paper trading configuration."""
    seed_cash: float = 10000.0


@dataclass
class NewsConfig:
    """News aggregation configuration."""
    cache_ttl_minutes: float = 3.0
    default_limit: int = 20
    alphavantage_limit: int = 5


@dataclass
class StorageConfig:
    """Durable storage configuration."""
    db_path: str = "data/market_desk.db"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    log_dir: str = "logs"
    main_log_file: str = "market_desk.log"
    trades_log_file: str = "trades.log"
    max_log_size_mb: int = 50
    backup_count: int = 5


@dataclass
class ServerConfig:
    """HTTP API configuration."""
    host: str = "127.0.0.1"
    port: int = 8888


@dataclass
class AppConfig:
    """Complete application configuration."""
    api: ApiConfig = field(default_factory=ApiConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    news: NewsConfig = field(default_factory=NewsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def finnhub_enabled(self) -> bool:
        return bool(self.api.finnhub_api_key)

    @property
    def alphavantage_enabled(self) -> bool:
        return bool(self.api.alphavantage_api_key)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# Section name -> dataclass, in AppConfig field order
SECTIONS = {
    "api": ApiConfig,
    "market": MarketConfig,
    "ledger": LedgerConfig,
    "news": NewsConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
    "server": ServerConfig,
}

# (section, key) -> environment variable that wins over the file
ENV_OVERRIDES = {
    ("api", "finnhub_api_key"): "FINNHUB_API_KEY",
    ("api", "alphavantage_api_key"): "ALPHAVANTAGE_API_KEY",
    ("storage", "db_path"): "MARKET_DESK_DB",
}


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """
    Load the desk configuration from a YAML file.

    Every section and key is optional; missing values keep their
    defaults. Credentials and the database path may also come from the
    environment (see ENV_OVERRIDES).

    Raises:
        ConfigError: Missing file, unparseable YAML or invalid values
    """
    path = Path(config_path)

    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping of sections")

    return build_config(raw_config)


def build_config(raw_config: dict) -> AppConfig:
    """Build and validate an AppConfig from parsed YAML data."""
    sections = {}
    for name, cls in SECTIONS.items():
        data = raw_config.get(name) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        sections[name] = _build_dataclass(name, cls, _apply_env_overrides(name, data))

    for name in raw_config.keys() - SECTIONS.keys():
        logger.warning(f"Ignoring unknown config section '{name}'")

    config = AppConfig(**sections)
    _validate_config(config)
    return config


def _apply_env_overrides(section: str, data: dict) -> dict:
    """Overlay non-empty environment variables onto one section."""
    result = dict(data)
    for (env_section, key), env_var in ENV_OVERRIDES.items():
        if env_section == section and os.environ.get(env_var):
            result[key] = os.environ[env_var]
    return result


def _build_dataclass(section: str, cls, data: dict):
    known = {f.name for f in dataclasses.fields(cls)}
    for key in data.keys() - known:
        logger.warning(f"Ignoring unknown config key '{section}.{key}'")
    return cls(**{k: v for k, v in data.items() if k in known})


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values."""
    errors = []

    if config.api.timeout_seconds <= 0:
        errors.append("api.timeout_seconds must be positive")

    if config.market.refresh_interval_seconds <= 0:
        errors.append("market.refresh_interval_seconds must be positive")

    if config.market.snapshot_interval_seconds <= 0:
        errors.append("market.snapshot_interval_seconds must be positive")

    if not isinstance(config.market.default_watchlist, list):
        errors.append("market.default_watchlist must be a list of symbols")

    if config.ledger.seed_cash <= 0:
        errors.append("ledger.seed_cash must be positive")

    if config.news.cache_ttl_minutes <= 0:
        errors.append("news.cache_ttl_minutes must be positive")

    if config.news.default_limit <= 0:
        errors.append("news.default_limit must be positive")

    if config.news.alphavantage_limit <= 0:
        errors.append("news.alphavantage_limit must be positive")

    if not 1 <= config.server.port <= 65535:
        errors.append("server.port must be between 1 and 65535")

    for name in ("console_level", "file_level"):
        level = getattr(config.logging, name)
        if str(level).upper() not in LOG_LEVELS:
            errors.append(f"logging.{name} must be one of {', '.join(LOG_LEVELS)}")

    if errors:
        raise ConfigError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


def save_config(config: AppConfig, config_path: str = "config.yaml") -> None:
    """Save configuration to a YAML file."""
    data = dataclasses.asdict(config)

    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def get_default_config() -> AppConfig:
    """Get a default configuration."""
    return AppConfig()
