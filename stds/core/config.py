"""
Configuration Management
========================
Centralized configuration with validation and defaults.
"""

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Dict, Any, Mapping, Union
import yaml

from .exceptions import InvalidConfigError


# camelCase keys sent by the browser client -> dataclass fields
_ENGINE_KEY_ALIASES = {
    'numBins': 'num_bins',
    'sequenceLength': 'sequence_length',
    'confidenceThreshold': 'confidence_threshold',
    'lookaheadDays': 'lookahead_days',
    'takeProfitThreshold': 'take_profit_threshold',
}


@dataclass(frozen=True)
class EngineConfig:
    """
    Sequence-tree engine parameters.

    Frozen: an engine keeps the config it was initialized with for its
    whole life. Reinitialize to change it.
    """
    num_bins: int = 10
    sequence_length: int = 5
    confidence_threshold: float = 0.70
    lookahead_days: int = 5
    take_profit_threshold: float = 0.02  # 2% profit target

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EngineConfig":
        """
        Build config from a dict with camelCase or snake_case keys.

        Missing keys take defaults. Unknown keys are rejected.

        Raises:
            InvalidConfigError: on unknown keys or invalid values
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidConfigError(f"Config must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _ENGINE_KEY_ALIASES.get(key, key)
            if name not in known:
                raise InvalidConfigError(f"Unknown config key: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def validate(self):
        """Validate configuration values."""
        for name in ('num_bins', 'sequence_length', 'lookahead_days'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigError(f"{name} must be an integer, got {value!r}")

        for name in ('confidence_threshold', 'take_profit_threshold'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidConfigError(f"{name} must be a finite number, got {value!r}")

        if self.num_bins <= 1:
            raise InvalidConfigError(f"num_bins must be > 1, got {self.num_bins}")

        if self.sequence_length < 1:
            raise InvalidConfigError(f"sequence_length must be >= 1, got {self.sequence_length}")

        if not 0 < self.confidence_threshold <= 1:
            raise InvalidConfigError(
                f"confidence_threshold must be in (0, 1], got {self.confidence_threshold}"
            )

        if self.lookahead_days < 1:
            raise InvalidConfigError(f"lookahead_days must be >= 1, got {self.lookahead_days}")

        if self.take_profit_threshold <= 0:
            raise InvalidConfigError(
                f"take_profit_threshold must be > 0, got {self.take_profit_threshold}"
            )

    @property
    def min_returns(self) -> int:
        """Smallest return series that yields one training sequence."""
        return self.sequence_length + self.lookahead_days

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase payload used by clients."""
        return {
            'numBins': self.num_bins,
            'sequenceLength': self.sequence_length,
            'confidenceThreshold': self.confidence_threshold,
            'lookaheadDays': self.lookahead_days,
            'takeProfitThreshold': self.take_profit_threshold,
        }


@dataclass
class DataConfig:
    """Historical data settings."""
    data_dir: str = "data"
    date_column: str = "Date"


@dataclass
class ServerConfig:
    """HTTP API settings."""
    host: str = "0.0.0.0"
    port: int = 3001
    event_buffer: int = 1000  # recent events kept for polling


@dataclass
class EventsConfig:
    """Notification channel settings."""
    channel_size: int = 10000


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: str = "logs/stds.log"
    max_size_mb: int = 10
    backup_count: int = 3


@dataclass
class MetricsConfig:
    """Prometheus exporter settings."""
    enabled: bool = False
    port: int = 9090


@dataclass
class Config:
    """
    Main configuration class.

    Loads from YAML file with sensible defaults.
    All settings are validated on load.
    """
    engine: EngineConfig = field(default_factory=EngineConfig)
    data: DataConfig = field(default_factory=DataConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    events: EventsConfig = field(default_factory=EventsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    _config_path: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def load(cls, config_path: Union[str, Path] = "config.yaml") -> "Config":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file

        Returns:
            Config instance with loaded values
        """
        path = Path(config_path)

        if not path.exists():
            # Return defaults if no config file
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = cls()
        config._config_path = path

        # Load each section
        if 'engine' in data:
            config.engine = EngineConfig.from_mapping(data['engine'])

        if 'data' in data:
            config.data = DataConfig(**data['data'])

        if 'server' in data:
            config.server = ServerConfig(**data['server'])

        if 'events' in data:
            config.events = EventsConfig(**data['events'])

        if 'logging' in data:
            config.logging = LoggingConfig(**data['logging'])

        if 'metrics' in data:
            config.metrics = MetricsConfig(**data['metrics'])

        # Validate
        config.validate()

        return config

    def validate(self):
        """Validate configuration values."""
        self.engine.validate()

        if not 0 < self.server.port < 65536:
            raise InvalidConfigError(f"server.port must be 1-65535, got {self.server.port}")

        if self.server.event_buffer < 1:
            raise InvalidConfigError(f"server.event_buffer must be >= 1, got {self.server.event_buffer}")

        if self.events.channel_size < 1:
            raise InvalidConfigError(f"events.channel_size must be >= 1, got {self.events.channel_size}")

    def get_data_dir(self) -> Path:
        """Get path to the historical data directory."""
        return Path(self.data.data_dir)

    def get_log_path(self) -> Path:
        """Get absolute path to log file."""
        path = Path(self.logging.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            'engine': self.engine.to_dict(),
            'data': {
                'data_dir': self.data.data_dir,
                'date_column': self.data.date_column,
            },
            'server': {
                'host': self.server.host,
                'port': self.server.port,
                'event_buffer': self.server.event_buffer,
            },
            'events': {
                'channel_size': self.events.channel_size,
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'max_size_mb': self.logging.max_size_mb,
                'backup_count': self.logging.backup_count,
            },
            'metrics': {
                'enabled': self.metrics.enabled,
                'port': self.metrics.port,
            },
        }
