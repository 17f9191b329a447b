"""
Configuration management for PatternSense.
"""

import os
import copy
import json
import yaml
import toml
from pathlib import Path
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import CONFIG_FILES, DEFAULT_CONFIG, DEFAULT_DATA_DIR
from .utils import logger, merge_dicts


class StrategyConfig(BaseModel):
    """A named, weighted contribution to adjusted confidence."""
    name: str
    description: str = Field(default="")
    weight: float = Field(default=0.0, ge=0.0)
    enabled: bool = Field(default=True)


class ConfidenceConfig(BaseModel):
    """Tunables of the confidence model and feedback processor."""
    min_confidence: float = Field(default=0.1, ge=0.0, le=1.0)
    max_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    initial_confidence: float = Field(default=0.5)
    decay_rate_per_day: float = Field(default=0.02, ge=0.0)
    max_decay_penalty: float = Field(default=0.5, ge=0.0)
    recency_window_days: float = Field(default=30.0, gt=0.0)
    cleanup_threshold: int = Field(default=10, ge=0)
    materiality_threshold: float = Field(default=0.05, ge=0.0)
    accept_delta: float = Field(default=0.1, ge=0.0)
    reject_delta: float = Field(default=0.15, ge=0.0)
    preference_step: float = Field(default=0.1, ge=0.0)
    count_observations_as_suggested: bool = Field(default=True)
    strategies: List[StrategyConfig] = Field(
        default_factory=lambda: [StrategyConfig(**s) for s in DEFAULT_CONFIG['confidence']['strategies']]
    )

    @model_validator(mode='after')
    def check_bounds(self) -> 'ConfidenceConfig':
        if self.min_confidence >= self.max_confidence:
            raise ValueError("min_confidence must be lower than max_confidence")
        if not self.min_confidence <= self.initial_confidence <= self.max_confidence:
            raise ValueError("initial_confidence must lie between min_confidence and max_confidence")
        return self

    def strategy_weights(self) -> Dict[str, float]:
        """Weights of the enabled strategies by name."""
        return {s.name: s.weight for s in self.strategies if s.enabled}


class SchedulerConfig(BaseModel):
    """Maintenance scheduler configuration."""
    enabled: bool = Field(default=True)
    initial_delay: float = Field(default=5.0, ge=0.0)
    interval: float = Field(default=3600.0, gt=0.0)
    top_n: int = Field(default=5, ge=0)


class StorageConfig(BaseModel):
    """Durable storage configuration."""
    backend: str = Field(default="sqlite")
    data_dir: str = Field(default=DEFAULT_DATA_DIR)
    db_name: str = Field(default="patterns.db")
    flush_interval: float = Field(default=30.0, gt=0.0)
    flush_batch_size: int = Field(default=20, ge=1)

    @field_validator('backend')
    @classmethod
    def check_backend(cls, value: str) -> str:
        if value not in ('sqlite', 'memory'):
            raise ValueError(f"Unknown storage backend: {value}")
        return value

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.db_name


class DomainConfig(BaseModel):
    """Extension point of one analysis domain (testing, documentation...)."""
    kinds: List[str] = Field(default_factory=list)
    accept_delta: Optional[float] = Field(default=None, ge=0.0)
    reject_delta: Optional[float] = Field(default=None, ge=0.0)
    strategy_weights: Dict[str, float] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")


class PatternSenseConfig(BaseModel):
    """Main configuration model."""
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    domains: Dict[str, DomainConfig] = Field(default_factory=dict)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """Configuration manager for PatternSense."""

    def __init__(self, config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        self.config_file = config_file
        self.config_data = self._load_config()
        if overrides:
            self.config_data = merge_dicts(self.config_data, overrides)
        self.config = PatternSenseConfig(**self.config_data)
        self._apply_environment_overrides()

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in current directory or parent directories."""
        current_dir = Path.cwd()

        for parent in [current_dir] + list(current_dir.parents):
            for config_name in CONFIG_FILES:
                config_path = parent / config_name
                if config_path.exists():
                    logger.debug(f"Found config file: {config_path}")
                    return config_path

        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            config_path = Path(self.config_file)
        else:
            config_path = self._find_config_file()

        if not config_path or not config_path.exists():
            logger.debug("No config file found, using defaults")
            return config

        try:
            if config_path.suffix in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            elif config_path.suffix == '.toml':
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            elif config_path.suffix == '.json':
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            else:
                logger.warning(f"Unknown config file format: {config_path}")
                return config

            config = merge_dicts(config, file_config)
            logger.info(f"Loaded config from: {config_path}")

        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading config file: {e}")

        return config

    def _apply_environment_overrides(self):
        """Apply environment variable overrides to configuration."""
        log_level = os.getenv('PATTERNSENSE_LOG_LEVEL')
        if log_level:
            self.config.logging.level = log_level

        data_dir = os.getenv('PATTERNSENSE_DATA_DIR')
        if data_dir:
            self.config.storage.data_dir = data_dir

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = self.config_data

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        config_dict = self.config_data

        for k in keys[:-1]:
            if k not in config_dict:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

        # Recreate config object
        self.config = PatternSenseConfig(**self.config_data)
        self._apply_environment_overrides()

    def save(self, path: Optional[str] = None) -> Path:
        """Save configuration to file."""
        if path:
            save_path = Path(path)
        else:
            save_path = Path(self.config_file or '.patternsense.yaml')

        if save_path.suffix in ['.yaml', '.yml']:
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)
        elif save_path.suffix == '.toml':
            with open(save_path, 'w') as f:
                toml.dump(self.config_data, f)
        elif save_path.suffix == '.json':
            with open(save_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)
        else:
            # Default to YAML
            save_path = save_path.with_suffix('.yaml')
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)

        logger.info(f"Configuration saved to: {save_path}")
        return save_path

    def validate(self) -> bool:
        """Validate configuration."""
        try:
            PatternSenseConfig(**self.config_data)
            return True
        except ValueError as e:
            logger.error(f"Configuration validation failed: {e}")
            return False

    @classmethod
    def create_default(cls, path: str = '.patternsense.yaml') -> 'Config':
        """Create a default configuration file."""
        config = cls()
        config.save(path)
        return config
