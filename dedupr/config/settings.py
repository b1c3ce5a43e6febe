"""Configuration management for dedupr."""

import hashlib
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class HashingConfig(BaseModel):
    """Content fingerprint settings."""
    algorithm: str = "sha256"
    buffer_size: int = Field(default=64 * 1024, ge=512, le=64 * 1024 * 1024)

    @field_validator("algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        value = value.lower()
        if value not in hashlib.algorithms_available:
            raise ValueError(f"unknown hash algorithm: {value}")
        if hashlib.new(value).digest_size < 32:
            raise ValueError(f"hash algorithm {value} has a digest shorter than 256 bits")
        return value


class PipelineConfig(BaseModel):
    """Worker pool sizes and channel bounds."""
    traversal_workers: int = Field(default=4, ge=1, le=256)
    hash_workers: int = Field(default=5, ge=1, le=256)
    resolve_workers: int = Field(default=5, ge=1, le=256)
    queue_size: int = Field(default=1024, ge=0)
    lock_shards: int = Field(default=64, ge=1, le=65536)


class IndexConfig(BaseModel):
    """Fingerprint index storage."""
    path: str = "file_hashes.db"
    synchronous: str = Field(default="FULL", pattern="^(OFF|NORMAL|FULL|EXTRA)$")
    timeout: float = Field(default=30.0, gt=0.0)


class LinkingConfig(BaseModel):
    """How duplicates are replaced."""
    style: str = Field(default="absolute", pattern="^(absolute|relative)$")
    atomic_replace: bool = True


class DedupConfig(BaseModel):
    """Main dedupr configuration."""
    hashing: HashingConfig = Field(default_factory=HashingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    linking: LinkingConfig = Field(default_factory=LinkingConfig)

    dry_run: bool = False

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_file: str | None = None


class ConfigManager:
    """Manages configuration loading and saving."""

    DEFAULT_CONFIG_NAME = "dedupr.yaml"

    def __init__(self, config_path: Path | None = None):
        """Initialize config manager."""
        self.config_path = config_path or self._get_default_config_path()
        self._config: DedupConfig | None = None

    def load(self, create: bool = False) -> DedupConfig:
        """Load configuration from file, falling back to defaults.

        With ``create`` a missing file is written out with default values.
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}
                    self._config = DedupConfig(**data)
            except Exception as e:
                logger.warning(f"Error loading config from {self.config_path}: {e}")
                logger.warning("Using default configuration")
                self._config = DedupConfig()
        else:
            logger.debug(f"Config file not found at {self.config_path}, using defaults")
            self._config = DedupConfig()
            if create:
                self.save()

        return self._config

    def save(self, config: DedupConfig | None = None) -> None:
        """Save configuration to file."""
        config_to_save = config or self._config
        if config_to_save is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = config_to_save.model_dump()
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2)

        logger.info(f"Configuration saved to {self.config_path}")

    def get_config(self) -> DedupConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        return self._config

    def _get_default_config_path(self) -> Path:
        """Get default configuration file path."""
        # Look for config in current directory first, then user config dir
        current_dir = Path.cwd() / self.DEFAULT_CONFIG_NAME
        if current_dir.exists():
            return current_dir

        config_dir = Path.home() / ".config" / "dedupr"
        return config_dir / self.DEFAULT_CONFIG_NAME


def load_config(config_path: Path | None = None) -> DedupConfig:
    """Load configuration from a specific path or the default locations."""
    return ConfigManager(config_path).load()
