"""
Configuration Management for docsync Clients

Dataclass configuration for the client: where the store lives, which write
concern mutating actions default to, and how the library logs.
"""

import json
import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Handler installed by configure_logging, replaced on the next call
_installed_handler: Optional[logging.Handler] = None


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5


@dataclass
class ClientConfig:
    """Complete client configuration"""
    host: str = "localhost"
    port: int = 27017
    driver_options: Dict[str, Any] = field(default_factory=dict)
    write_concern: Any = 1
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ClientConfig':
        """Create configuration from dictionary; unknown keys are ignored"""
        config = cls()

        for key in ("host", "port", "write_concern"):
            if key in config_dict:
                setattr(config, key, config_dict[key])
        config.port = int(config.port)

        if "driver_options" in config_dict:
            config.driver_options = dict(config_dict["driver_options"])

        if "logging" in config_dict:
            for key, value in config_dict["logging"].items():
                if hasattr(config.logging, key):
                    setattr(config.logging, key, value)

        return config

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'ClientConfig':
        """Load configuration from a JSON file"""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if config_path.suffix != '.json':
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        with open(config_path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_environment(cls) -> 'ClientConfig':
        """Create configuration from environment variables"""
        config = cls()

        if os.getenv('DOCSYNC_HOST'):
            config.host = os.getenv('DOCSYNC_HOST')

        if os.getenv('DOCSYNC_PORT'):
            config.port = int(os.getenv('DOCSYNC_PORT'))

        if os.getenv('DOCSYNC_WRITE_CONCERN'):
            value = os.getenv('DOCSYNC_WRITE_CONCERN')
            # "majority" and tag sets stay strings
            config.write_concern = int(value) if value.isdigit() else value

        if os.getenv('DOCSYNC_LOG_LEVEL'):
            config.logging.level = os.getenv('DOCSYNC_LOG_LEVEL').upper()

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            "host": self.host,
            "port": self.port,
            "driver_options": self.driver_options,
            "write_concern": self.write_concern,
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file_path": self.logging.file_path,
                "max_file_size": self.logging.max_file_size,
                "backup_count": self.logging.backup_count
            }
        }


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """
    Install a handler on the ``docsync`` logger.

    Logs go to a rotating file when ``file_path`` is set, otherwise to stderr.
    Calling it again replaces the previously installed handler.

    Returns:
        The configured ``docsync`` logger
    """
    logger = logging.getLogger("docsync")
    logger.setLevel(config.level)

    if config.file_path:
        handler = logging.handlers.RotatingFileHandler(
            config.file_path, maxBytes=config.max_file_size, backupCount=config.backup_count)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))

    global _installed_handler
    if _installed_handler is not None:
        logger.removeHandler(_installed_handler)
        _installed_handler.close()
    _installed_handler = handler
    logger.addHandler(handler)
    return logger


__all__ = ["ClientConfig", "LoggingConfig", "configure_logging"]
