"""Tests for client configuration and logging setup."""

import json
import logging
import logging.handlers

import pytest

from docsync.config import ClientConfig, LoggingConfig, configure_logging


class TestClientConfig:
    """Building configuration from dicts, files and the environment"""

    def test_defaults(self):
        config = ClientConfig()

        assert config.host == "localhost"
        assert config.port == 27017
        assert config.write_concern == 1
        assert config.logging.level == "INFO"

    def test_from_dict(self):
        config = ClientConfig.from_dict({
            "host": "db.internal",
            "port": "27018",
            "write_concern": "majority",
            "driver_options": {"tz_aware": True},
            "logging": {"level": "DEBUG", "unknown": 1},
            "ignored": True,
        })

        assert config.host == "db.internal"
        assert config.port == 27018
        assert config.write_concern == "majority"
        assert config.driver_options == {"tz_aware": True}
        assert config.logging.level == "DEBUG"
        assert not hasattr(config.logging, "unknown")

    def test_from_file(self, tmp_path):
        path = tmp_path / "docsync.json"
        path.write_text(json.dumps({"host": "filehost", "write_concern": 0}))

        config = ClientConfig.from_file(path)
        assert config.host == "filehost"
        assert config.write_concern == 0

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ClientConfig.from_file(tmp_path / "missing.json")

    def test_from_unsupported_file(self, tmp_path):
        path = tmp_path / "docsync.ini"
        path.write_text("[docsync]")
        with pytest.raises(ValueError):
            ClientConfig.from_file(path)

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("DOCSYNC_HOST", "envhost")
        monkeypatch.setenv("DOCSYNC_PORT", "27019")
        monkeypatch.setenv("DOCSYNC_WRITE_CONCERN", "2")
        monkeypatch.setenv("DOCSYNC_LOG_LEVEL", "debug")

        config = ClientConfig.from_environment()
        assert config.host == "envhost"
        assert config.port == 27019
        assert config.write_concern == 2
        assert config.logging.level == "DEBUG"

    def test_named_write_concern_from_environment(self, monkeypatch):
        monkeypatch.setenv("DOCSYNC_WRITE_CONCERN", "majority")
        assert ClientConfig.from_environment().write_concern == "majority"

    def test_to_dict_round_trips(self):
        config = ClientConfig(host="db", port=1, write_concern=0)
        assert ClientConfig.from_dict(config.to_dict()) == config


class TestConfigureLogging:
    """Installing the library's log handler"""

    def test_stream_handler(self):
        before = list(logging.getLogger("docsync").handlers)
        logger = configure_logging(LoggingConfig(level="DEBUG"))

        assert logger.name == "docsync"
        assert logger.level == logging.DEBUG
        installed = [h for h in logger.handlers if h not in before]
        assert len(installed) == 1
        assert isinstance(installed[0], logging.StreamHandler)
        assert not hasattr(installed[0], "_docsync")
        logger.removeHandler(installed[0])

    def test_rotating_file_handler_replaces_previous(self, tmp_path):
        first = configure_logging(LoggingConfig()).handlers[-1]
        logger = configure_logging(LoggingConfig(file_path=str(tmp_path / "docsync.log"), backup_count=2))

        assert first not in logger.handlers
        installed = logger.handlers[-1]
        assert isinstance(installed, logging.handlers.RotatingFileHandler)
        assert installed.backupCount == 2

        logger.info("written")
        installed.flush()
        assert "written" in (tmp_path / "docsync.log").read_text()
        logger.removeHandler(installed)
        installed.close()

    def test_foreign_handlers_are_left_alone(self):
        logger = logging.getLogger("docsync")
        foreign = logging.NullHandler()
        logger.addHandler(foreign)

        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())

        assert foreign in logger.handlers
        assert sum(1 for h in logger.handlers if isinstance(h, logging.StreamHandler)) == 1
        logger.removeHandler(foreign)
        logger.removeHandler(logger.handlers[-1])
