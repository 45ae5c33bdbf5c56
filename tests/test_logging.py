"""
Tests for the logging configuration module.

Covers the package logger setup, environment-driven levels, log cleanup
and the dedicated scan logger.
"""

import logging
import os
from unittest.mock import patch

import pytest

from wa_group_sync.utils.logging import (
    CONSOLE_FORMAT,
    ROOT_LOGGER_NAME,
    SCAN_LOGGER_NAME,
    VERBOSE_FORMAT,
    ColoredFormatter,
    cleanup_old_logs,
    get_log_file_path,
    get_log_level_from_env,
    get_logger,
    get_scan_log_path,
    get_scan_logger,
    setup_logging,
    setup_scan_logger,
)


@pytest.fixture(autouse=True)
def reset_loggers(monkeypatch):
    monkeypatch.setattr("wa_group_sync.utils.logging._configured_log_dir", None)
    yield
    for name in (ROOT_LOGGER_NAME, SCAN_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.disabled = False


class TestGetLogLevelFromEnv:
    """Tests for get_log_level_from_env()."""

    @pytest.mark.parametrize("value", ["1", "true", "YES"])
    def test_debug_flag(self, value):
        with patch.dict(os.environ, {"WA_GROUP_SYNC_DEBUG": value}):
            assert get_log_level_from_env() == logging.DEBUG

    @pytest.mark.parametrize(
        "value,level",
        [
            ("warning", logging.WARNING),
            ("WARN", logging.WARNING),
            ("error", logging.ERROR),
            ("bogus", logging.INFO),
        ],
    )
    def test_level_names(self, value, level):
        with patch.dict(
            os.environ, {"WA_GROUP_SYNC_LOG_LEVEL": value, "WA_GROUP_SYNC_DEBUG": ""}
        ):
            assert get_log_level_from_env() == level

    def test_debug_wins(self):
        env = {"WA_GROUP_SYNC_LOG_LEVEL": "ERROR", "WA_GROUP_SYNC_DEBUG": "1"}
        with patch.dict(os.environ, env):
            assert get_log_level_from_env() == logging.DEBUG


class TestGetLogFilePath:
    """Tests for get_log_file_path()."""

    def test_custom_file(self, tmp_path):
        target = tmp_path / "custom.log"
        with patch.dict(os.environ, {"WA_GROUP_SYNC_LOG_FILE": str(target)}):
            assert get_log_file_path() == target

    @pytest.mark.parametrize("value", ["none", "disabled", ""])
    def test_disabled(self, value):
        with patch.dict(os.environ, {"WA_GROUP_SYNC_LOG_FILE": value}):
            assert get_log_file_path() is None

    def test_default_inside_config_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WA_GROUP_SYNC_LOG_FILE", raising=False)
        monkeypatch.setenv("WA_GROUP_SYNC_CONFIG_DIR", str(tmp_path))

        path = get_log_file_path()

        assert path.parent == tmp_path.resolve() / "logs"
        assert path.name.startswith("wa_group_sync_")


class TestColoredFormatter:
    """Tests for ColoredFormatter."""

    def test_colors_disabled(self):
        formatter = ColoredFormatter(CONSOLE_FORMAT, use_colors=False)
        record = logging.LogRecord("x", logging.INFO, "f.py", 1, "hello", None, None)

        assert formatter.format(record) == "INFO: hello"

    @patch("sys.stdout")
    def test_no_color_env(self, mock_stdout):
        mock_stdout.isatty.return_value = True
        with patch.dict(os.environ, {"NO_COLOR": "1"}):
            assert not ColoredFormatter(use_colors=True).use_colors

    @patch("sys.stdout")
    def test_record_not_mutated(self, mock_stdout):
        mock_stdout.isatty.return_value = True
        with patch.dict(os.environ, {"NO_COLOR": "", "TERM": "xterm"}):
            formatter = ColoredFormatter(CONSOLE_FORMAT)
        record = logging.LogRecord("x", logging.WARNING, "f.py", 1, "hi", None, None)

        formatted = formatter.format(record)

        assert "\033[33m" in formatted
        assert record.levelname == "WARNING"
        assert record.msg == "hi"


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_returns_package_logger(self):
        logger = setup_logging(enable_file_logging=False)

        assert logger.name == ROOT_LOGGER_NAME
        assert not logger.propagate
        assert len(logger.handlers) == 1

    def test_verbose_forces_debug(self):
        logger = setup_logging(
            level=logging.ERROR, verbose=True, enable_file_logging=False
        )

        assert logger.level == logging.DEBUG
        assert logger.handlers[0].formatter._fmt == VERBOSE_FORMAT

    def test_repeat_setup_replaces_handlers(self):
        setup_logging(enable_file_logging=False)
        logger = setup_logging(enable_file_logging=False)

        assert len(logger.handlers) == 1

    def test_file_in_log_dir(self, tmp_path):
        logger = setup_logging(level=logging.INFO, log_dir=tmp_path / "logs")
        logger.info("hello file")
        for handler in logger.handlers:
            handler.flush()

        files = list((tmp_path / "logs").glob("wa_group_sync_*.log"))
        assert len(files) == 1
        assert "hello file" in files[0].read_text(encoding="utf-8")


class TestLoggerHelpers:
    """Tests for get_logger()."""

    def test_get_logger_prefixes_name(self):
        assert get_logger("sync").name == "wa_group_sync.sync"
        assert get_logger("wa_group_sync.api").name == "wa_group_sync.api"


class TestCleanupOldLogs:
    """Tests for cleanup_old_logs()."""

    def test_keeps_most_recent_of_each_kind(self, tmp_path):
        for i in range(4):
            path = tmp_path / f"wa_group_sync_2026010{i}.log"
            path.write_text("x")
            os.utime(path, (1000 + i, 1000 + i))
            scan = tmp_path / f"scan_2026010{i}_000000.log"
            scan.write_text("x")
            os.utime(scan, (1000 + i, 1000 + i))

        deleted = cleanup_old_logs(tmp_path, keep_count=2)

        assert deleted == 4
        remaining = sorted(p.name for p in tmp_path.iterdir())
        assert remaining == [
            "scan_20260102_000000.log",
            "scan_20260103_000000.log",
            "wa_group_sync_20260102.log",
            "wa_group_sync_20260103.log",
        ]

    def test_disabled_with_zero(self, tmp_path):
        (tmp_path / "wa_group_sync_1.log").write_text("x")

        assert cleanup_old_logs(tmp_path, keep_count=0) == 0

    def test_missing_dir(self, tmp_path):
        assert cleanup_old_logs(tmp_path / "nope") == 0


class TestScanLogger:
    """Tests for the per-group scan logger."""

    def test_scan_log_path(self, tmp_path):
        path = get_scan_log_path(tmp_path)

        assert path.parent == tmp_path
        assert path.name.startswith("scan_")
        assert path.suffix == ".log"

    def test_scan_log_path_follows_setup_logging(self, tmp_path):
        setup_logging(log_dir=tmp_path, enable_file_logging=False)

        assert get_scan_log_path().parent == tmp_path

    def test_get_scan_logger(self):
        assert get_scan_logger().name == SCAN_LOGGER_NAME

    def test_setup_writes_decisions_to_file(self, tmp_path):
        log_file = tmp_path / "scan.log"

        logger = setup_scan_logger(log_file=log_file)
        get_scan_logger().info("ACCEPT admin   g1 'Parents'")
        for handler in logger.handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "Scan log session started" in content
        assert "ACCEPT admin   g1 'Parents'" in content
        assert not logger.propagate

    def test_setup_clears_previous_handlers(self, tmp_path):
        setup_scan_logger(log_file=tmp_path / "a.log")
        logger = setup_scan_logger(log_file=tmp_path / "b.log")

        assert len(logger.handlers) == 1

    def test_unwritable_path_falls_back_to_console(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        logger = setup_scan_logger(log_file=blocker / "scan.log")

        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], logging.FileHandler)
