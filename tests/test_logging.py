"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from agentloop.settings import Settings
from agentloop.utils import logging as logging_utils

_TOUCHED_LOGGERS = ("httpx", "openai", "agentloop.tools.executor")


@pytest.fixture
def restore_root_logger(monkeypatch: pytest.MonkeyPatch):
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    levels = {name: logging.getLogger(name).level for name in _TOUCHED_LOGGERS}
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for name, previous in levels.items():
        logging.getLogger(name).setLevel(previous)


def _flush() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


@pytest.mark.usefixtures("restore_root_logger")
class TestSetupLogging:
    def test_default_settings_log_info_and_quiet_http(self, tmp_path: Path) -> None:
        log_path = logging_utils.setup_logging(Settings(), log_dir=tmp_path, console=False)

        logging.getLogger("agentloop.controller").info("round complete")
        logging.getLogger("agentloop.controller").debug("hidden detail")
        _flush()

        assert log_path == tmp_path / "agentloop.log"
        assert logging_utils.get_log_path() == log_path
        text = log_path.read_text(encoding="utf-8")
        assert "round complete" in text
        assert "hidden detail" not in text
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_debug_logging_setting(self, tmp_path: Path) -> None:
        log_path = logging_utils.setup_logging(Settings(debug_logging=True), log_dir=tmp_path, console=False)

        logging.getLogger("agentloop.tracker").debug("delta buffered")
        _flush()

        assert "delta buffered" in log_path.read_text(encoding="utf-8")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("openai").level == logging.INFO

    def test_tool_logging_opens_executor_logger(self, tmp_path: Path) -> None:
        log_path = logging_utils.setup_logging(Settings(log_tool_arguments=True), log_dir=tmp_path, console=False)

        logging.getLogger("agentloop.tools.executor").debug("Executing tool add with arguments")
        logging.getLogger("agentloop.controller").debug("not this one")
        _flush()

        text = log_path.read_text(encoding="utf-8")
        assert "Executing tool add" in text
        assert "not this one" not in text

    def test_log_dir_comes_from_settings(self, tmp_path: Path) -> None:
        log_path = logging_utils.setup_logging(Settings(log_dir=str(tmp_path / "configured")), console=False)

        assert log_path == tmp_path / "configured" / "agentloop.log"

    def test_is_idempotent_unless_forced(self, tmp_path: Path) -> None:
        first = logging_utils.setup_logging(Settings(), log_dir=tmp_path / "a", console=False)
        second = logging_utils.setup_logging(Settings(), log_dir=tmp_path / "b", console=False)
        forced = logging_utils.setup_logging(Settings(), log_dir=tmp_path / "c", console=False, force=True)

        assert second == first
        assert forced == tmp_path / "c" / "agentloop.log"

    def test_settings_are_loaded_when_omitted(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTLOOP_LOG_DIR", str(tmp_path / "env"))
        monkeypatch.setenv("AGENTLOOP_DEBUG_LOGGING", "1")

        log_path = logging_utils.setup_logging(console=False)

        assert log_path == tmp_path / "env" / "agentloop.log"
        assert logging.getLogger().level == logging.DEBUG
