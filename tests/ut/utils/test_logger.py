"""日志配置测试"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from arm.core.exceptions import ChecksumMismatchError
from arm.utils.logger import JSONFormatter, reset_logging, setup_logging


class TestLogging:
    def teardown_method(self) -> None:
        reset_logging()

    @pytest.fixture(autouse=True)
    def _env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ARM_LOG_LEVEL", raising=False)
        monkeypatch.delenv("ARM_LOG_JSON", raising=False)

    def test_single_handler_on_arm_logger(self) -> None:
        setup_logging()
        logger = setup_logging(verbose=True)
        assert logger.name == "arm"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not logger.propagate

    def test_level_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARM_LOG_LEVEL", "info")
        assert setup_logging().level == logging.INFO

    def test_unknown_level_defaults_to_warning(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARM_LOG_LEVEL", "chatty")
        assert setup_logging().level == logging.WARNING

    def test_json_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARM_LOG_JSON", "1")
        (handler,) = setup_logging().handlers
        assert isinstance(handler.formatter, JSONFormatter)


class TestJSONFormatter:
    def test_fields(self) -> None:
        record = logging.LogRecord("arm.x", logging.INFO, __file__, 10, "装了 %s", ("p",), None)
        data = json.loads(JSONFormatter().format(record))
        assert data["msg"] == "装了 p"
        assert data["level"] == "INFO"
        assert data["logger"] == "arm.x"
        assert "code" not in data

    def test_error_code_from_arm_error(self) -> None:
        try:
            raise ChecksumMismatchError("不一致")
        except ChecksumMismatchError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("arm.x", logging.ERROR, __file__, 10, "失败", (), exc_info)
        data = json.loads(JSONFormatter().format(record))
        assert data["code"] == ChecksumMismatchError.code
        assert "ChecksumMismatchError" in data["exception"]
