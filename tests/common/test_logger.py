# tests/common/test_logger.py
"""
Тесты для модуля логирования.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from geo_ingest.common import logger as logger_module
from geo_ingest.common.constants import TypeMsg
from geo_ingest.common.logger import (
    ColoredFormatter,
    JsonFormatter,
    SizeRotatingFileHandler,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)


def _make_record(message: str = "тест", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_basic_fields(self) -> None:
        """Запись превращается в JSON с основными полями."""
        record = _make_record("Привет")

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Привет"
        assert data["timestamp"].endswith("Z")

    def test_extra_data(self) -> None:
        """extra_data попадает в поле extra."""
        record = _make_record()
        record.extra_data = {"code": "invalid_latitude"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"code": "invalid_latitude"}

    def test_exception(self) -> None:
        """Трейсбек исключения сериализуется."""
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = _make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_contains_level_and_message(self) -> None:
        """В строке есть уровень и сообщение."""
        output = ColoredFormatter().format(_make_record("сообщение", logging.WARNING))

        assert "[WARNING]" in output
        assert "сообщение" in output

    def test_caller_info(self) -> None:
        """Информация о вызывающем коде выводится в скобках."""
        record = _make_record()
        record.extra_data = {
            "caller_function": "handle_message",
            "caller_module": "geo_ingest.worker.pipeline",
            "caller_file": "pipeline.py",
            "caller_line": 42,
        }

        output = ColoredFormatter().format(record)

        assert "geo_ingest.worker.pipeline.handle_message()" in output
        assert "pipeline.py:42" in output


class TestSizeRotatingFileHandler:
    """Тесты для ротации файлов."""

    def test_creates_file_in_dir(self, tmp_path: Path) -> None:
        """Лог пишется в <dir>/<name>.log."""
        handler = SizeRotatingFileHandler(str(tmp_path / "logs"), max_bytes=1024, logger_name="ingest")
        try:
            handler.emit(_make_record("строка"))
        finally:
            handler.close()

        assert (tmp_path / "logs" / "ingest.log").exists()

    def test_rollover_archives_file(self, tmp_path: Path) -> None:
        """При ротации текущий файл переименовывается с отметкой времени."""
        handler = SizeRotatingFileHandler(str(tmp_path), max_bytes=1024, logger_name="ingest")
        try:
            handler.emit(_make_record("строка"))
            handler.doRollover()
        finally:
            handler.close()

        archived = list(tmp_path.glob("ingest_*.log"))
        assert len(archived) == 1


class TestGetLogger:
    """Тесты для get_logger."""

    def test_cached(self) -> None:
        """Повторный вызов возвращает тот же логгер без новых хендлеров."""
        first = get_logger("test_cached_logger")
        handlers = len(first.handlers)

        second = get_logger("test_cached_logger")

        assert first is second
        assert len(second.handlers) == handlers

    def test_no_propagation(self) -> None:
        """Логгеры не передают записи корневому."""
        assert get_logger("test_no_propagation").propagate is False


class TestLogHelpers:
    """Тесты для асинхронных функций логирования."""

    @pytest.fixture
    def fake_logger(self) -> MagicMock:
        mock_logger = MagicMock()
        with patch.object(logger_module, "get_logger", return_value=mock_logger):
            yield mock_logger

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_msg, method",
        [
            (TypeMsg.DEBUG, "debug"),
            (TypeMsg.INFO, "info"),
            (TypeMsg.WARNING, "warning"),
            (TypeMsg.ERROR, "error"),
            (TypeMsg.CRITICAL, "critical"),
        ],
    )
    async def test_log_info_routing(self, fake_logger: MagicMock, type_msg: TypeMsg, method: str) -> None:
        """log_info выбирает метод по type_msg."""
        await log_info("сообщение", type_msg=type_msg)

        getattr(fake_logger, method).assert_called_once()
        assert getattr(fake_logger, method).call_args.args[0] == "сообщение"

    @pytest.mark.asyncio
    async def test_extra_and_caller(self, fake_logger: MagicMock) -> None:
        """extra объединяется с информацией о вызывающем коде."""
        await log_info("сообщение", extra={"device": "d-1"})

        extra_data = fake_logger.info.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["device"] == "d-1"
        assert "caller_function" in extra_data

    @pytest.mark.asyncio
    async def test_shortcuts(self, fake_logger: MagicMock) -> None:
        """log_debug и log_warning используют свои уровни."""
        await log_debug("отладка")
        await log_warning("предупреждение")

        fake_logger.debug.assert_called_once()
        fake_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_exc_info(self, fake_logger: MagicMock) -> None:
        """log_error передаёт exc_info."""
        await log_error("ошибка", exc_info=True)

        assert fake_logger.error.call_args.kwargs["exc_info"] is True
