"""
Исключения пайплайна приёма геолокации.
"""

from __future__ import annotations


class IngestError(Exception):
    """Базовое исключение сервиса."""


class MarshalError(IngestError):
    """Сообщение с шины не удалось разобрать (не JSON или неверные типы)."""


class PositionValidationError(IngestError):
    """
    Сообщение разобрано, но не прошло валидацию.

    Attributes:
        code: Стабильный код ошибки (для логов и тестов)
    """

    EMPTY_UNIQUE_ID = "empty_unique_id"
    EMPTY_USER_ID = "empty_user_id"
    EMPTY_FLEET = "empty_fleet"
    EMPTY_LOCATION_TYPE = "empty_location_type"
    INVALID_COORDINATES = "invalid_coordinates"
    INVALID_LONGITUDE = "invalid_longitude"
    INVALID_LATITUDE = "invalid_latitude"
    INVALID_TIMESTAMP = "invalid_timestamp"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class StorageError(IngestError):
    """Ошибка записи в хранилище."""


class WriterClosedError(IngestError):
    """Запись в уже остановленный писатель."""
