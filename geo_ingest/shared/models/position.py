"""
Модели позиции устройства.

WireMessage: сообщение в том виде, в каком его публикует продюсер на шину.
PositionEvent: нормализованная, неизменяемая позиция, с которой работает
пайплайн после границы приёма.
"""

from __future__ import annotations

import ipaddress
import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from geo_ingest.common.constants import CoordinateOrder, TimestampUnit
from geo_ingest.common.exceptions import MarshalError, PositionValidationError


class Coordinate(BaseModel):
    """Каноническая координата: широта и долгота в градусах."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


# =============================================================================
# СООБЩЕНИЕ С ШИНЫ
# =============================================================================

class WireLocation(BaseModel):
    """Блок location в формате GeoJSON-подобной точки."""
    type: str = ""
    coordinates: list[float] = Field(default_factory=list)


class WireMessage(BaseModel):
    """Сообщение продюсера, как оно приходит по шине."""

    model_config = ConfigDict(extra="ignore")

    unique_id: str = ""
    user_id: str = ""
    fleet: str = ""
    location: WireLocation = Field(default_factory=WireLocation)
    ip_origin: str = ""
    last_modified: int = 0

    # Необязательные поля расширенных продюсеров
    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    battery_level: int | None = None
    metadata: dict[str, Any] | None = None

    def validate_fields(
        self,
        order: CoordinateOrder = CoordinateOrder.LONLAT,
        check_ranges: bool = True,
    ) -> None:
        """
        Проверяет обязательные поля и координаты.

        Args:
            order: Порядок элементов в location.coordinates
            check_ranges: Проверять диапазоны широты и долготы

        Raises:
            PositionValidationError: Сообщение не прошло проверку
        """
        if not self.unique_id:
            raise PositionValidationError(PositionValidationError.EMPTY_UNIQUE_ID, "unique_id пустой")
        if not self.user_id:
            raise PositionValidationError(PositionValidationError.EMPTY_USER_ID, "user_id пустой")
        if not self.fleet:
            raise PositionValidationError(PositionValidationError.EMPTY_FLEET, "fleet пустой")
        if not self.location.type:
            raise PositionValidationError(
                PositionValidationError.EMPTY_LOCATION_TYPE, "location.type пустой"
            )
        if len(self.location.coordinates) != 2:
            raise PositionValidationError(
                PositionValidationError.INVALID_COORDINATES,
                "location.coordinates должен содержать ровно 2 элемента",
            )

        if not check_ranges:
            return

        coordinate = self.to_coordinate(order)
        if not -180 <= coordinate.longitude <= 180:
            raise PositionValidationError(
                PositionValidationError.INVALID_LONGITUDE, "longitude вне диапазона [-180, 180]"
            )
        if not -90 <= coordinate.latitude <= 90:
            raise PositionValidationError(
                PositionValidationError.INVALID_LATITUDE, "latitude вне диапазона [-90, 90]"
            )

    def to_coordinate(self, order: CoordinateOrder) -> Coordinate:
        """Раскладывает coordinates в каноническую координату."""
        first, second = self.location.coordinates
        if order == CoordinateOrder.LONLAT:
            return Coordinate(latitude=second, longitude=first)
        return Coordinate(latitude=first, longitude=second)

    def to_event(
        self,
        order: CoordinateOrder = CoordinateOrder.LONLAT,
        unit: TimestampUnit = TimestampUnit.MILLISECONDS,
        check_ranges: bool = True,
    ) -> PositionEvent:
        """
        Валидирует сообщение и превращает его в PositionEvent.

        Args:
            order: Порядок элементов в location.coordinates
            unit: Единица измерения last_modified
            check_ranges: Проверять диапазоны широты и долготы

        Raises:
            PositionValidationError: Сообщение не прошло проверку
        """
        self.validate_fields(order=order, check_ranges=check_ranges)
        coordinate = self.to_coordinate(order)

        try:
            event_time = timestamp_to_datetime(self.last_modified, unit)
        except (OverflowError, OSError, ValueError) as e:
            raise PositionValidationError(
                PositionValidationError.INVALID_TIMESTAMP,
                f"last_modified={self.last_modified} не переводится в дату ({unit.value}): {e}",
            ) from e

        return PositionEvent(
            device_id=self.unique_id,
            user_id=self.user_id,
            fleet=self.fleet,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            event_time=event_time,
            last_modified=self.last_modified,
            origin_ip=normalize_ip(self.ip_origin),
            altitude=self.altitude,
            speed=self.speed,
            heading=self.heading,
            accuracy=self.accuracy,
            battery_level=self.battery_level,
            metadata=(
                json.dumps(self.metadata, ensure_ascii=False).encode()
                if self.metadata is not None else None
            ),
        )


def parse_wire_message(data: bytes | str) -> WireMessage:
    """
    Разбирает тело сообщения с шины.

    Raises:
        MarshalError: Тело не JSON-объект или типы полей не совпадают
    """
    try:
        return WireMessage.model_validate_json(data)
    except ValidationError as e:
        raise MarshalError(f"Ошибка разбора сообщения: {e.error_count()} ошибок, {e.errors()[0]['msg']}") from e
    except ValueError as e:
        raise MarshalError(f"Ошибка разбора сообщения: {e}") from e


def timestamp_to_datetime(value: int, unit: TimestampUnit) -> datetime:
    """Переводит Unix-время в секундах или миллисекундах в aware datetime (UTC)."""
    if unit == TimestampUnit.MILLISECONDS:
        seconds, millis = divmod(value, 1000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=millis * 1000)
    return datetime.fromtimestamp(value, tz=timezone.utc)


def normalize_ip(value: str) -> str | None:
    """Возвращает IP в каноническом виде или None, если строка не является IP."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


# =============================================================================
# НОРМАЛИЗОВАННАЯ ПОЗИЦИЯ
# =============================================================================

class PositionEvent(BaseModel):
    """Принятая к обработке позиция устройства. Неизменяема."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    user_id: str
    fleet: str
    latitude: float
    longitude: float
    event_time: datetime
    last_modified: int = 0
    origin_ip: str | None = None

    altitude: float | None = None
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    battery_level: int | None = None
    metadata: bytes | None = None

    @property
    def coordinate(self) -> Coordinate:
        """Координата позиции."""
        return Coordinate(latitude=self.latitude, longitude=self.longitude)

    def to_document(self) -> dict[str, Any]:
        """Документ для документного хранилища (GeoJSON: [lon, lat])."""
        document: dict[str, Any] = {
            "unique_id": self.device_id,
            "user_id": self.user_id,
            "fleet": self.fleet,
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            },
            "ip_origin": self.origin_ip or "",
            "last_modified": self.last_modified,
            "fecha": self.event_time.isoformat(),
        }
        for name in ("altitude", "speed", "heading", "accuracy", "battery_level"):
            value = getattr(self, name)
            if value is not None:
                document[name] = value
        if self.metadata is not None:
            document["metadata"] = json.loads(self.metadata)
        return document

    def to_row(self) -> tuple[Any, ...]:
        """Позиционные параметры для INSERT в gps_positions."""
        return (
            self.event_time,
            self.device_id,
            self.user_id,
            self.fleet,
            self.latitude,
            self.longitude,
            self.altitude,
            self.speed,
            self.heading,
            self.accuracy,
            self.battery_level,
            self.origin_ip,
            self.metadata.decode() if self.metadata is not None else None,
        )
