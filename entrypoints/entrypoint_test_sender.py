#!/usr/bin/env python3
# entrypoint_test_sender.py
"""
Отправитель тестовых позиций для ручной проверки пайплайна.

Публикует на субъект сообщения нескольких устройств, которые двигаются
от стартовой точки; часть сообщений повторяет предыдущую точку и должна
быть отфильтрована.

Запуск:
    python entrypoints/entrypoint_test_sender.py --devices 3 --count 20
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
import time
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from geo_ingest.common.constants import CoordinateOrder, TimestampUnit, TypeMsg
from geo_ingest.common.logger import log_info, setup_logging
from geo_ingest.config import settings
from geo_ingest.infra.event_bus import close_event_bus, init_event_bus

# Примерно 11 м по широте
STEP_DEG = 0.0001


def build_message(
    device: int,
    lat: float,
    lon: float,
    order: CoordinateOrder,
    unit: TimestampUnit,
) -> dict:
    """Сообщение в формате продюсера."""
    coordinates = [lon, lat] if order == CoordinateOrder.LONLAT else [lat, lon]
    now = time.time()
    return {
        "unique_id": f"test-device-{device:03d}",
        "user_id": f"test-user-{device:03d}",
        "fleet": "test-fleet",
        "location": {"type": "Point", "coordinates": coordinates},
        "ip_origin": "127.0.0.1",
        "last_modified": int(now * 1000) if unit == TimestampUnit.MILLISECONDS else int(now),
    }


async def send(devices: int, count: int, interval: float, lat: float, lon: float) -> None:
    """Публикует count сообщений от каждого из devices устройств."""
    setup_logging()
    bus = await init_event_bus()
    subject = settings.rabbitmq.RABBITMQ_SUBJECT
    order = settings.ingest.COORDINATE_ORDER
    unit = settings.ingest.TIMESTAMP_UNIT

    positions = {device: (lat + device * STEP_DEG * 10, lon) for device in range(devices)}
    sent = 0
    try:
        for _ in range(count):
            for device, (cur_lat, cur_lon) in positions.items():
                # Каждое третье сообщение стоит на месте
                if random.random() > 0.33:
                    cur_lat += STEP_DEG
                    cur_lon += random.uniform(-STEP_DEG, STEP_DEG)
                    positions[device] = (cur_lat, cur_lon)

                body = json.dumps(build_message(device, cur_lat, cur_lon, order, unit)).encode()
                await bus.publish(subject, body)
                sent += 1
            await asyncio.sleep(interval)
    finally:
        await log_info(f"Отправлено сообщений: {sent}", type_msg=TypeMsg.INFO)
        await close_event_bus()


def main() -> None:
    parser = argparse.ArgumentParser(description="Отправка тестовых позиций в шину")
    parser.add_argument("--devices", type=int, default=3, help="Количество устройств")
    parser.add_argument("--count", type=int, default=10, help="Сообщений на устройство")
    parser.add_argument("--interval", type=float, default=1.0, help="Пауза между раундами (с)")
    parser.add_argument("--lat", type=float, default=40.7128, help="Стартовая широта")
    parser.add_argument("--lon", type=float, default=-74.0060, help="Стартовая долгота")
    args = parser.parse_args()

    try:
        asyncio.run(send(args.devices, args.count, args.interval, args.lat, args.lon))
    except KeyboardInterrupt:
        print("\nОтправка прервана")


if __name__ == "__main__":
    main()
