#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса приёма геолокации.

Запуск:
    python main.py
"""

from __future__ import annotations

from geo_ingest.worker.runner import main


if __name__ == "__main__":
    main()
