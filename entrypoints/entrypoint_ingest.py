#!/usr/bin/env python3
# entrypoint_ingest.py
"""
Entrypoint пайплайна приёма геолокации.

Запуск:
    python entrypoints/entrypoint_ingest.py

Эндпоинт здоровья по умолчанию: 3010
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from geo_ingest.worker.runner import main


if __name__ == "__main__":
    main()
