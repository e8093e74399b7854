"""
Модуль конфигурации.
Экспортирует настройки приложения.
"""

from geo_ingest.config.loader import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
