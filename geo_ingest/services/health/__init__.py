"""
Эндпоинты здоровья и метрик.
"""

from geo_ingest.services.health.app import create_app, render_prometheus

__all__ = ["create_app", "render_prometheus"]
