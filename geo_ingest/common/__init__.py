"""
Общие утилиты, константы, исключения и логгер.
"""

from geo_ingest.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from geo_ingest.common.constants import TypeMsg

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
]
