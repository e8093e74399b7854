"""
HTTP-сервисы пайплайна.
"""
