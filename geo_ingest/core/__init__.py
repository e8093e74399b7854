"""
Ядро пайплайна: кэш координат, дедупликация, метрики.
"""
