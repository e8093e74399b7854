"""
Пайплайн приёма геолокации: диспетчер, стратегии записи, репортёр метрик.
"""

from geo_ingest.worker.dispatcher import WorkerPool
from geo_ingest.worker.pipeline import IngestPipeline, build_writer
from geo_ingest.worker.reporter import MetricsReporter
from geo_ingest.worker.writers import BatchWriter, ImmediateWriter, PositionWriter

__all__ = [
    "WorkerPool",
    "IngestPipeline",
    "build_writer",
    "MetricsReporter",
    "BatchWriter",
    "ImmediateWriter",
    "PositionWriter",
]
