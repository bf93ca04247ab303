"""
Storage of build reports and session event logs.
"""

from .base import DataStorage
from .factory import create_storage, create_storage_from_config
from .parquet_storage import JsonStorage, ParquetStorage
from .report_storage import EVENT_SCHEMA, ReportWriter, events_to_dataframe, load_report

__all__ = [
    "DataStorage",
    "ParquetStorage",
    "JsonStorage",
    "create_storage",
    "create_storage_from_config",
    "ReportWriter",
    "EVENT_SCHEMA",
    "events_to_dataframe",
    "load_report",
]
