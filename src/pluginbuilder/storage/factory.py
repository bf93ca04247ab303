"""
Factory for creating storage instances.
"""

import logging

from ..models.config import StorageConfig
from .base import DataStorage
from .parquet_storage import JsonStorage, ParquetStorage

logger = logging.getLogger(__name__)


def create_storage(format_type: str = "parquet", compression: str = "snappy") -> DataStorage:
    """
    Create a storage instance for the given format.

    Args:
        format_type: 'parquet' or 'json'
        compression: Compression algorithm (Parquet only)

    Raises:
        ValueError: If the format is not supported
    """
    if format_type == "parquet":
        logger.debug(f"Creating ParquetStorage with compression: {compression}")
        return ParquetStorage(compression=compression)
    if format_type == "json":
        logger.debug("Creating JsonStorage")
        return JsonStorage(compression=compression)
    raise ValueError(f"Unsupported storage format: {format_type}")


def create_storage_from_config(config: StorageConfig) -> DataStorage:
    return create_storage(config.format, config.compression)
