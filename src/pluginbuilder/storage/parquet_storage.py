"""
Polars-backed storage: event tables as Parquet (or JSON rows), reports as
JSON documents.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import polars as pl

from .base import DataStorage

logger = logging.getLogger(__name__)

ParquetCompression = Literal["snappy", "gzip", "brotli", "lz4", "zstd"]


@contextmanager
def _logged_io(action: str, path: str, create_parent: bool = False):
    """Log and re-raise any failure of the enclosed read or write."""
    try:
        if create_parent:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        yield
    except Exception as e:
        logger.error(f"Failed to {action} {path}: {e}")
        raise


class ParquetStorage(DataStorage):
    """
    Event logs as compressed Parquet, reports as indented JSON.

    Reports stay JSON so they can be read by hand next to the build outputs.
    """

    table_suffix = ".parquet"

    def __init__(self, compression: ParquetCompression = "snappy"):
        self.compression = compression
        logger.debug(f"Parquet storage using {compression} compression")

    def save_dataframe(self, df: pl.DataFrame, path: str) -> None:
        with _logged_io("write table", path, create_parent=True):
            df.write_parquet(path, compression=self.compression)
        logger.debug(f"Wrote {df.height} rows to {path}")

    def load_dataframe(self, path: str, columns: Optional[List[str]] = None) -> pl.DataFrame:
        with _logged_io("read table", path):
            return pl.read_parquet(path, columns=columns) if columns else pl.read_parquet(path)

    def save_dict(self, data: Dict[str, Any], path: str) -> None:
        with _logged_io("write document", path, create_parent=True):
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)

    def load_dict(self, path: str) -> Dict[str, Any]:
        with _logged_io("read document", path):
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)


class JsonStorage(ParquetStorage):
    """Like ParquetStorage, but tables are a JSON list of row objects."""

    table_suffix = ".json"

    def save_dataframe(self, df: pl.DataFrame, path: str) -> None:
        self.save_dict(df.to_dicts(), path)
        logger.debug(f"Wrote {df.height} rows to {path}")

    def load_dataframe(self, path: str, columns: Optional[List[str]] = None) -> pl.DataFrame:
        df = pl.DataFrame(self.load_dict(path))
        return df.select(columns) if columns else df
