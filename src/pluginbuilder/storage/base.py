"""
Storage backend interface for session artifacts.

A build session leaves two artifacts next to its outputs: the final report
(a small nested document) and the event log (a flat table with one row per
state change). Backends decide how each is encoded on disk.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import polars as pl


class DataStorage(ABC):

    # Suffix of table files written by this backend, e.g. ".parquet".
    table_suffix: str = ""

    @abstractmethod
    def save_dataframe(self, df: pl.DataFrame, path: str) -> None:
        """Write ``df`` to ``path``, creating parent directories."""

    @abstractmethod
    def load_dataframe(self, path: str, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Read a table written by ``save_dataframe``, optionally only ``columns``."""

    @abstractmethod
    def save_dict(self, data: Dict[str, Any], path: str) -> None:
        """Write a JSON-compatible document, creating parent directories."""

    @abstractmethod
    def load_dict(self, path: str) -> Dict[str, Any]:
        ...
