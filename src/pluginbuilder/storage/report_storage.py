"""
Persistence of build reports and event logs.

Each session directory receives ``report.json`` and the event log
(``events.parquet``, or ``events.json`` with the JSON backend). Reports
can be reloaded for inspection; a reloaded report is read-only.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

import polars as pl

from ..models.config import StorageConfig
from ..models.job import StateChangeEvent
from ..models.report import BuildReport
from ..models.runtime import SessionLayout
from ..validation import ErrorSeverity, handle_file_error
from .base import DataStorage
from .factory import create_storage_from_config

logger = logging.getLogger(__name__)

EVENT_SCHEMA = {
    "sequence": pl.Int64,
    "engine_version": pl.Utf8,
    "platform": pl.Utf8,
    "old_state": pl.Utf8,
    "new_state": pl.Utf8,
    "timestamp": pl.Float64,
    "attempt": pl.Int64,
    "reason_kind": pl.Utf8,
    "reason_message": pl.Utf8,
}


def events_to_dataframe(events: Iterable[StateChangeEvent]) -> pl.DataFrame:
    records = [event.to_record() for event in events if not event.snapshot]
    return pl.DataFrame(records, schema=EVENT_SCHEMA)


class ReportWriter:
    """Writes a session's report and event log into its session directory."""

    def __init__(self, storage_config: Optional[StorageConfig] = None, storage: Optional[DataStorage] = None):
        self.storage_config = storage_config or StorageConfig()
        self.storage = storage or create_storage_from_config(self.storage_config)

    def events_path(self, layout: SessionLayout) -> Path:
        return layout.session_dir / f"events{self.storage.table_suffix}"

    def save(
        self,
        layout: SessionLayout,
        report: BuildReport,
        events: Iterable[StateChangeEvent],
    ) -> List[Path]:
        """
        Persist ``report`` and ``events``.

        A storage failure is logged and does not affect the build result.

        Returns:
            The files written
        """
        written = []
        try:
            self.storage.save_dict(report.to_dict(), str(layout.report_file))
            written.append(layout.report_file)

            events_file = self.events_path(layout)
            self.storage.save_dataframe(events_to_dataframe(events), str(events_file))
            written.append(events_file)
            logger.info(f"Session report saved to {layout.report_file}")
        except Exception as e:
            handle_file_error(
                error=e,
                context=f"saving report for session {report.session_id}",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
        return written

    def load_events(self, layout: SessionLayout) -> pl.DataFrame:
        df = self.storage.load_dataframe(str(self.events_path(layout)))
        # A JSON log of a session without transitions has no columns.
        return df if df.width else pl.DataFrame(schema=EVENT_SCHEMA)


def load_report(path: Union[str, Path], storage: Optional[DataStorage] = None) -> BuildReport:
    """
    Reload a report written by ``ReportWriter``.

    Args:
        path: A ``report.json`` file or the session directory containing it

    Raises:
        FileNotFoundError: If no report exists at ``path``
    """
    report_path = Path(path)
    if report_path.is_dir():
        report_path = report_path / "report.json"
    if not report_path.is_file():
        raise FileNotFoundError(f"No build report at {report_path}")

    storage = storage or create_storage_from_config(StorageConfig())
    return BuildReport.from_dict(storage.load_dict(str(report_path)))
