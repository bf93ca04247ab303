"""
Reproducible zip and tar.gz writers.

Members are added in sorted order with a fixed timestamp and owner, so
packaging the same tree twice yields archives with identical membership and
content. Archives are written to a temporary file first and moved into
place, which replaces any archive of the same name.
"""

import gzip
import logging
import os
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

ARCHIVE_FORMATS = ("zip", "tar.gz")

# Earliest timestamp a zip entry can hold.
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def collect_members(source_dir: Path) -> List[Tuple[str, Path]]:
    """
    Files under ``source_dir`` as (archive name, path) pairs, sorted.

    Archive names are prefixed with the directory's own name and always use
    forward slashes.
    """
    source_dir = Path(source_dir)
    members = []
    for path in source_dir.rglob("*"):
        if path.is_file():
            relative = path.relative_to(source_dir.parent).as_posix()
            members.append((relative, path))
    members.sort(key=lambda member: member[0])
    return members


def _file_mode(path: Path) -> int:
    return 0o755 if os.access(path, os.X_OK) else 0o644


def _write_zip(members: List[Tuple[str, Path]], target: Path, compression_level: int) -> None:
    level = min(compression_level, 9)
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level) as archive:
        for name, path in members:
            info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
            info.external_attr = (0o100000 | _file_mode(path)) << 16
            archive.writestr(info, path.read_bytes(), compress_type=zipfile.ZIP_DEFLATED,
                             compresslevel=level)


def _write_tar(members: List[Tuple[str, Path]], target: Path, compression_level: int) -> None:
    with open(target, "wb") as raw:
        with gzip.GzipFile(filename="", mode="wb", fileobj=raw,
                           compresslevel=min(compression_level, 9), mtime=0) as compressed:
            with tarfile.open(fileobj=compressed, mode="w", format=tarfile.PAX_FORMAT) as archive:
                for name, path in members:
                    info = tarfile.TarInfo(name)
                    info.size = path.stat().st_size
                    info.mtime = 0
                    info.mode = _file_mode(path)
                    info.uid = info.gid = 0
                    info.uname = info.gname = ""
                    with open(path, "rb") as source:
                        archive.addfile(info, source)


def write_archive(source_dir: Path, archive_path: Path, archive_format: str = "zip",
                  compression_level: int = 6) -> Path:
    """
    Archive ``source_dir`` (including its own name as the top folder).

    Args:
        source_dir: Directory to archive
        archive_path: Destination file; replaced if it exists
        archive_format: 'zip' or 'tar.gz'
        compression_level: 0-9

    Returns:
        The archive path

    Raises:
        ValueError: If the format is not supported
        OSError: If reading the tree or writing the archive fails
    """
    if archive_format not in ARCHIVE_FORMATS:
        raise ValueError(f"Unsupported archive format: {archive_format}")

    archive_path = Path(archive_path)
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    members = collect_members(source_dir)

    fd, temp_name = tempfile.mkstemp(prefix=f".{archive_path.name}.", dir=archive_path.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        if archive_format == "zip":
            _write_zip(members, temp_path, compression_level)
        else:
            _write_tar(members, temp_path, compression_level)
        os.replace(temp_path, archive_path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    logger.info(f"Wrote {archive_path} ({len(members)} files)")
    return archive_path


def write_zip_archive(source_dir: Path, archive_path: Path, compression_level: int = 6) -> Path:
    return write_archive(source_dir, archive_path, "zip", compression_level)


def write_tar_archive(source_dir: Path, archive_path: Path, compression_level: int = 6) -> Path:
    return write_archive(source_dir, archive_path, "tar.gz", compression_level)


def list_archive_members(archive_path: Path) -> List[str]:
    """Member file names of a zip or tar.gz archive, in stored order."""
    archive_path = Path(archive_path)
    if zipfile.is_zipfile(archive_path):
        with zipfile.ZipFile(archive_path) as archive:
            return [info.filename for info in archive.infolist() if not info.is_dir()]
    with tarfile.open(archive_path, "r:*") as archive:
        return [member.name for member in archive.getmembers() if member.isfile()]
