"""
Packaging of built plugins into distributable archives.
"""

from .archive import ARCHIVE_FORMATS, list_archive_members, write_archive, write_tar_archive, write_zip_archive
from .packager import OutputPackager

__all__ = [
    "ARCHIVE_FORMATS",
    "OutputPackager",
    "list_archive_members",
    "write_archive",
    "write_tar_archive",
    "write_zip_archive",
]
