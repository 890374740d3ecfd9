"""Services layered on top of the throttling transport."""

from throttleup.app.services.metadata import VideoMetadata, build_metadata, load_metadata
from throttleup.app.services.progress import ProgressReporter, ReporterState
from throttleup.app.services.source import (
    LocalFileSource,
    RemoteSource,
    UploadSource,
    open_source,
)
from throttleup.app.services.uploader import ResumableUploader

__all__ = [
    "VideoMetadata",
    "build_metadata",
    "load_metadata",
    "ProgressReporter",
    "ReporterState",
    "LocalFileSource",
    "RemoteSource",
    "UploadSource",
    "open_source",
    "ResumableUploader",
]
