"""A single entry in the download queue."""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from rainax.formats import DEFAULT_FORMAT_KEY, format_value_for_key, is_valid_format_key
from rainax.status import DownloadStatus
from rainax.urls import generic_file_label, is_direct_file_url, should_use_ytdlp


@dataclass
class DownloadItem:
    """State of one queued download."""

    id: str
    url: str
    output_dir: str
    fmt_key: str = DEFAULT_FORMAT_KEY
    fmt_value: str = ""
    status: DownloadStatus = DownloadStatus.QUEUED
    added_at: str = ""
    is_direct: bool = False
    is_playlist: bool = False
    display_fmt: str = ""
    filename: str = ""
    filesize: str = ""
    progress: float = 0.0
    speed: str = ""
    eta: str = ""
    temp_path: str = ""
    final_path: str = ""
    bytes_downloaded: int = 0
    bytes_total: int = 0
    logs: list[str] = field(default_factory=list)

    @classmethod
    def create(cls, url: str, output_dir, fmt_key: str) -> "DownloadItem":
        """Make a fresh queued item; unknown format keys fall back to best."""
        directory = os.fspath(output_dir)
        if os.path.exists(directory):
            resolved = os.path.realpath(directory)
        else:
            resolved = os.path.abspath(directory)
        key = fmt_key if is_valid_format_key(fmt_key) else DEFAULT_FORMAT_KEY
        display = key if should_use_ytdlp(url) else generic_file_label(url)
        return cls(
            id=uuid.uuid4().hex[:8],
            url=url,
            output_dir=resolved,
            fmt_key=key,
            fmt_value=format_value_for_key(key),
            status=DownloadStatus.QUEUED,
            added_at=datetime.now().strftime("%H:%M:%S"),
            is_direct=is_direct_file_url(url),
            display_fmt=display,
        )

    def transition(self, target: DownloadStatus) -> bool:
        """Move to ``target`` if allowed; return whether the status changed."""
        if self.status.can_transition_to(target):
            self.status = target
            return True
        return False