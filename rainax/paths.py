"""Locations of the application's data files and helper tools."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass


@dataclass(frozen=True)
class AppPaths:
    """File locations derived from the application directory."""

    script_dir: str
    icons_dir: str
    history_file: str
    queue_db_file: str
    schedule_file: str
    api_token_file: str
    ffmpeg_deploy_path: str
    ytdlp_cmd: tuple[str, ...]

    @classmethod
    def from_directory(cls, script_dir) -> "AppPaths":
        """Build paths under ``script_dir`` and locate the yt-dlp command."""
        base = os.fspath(script_dir)
        join = os.path.join
        return cls(
            script_dir=base,
            icons_dir=join(base, "icons"),
            history_file=join(base, "history.json"),
            queue_db_file=join(base, "queue_db.json"),
            schedule_file=join(base, "schedule.json"),
            api_token_file=join(base, ".ydm_api_token"),
            ffmpeg_deploy_path=join(base, "ffmpeg.exe"),
            ytdlp_cmd=_find_ytdlp(),
        )


def _find_ytdlp() -> tuple[str, ...]:
    binary = shutil.which("yt-dlp")
    if binary:
        return (binary,)
    python = shutil.which("python") or shutil.which("python3") or "python"
    return (python, "-m", "yt_dlp")