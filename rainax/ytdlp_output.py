"""Building yt-dlp command lines and reading their progress output."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from rainax.formats import make_categorized_output_dir

_PROGRESS_RE = re.compile(
    r"\[download\]\s+([\d.]+)%\s+of(?:\s+~)?\s*([\d.]+\s*\S+)"
    r"(?:\s+at\s+([\d.]+\s*\S+/s))?(?:\s+ETA\s+(\S+))?"
)
_DEST_RE = re.compile(r"\[download\] Destination:\s+(.+)")
_MERGE_RE = re.compile(r'\[Merger\].*?"(.+?)"')

OUTPUT_TEMPLATE = "%(title)s.%(ext)s"


@dataclass(frozen=True)
class ProgressEvent:
    """A progress line: percentage done, total size, speed and ETA."""

    percent: float
    size: str
    speed: str = ""
    eta: str = ""


@dataclass(frozen=True)
class FilenameEvent:
    """A line naming the file being written."""

    filename: str


def _base_name(path: str) -> str:
    return path.replace("\\", "/").rsplit("/", 1)[-1]


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_output_line(line: str) -> Union[ProgressEvent, FilenameEvent, None]:
    """Interpret one line of yt-dlp output, or return None if it says nothing."""
    match = _PROGRESS_RE.search(line)
    if match:
        percent, size, speed, eta = match.groups()
        return ProgressEvent(
            percent=_to_float(percent),
            size=size.strip(),
            speed=(speed or "").strip(),
            eta=(eta or "").strip(),
        )
    for pattern in (_DEST_RE, _MERGE_RE):
        match = pattern.search(line)
        if match:
            name = _base_name(match.group(1).strip())
            return FilenameEvent(name) if name else None
    return None


def build_command(
    ytdlp_cmd: Sequence[str],
    url: str,
    fmt_key: str,
    fmt_value: str,
    output_dir,
    is_playlist: bool,
    ffmpeg_path: Optional[str] = None,
) -> tuple[list[str], str]:
    """Return the yt-dlp argv and the category folder it writes into.

    The category folder under ``output_dir`` is created.
    """
    cat_dir = make_categorized_output_dir(output_dir, "", fmt_key)
    argv = [
        *ytdlp_cmd,
        "--newline",
        "--progress",
        "-o",
        os.path.join(cat_dir, OUTPUT_TEMPLATE),
        "-f",
        fmt_value,
    ]
    if not is_playlist:
        argv.append("--no-playlist")
    if ffmpeg_path and os.path.exists(ffmpeg_path):
        argv += ["--ffmpeg-location", os.path.dirname(os.path.abspath(ffmpeg_path))]
    argv.append(url)
    return argv, cat_dir