"""yt-dlp format presets and output-directory categorisation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_FORMAT_KEY = "Best Quality (auto)"


@dataclass(frozen=True)
class FormatOption:
    """A user-facing format label and the yt-dlp selector it stands for."""

    label: str
    value: str


_FORMAT_OPTIONS: tuple[FormatOption, ...] = (
    FormatOption("Best Quality (auto)", "bv*+ba/b"),
    FormatOption("Worst Quality (auto)", "worst"),
    FormatOption(
        "MP4 - 1080p",
        "bv*[height<=1080][ext=mp4]+ba[ext=m4a]/bv*[height<=1080]+ba/b[height<=1080]",
    ),
    FormatOption(
        "MP4 - 720p",
        "bv*[height<=720][ext=mp4]+ba[ext=m4a]/bv*[height<=720]+ba/b[height<=720]",
    ),
    FormatOption(
        "MP4 - 480p",
        "bv*[height<=480][ext=mp4]+ba[ext=m4a]/bv*[height<=480]+ba/b[height<=480]",
    ),
    FormatOption(
        "MP4 - 360p",
        "bv*[height<=360][ext=mp4]+ba[ext=m4a]/bv*[height<=360]+ba/b[height<=360]",
    ),
    FormatOption("Audio Only - MP3", "ba/b"),
    FormatOption("Audio Only - M4A", "ba[ext=m4a]/ba/b"),
)

_FORMAT_VALUES = {opt.label: opt.value for opt in _FORMAT_OPTIONS}

_QUALITY_MAP = {
    "best": "Best Quality (auto)",
    "1080p": "MP4 - 1080p",
    "720p": "MP4 - 720p",
    "480p": "MP4 - 480p",
    "360p": "MP4 - 360p",
    "audio": "Audio Only - MP3",
    "mp3": "Audio Only - MP3",
    "m4a": "Audio Only - M4A",
    "worst": "Worst Quality (auto)",
}


def _category_map() -> dict[str, str]:
    groups = {
        "Videos": ".mp4 .mkv .avi .mov .wmv .flv .webm .m4v .ts .3gp",
        "Music": ".mp3 .m4a .flac .ogg .wav .aac .opus .wma",
        "Documents": ".pdf .docx .doc .xlsx .xls .pptx .ppt .txt .epub .csv .rtf",
        "Archives": ".zip .rar .7z .tar .gz .bz2 .xz .iso",
        "Programs": ".exe .msi .apk .dmg .deb .rpm .pkg .bin .img",
    }
    return {ext: cat for cat, exts in groups.items() for ext in exts.split()}


_CATEGORIES = _category_map()


def file_suffix(name: str) -> str:
    """Return the text after the last dot of the final path component."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    _, dot, suffix = base.rpartition(".")
    return suffix if dot else ""


def all_format_options() -> tuple[FormatOption, ...]:
    """Return every format preset in display order."""
    return _FORMAT_OPTIONS


def format_value_for_key(key: str) -> str:
    """Return the yt-dlp selector for a label, or an empty string."""
    return _FORMAT_VALUES.get(key, "")


def is_valid_format_key(key: str) -> bool:
    """True if ``key`` is the label of a known preset."""
    return key in _FORMAT_VALUES


def quality_map_lookup(quality: str) -> str:
    """Map a short quality name (e.g. ``720p``) to a preset label."""
    return _QUALITY_MAP.get(quality.lower(), DEFAULT_FORMAT_KEY)


def category_for_extension(ext: str) -> str:
    """Return the folder category for an extension such as ``.mp4``."""
    return _CATEGORIES.get(ext.lower(), "Other")


def category_for_format_key(fmt_key: str) -> str:
    """Guess a folder category from a format preset label."""
    if "Audio" in fmt_key:
        return "Music"
    markers = ("1080p", "720p", "480p", "360p", "MP4", "Best")
    if any(marker in fmt_key for marker in markers):
        return "Videos"
    return "Other"


def make_categorized_output_dir(base_dir, filename: str, fmt_key: str) -> str:
    """Create and return the category sub-folder of ``base_dir``.

    The category comes from the file extension when a filename is given,
    otherwise from the format preset.
    """
    if filename:
        ext = file_suffix(filename).lower()
        category = category_for_extension("." + ext if ext else "")
    else:
        category = category_for_format_key(fmt_key)
    cat_dir = Path(os.fspath(base_dir)) / category
    cat_dir.mkdir(parents=True, exist_ok=True)
    return str(cat_dir)