"""Classification of download URLs."""

from __future__ import annotations

from urllib.parse import urlsplit

from rainax.formats import file_suffix

_YTDLP_DOMAINS = frozenset(
    {
        "youtube.com",
        "youtu.be",
        "vimeo.com",
        "dailymotion.com",
        "tiktok.com",
        "soundcloud.com",
    }
)

_DIRECT_EXTENSIONS = frozenset(
    ".exe .msi .zip .rar .7z .iso .apk .dmg .tar .gz .bz2 .xz .zst .deb .rpm "
    ".pkg .bin .img .pdf .docx .doc .xlsx .xls .pptx .ppt .mp3 .wav .flac .ogg "
    ".aac .opus .wma .m4a .mp4 .mkv .avi .mov .wmv .flv .webm .m4v .ts .3gp".split()
)

_DIRECT_FILE_EXTENSIONS = frozenset(
    ".exe .msi .zip .rar .7z .iso .pdf .apk .dmg .tar .gz .bz2 .xz .docx .xlsx "
    ".pptx .doc .xls .ppt .deb .rpm .pkg .bin .img".split()
)

_LABELS = {
    ".exe": "Software (.exe)",
    ".msi": "Installer (.msi)",
    ".apk": "Android Package (.apk)",
    ".dmg": "macOS Disk Image (.dmg)",
    ".deb": "Debian Package (.deb)",
    ".rpm": "RPM Package (.rpm)",
    ".pkg": "Package (.pkg)",
    ".bin": "Binary (.bin)",
    ".img": "Disk Image (.img)",
    ".zip": "Archive (.zip)",
    ".rar": "Archive (.rar)",
    ".7z": "Archive (.7z)",
    ".tar": "Archive (.tar)",
    ".gz": "Archive (.gz)",
    ".bz2": "Archive (.bz2)",
    ".xz": "Archive (.xz)",
    ".zst": "Archive (.zst)",
    ".iso": "Disk Image (.iso)",
    ".pdf": "PDF Document",
    ".docx": "Word Document (.docx)",
    ".doc": "Word Document (.doc)",
    ".xlsx": "Spreadsheet (.xlsx)",
    ".xls": "Spreadsheet (.xls)",
    ".pptx": "Presentation (.pptx)",
    ".ppt": "Presentation (.ppt)",
    ".txt": "Text File (.txt)",
    ".csv": "CSV File (.csv)",
    ".epub": "eBook (.epub)",
    **{
        f".{ext}": f"Audio File (.{ext})"
        for ext in "mp3 wav flac ogg aac opus wma m4a".split()
    },
    **{
        f".{ext}": f"Video File (.{ext})"
        for ext in "mp4 mkv avi mov wmv flv webm m4v ts 3gp".split()
    },
}


def _split(url: str):
    """Return (lower-case path, lower-case host) or None for an invalid URL."""
    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
    except ValueError:
        return None
    return parts.path.lower(), host.lower()


def _strip_query(path: str) -> str:
    return path.split("?", 1)[0]


def should_use_ytdlp(url: str) -> bool:
    """True if the URL belongs to a media platform handled by yt-dlp."""
    split = _split(url)
    if split is None:
        return False
    path, host = split
    ext = file_suffix(_strip_query(path))
    if ext and "." + ext in _DIRECT_EXTENSIONS:
        return False
    if host.startswith("www."):
        host = host[4:]
    if host.startswith("m."):
        host = host[2:]
    return any(host == d or host.endswith("." + d) for d in _YTDLP_DOMAINS)


def is_direct_file_url(url: str) -> bool:
    """True if the URL path ends in a downloadable file extension."""
    split = _split(url)
    if split is None:
        return False
    path, _ = split
    return "." + file_suffix(_strip_query(path)) in _DIRECT_FILE_EXTENSIONS


def _label_for(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    ext = "." + file_suffix(path.lower())
    if ext in _LABELS:
        return _LABELS[ext]
    if len(ext) > 1:
        return f"Generic File ({ext})"
    return ""


def generic_file_label(url: str, filename: str = "") -> str:
    """Describe a file by its extension, preferring ``filename`` over ``url``."""
    if filename:
        label = _label_for(filename)
        if label:
            return label
    if url:
        try:
            path = urlsplit(url).path
        except ValueError:
            path = ""
        label = _label_for(path)
        if label:
            return label
    return "Generic File"