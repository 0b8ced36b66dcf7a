"""Download lifecycle states and the transitions allowed between them."""

from __future__ import annotations

import enum


class DownloadStatus(enum.Enum):
    """State of a single download; the value is the label shown to users."""

    QUEUED = "Queued"
    STARTING = "Starting"
    RUNNING = "Downloading"
    PAUSED = "Paused"
    CANCELLING = "Cancelling"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    FAILED = "Failed"

    def label(self) -> str:
        """Return the display label of this status."""
        return self.value

    @classmethod
    def from_label(cls, text: str) -> "DownloadStatus":
        """Parse a display label; unknown labels map to QUEUED."""
        try:
            return cls(text)
        except ValueError:
            return cls.QUEUED

    def is_terminal(self) -> bool:
        """True for states a download never leaves on its own."""
        return self in _TERMINAL

    def can_transition_to(self, target: "DownloadStatus") -> bool:
        """True if moving from this status to ``target`` is permitted."""
        return target in _TRANSITIONS.get(self, frozenset())


_TERMINAL = frozenset(
    {DownloadStatus.COMPLETED, DownloadStatus.FAILED, DownloadStatus.CANCELLED}
)

_TRANSITIONS: dict[DownloadStatus, frozenset[DownloadStatus]] = {
    DownloadStatus.QUEUED: frozenset(
        {DownloadStatus.STARTING, DownloadStatus.CANCELLED}
    ),
    DownloadStatus.STARTING: frozenset(
        {DownloadStatus.RUNNING, DownloadStatus.FAILED, DownloadStatus.CANCELLED}
    ),
    DownloadStatus.RUNNING: frozenset(
        {
            DownloadStatus.PAUSED,
            DownloadStatus.CANCELLING,
            DownloadStatus.COMPLETED,
            DownloadStatus.FAILED,
        }
    ),
    DownloadStatus.PAUSED: frozenset(
        {DownloadStatus.QUEUED, DownloadStatus.CANCELLING, DownloadStatus.CANCELLED}
    ),
    DownloadStatus.CANCELLING: frozenset(
        {DownloadStatus.CANCELLED, DownloadStatus.FAILED}
    ),
    DownloadStatus.FAILED: frozenset({DownloadStatus.QUEUED}),
}