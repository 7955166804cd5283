from __future__ import annotations
"""Normalized view of a provider-side job."""

from dataclasses import dataclass, field
from typing import Any

REMOTE_PENDING = "pending"
REMOTE_PROCESSING = "processing"
REMOTE_COMPLETED = "completed"
REMOTE_FAILED = "failed"

TERMINAL_STATUSES = (REMOTE_COMPLETED, REMOTE_FAILED)


@dataclass
class RemoteJobResult:
    """Provider job status after normalization."""
    job_id: str
    status: str
    video_url: str | None = None
    error: str | None = None
    progress_ratio: float | str | None = None
    artifacts: list[dict[str, Any]] = field(default_factory=list)
    timed_out: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def progress_percent(self) -> float | None:
        """Provider progress as 0–100, or None when absent or unparsable."""
        if self.progress_ratio is None:
            return None
        try:
            ratio = float(self.progress_ratio)
        except (TypeError, ValueError):
            return None
        if ratio != ratio:  # NaN
            return None
        return ratio * 100
