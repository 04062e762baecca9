"""Progress reporting to an optional caller callback."""

from typing import Optional

from .logging import get_logger
from .models import ProgressCallback, ProgressEvent, Stage

log = get_logger("cloud_sync.progress")


def emit(on_progress: Optional[ProgressCallback], stage: Stage, percent: int, message: str):
    """Send one event. Exceptions raised by the callback are logged, never propagated."""
    if on_progress is None:
        return
    try:
        on_progress(ProgressEvent(stage=stage, percent=percent, message=message))
    except Exception:
        log.exception("progress_callback_failed", stage=stage, percent=percent)
