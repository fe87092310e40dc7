from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple
import threading
import uuid

from .crop_geometry import FrameTarget, get_frame_target
from .image import PixelBuffer
from .image_adjustments import AdjustmentSettings

if TYPE_CHECKING:
    from ..services.adjustment_service import RenderContext


class SessionState(str, Enum):
    EMPTY = "empty"
    IMAGE_LOADED = "image_loaded"
    ADJUSTING = "adjusting"
    SUBMITTING = "submitting"
    RESULT = "result"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class HeadshotSession:
    """
    Everything one user's editing session holds. Transient, in-memory only.

    `original` is produced once per upload and never written to;
    `enhanced` and `result` are replaced wholesale, never patched.
    """
    session_id: str = field(default_factory=_new_id)
    state: SessionState = SessionState.EMPTY
    frame: FrameTarget = field(default_factory=get_frame_target)
    settings: AdjustmentSettings = field(default_factory=AdjustmentSettings)
    original: Optional[PixelBuffer] = None
    enhanced: Optional[PixelBuffer] = None
    result: Optional[PixelBuffer] = None
    source_size: Optional[Tuple[int, int]] = None  # (width, height) of the upload

    # remote submission bookkeeping
    submission_id: Optional[str] = None
    submission_style: Optional[str] = None
    resume_state: Optional[SessionState] = None
    last_error: Optional[str] = None

    # size-keyed caches for the adjustment pipeline; set by SessionService
    render_context: Optional["RenderContext"] = None

    # serializes state transitions when requests for one session overlap
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def clear(self) -> None:
        """Drop every image and go back to EMPTY."""
        self.state = SessionState.EMPTY
        self.settings = AdjustmentSettings()
        self.original = None
        self.enhanced = None
        self.result = None
        self.source_size = None
        self.submission_id = None
        self.submission_style = None
        self.resume_state = None
        self.last_error = None

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "mode": self.frame.name,
            "width": self.frame.width,
            "height": self.frame.height,
            "settings": self.settings.as_dict(),
            "style": self.submission_style,
            "has_result": self.result is not None,
            "last_error": self.last_error,
        }
