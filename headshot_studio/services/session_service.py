from __future__ import annotations
from typing import Any, Dict
import logging
import uuid

from ..errors import HeadshotError, InvalidSessionState
from ..models.crop_geometry import get_frame_target
from ..models.image import PixelBuffer
from ..models.image_adjustments import AdjustmentSettings
from ..models.session import HeadshotSession, SessionState
from ..repositories.image_repository import ImageSource
from .adjustment_service import AdjustmentService, RenderContext
from .cropping_service import CroppingService
from .image_service import ImageService
from .transform_provider import TransformProvider, validate_style

logger = logging.getLogger(__name__)

_ADJUSTABLE = (SessionState.IMAGE_LOADED, SessionState.ADJUSTING)
_RESETTABLE = (SessionState.IMAGE_LOADED, SessionState.ADJUSTING, SessionState.RESULT)
_SUBMITTABLE = (SessionState.IMAGE_LOADED, SessionState.ADJUSTING,
                SessionState.RESULT, SessionState.SUBMITTING)


class SessionService:
    """
    Drives a HeadshotSession through its states:

        EMPTY → IMAGE_LOADED ⇄ ADJUSTING
        IMAGE_LOADED/ADJUSTING/RESULT → SUBMITTING → RESULT
        SUBMITTING → previous state on failure
        any → IMAGE_LOADED on a new upload, any → EMPTY on clear

    Every operation computes its new buffers first and only then assigns
    them, so a failure leaves the session exactly as it was.
    """

    def __init__(
        self,
        image_service: ImageService | None = None,
        cropping_service: CroppingService | None = None,
        adjustment_service: AdjustmentService | None = None,
    ):
        self.image_service = image_service or ImageService()
        self.cropping_service = cropping_service or CroppingService()
        self.adjustment_service = adjustment_service or AdjustmentService()

    @staticmethod
    def new_session(mode: str | None = None) -> HeadshotSession:
        session = HeadshotSession(frame=get_frame_target(mode))
        session.render_context = RenderContext()
        return session

    @staticmethod
    def _require(session: HeadshotSession, allowed, action: str) -> None:
        if session.state not in allowed:
            raise InvalidSessionState(
                f"Cannot {action} while session is {session.state.value}"
            )

    def _context(self, session: HeadshotSession) -> RenderContext:
        if session.render_context is None:
            session.render_context = RenderContext()
        return session.render_context

    # ─── Upload ──────────────────────────────────────────────────────
    def load_image(self, session: HeadshotSession, source: ImageSource, mode: str | None = None) -> HeadshotSession:
        """Decode + crop a new upload. Allowed from any state."""
        frame = get_frame_target(mode) if mode else session.frame
        image = self.image_service.load(source)
        original = self.cropping_service.prepare_for(image, frame).frozen()

        with session.lock:
            session.frame = frame
            session.source_size = (image.width, image.height)
            session.original = original
            session.enhanced = original
            session.settings = AdjustmentSettings()
            session.result = None
            session.submission_id = None
            session.submission_style = None
            session.resume_state = None
            session.last_error = None
            session.state = SessionState.IMAGE_LOADED

        logger.info("Session %s: loaded %dx%d source into %s frame %dx%d",
                    session.session_id, image.width, image.height,
                    frame.name, frame.width, frame.height)
        return session

    # ─── Adjustments ─────────────────────────────────────────────────
    def update_settings(self, session: HeadshotSession, **changes: Any) -> PixelBuffer:
        """Change some sliders and re-render from the original frame."""
        with session.lock:
            self._require(session, _ADJUSTABLE, "adjust")
            settings = session.settings.replace(**changes)
            return self.apply_settings(session, settings)

    def apply_settings(self, session: HeadshotSession, settings: AdjustmentSettings | Dict[str, Any]) -> PixelBuffer:
        """Replace the whole settings object and re-render."""
        with session.lock:
            self._require(session, _ADJUSTABLE, "adjust")
            settings = self.adjustment_service.coerce_settings(settings)
            enhanced = self.adjustment_service.render(session.original, settings,
                                                      self._context(session)).frozen()

            session.settings = settings
            session.enhanced = enhanced
            session.state = SessionState.ADJUSTING
            return enhanced

    def reset(self, session: HeadshotSession) -> PixelBuffer:
        """
        Zero every slider; the enhanced frame becomes the original again.
        A transform result is dropped too, since it was made from the
        adjusted frame that no longer exists.
        """
        with session.lock:
            self._require(session, _RESETTABLE, "reset")
            session.settings = AdjustmentSettings()
            session.enhanced = session.original
            session.result = None
            session.state = SessionState.IMAGE_LOADED
            return session.enhanced

    # ─── Remote submission ───────────────────────────────────────────
    def begin_submission(self, session: HeadshotSession, style: str) -> str:
        """
        Start a remote transform. A newer submission supersedes any older
        one still in flight; only the latest id is accepted on completion.
        """
        with session.lock:
            self._require(session, _SUBMITTABLE, "submit")
            style = validate_style(style)
            if session.state != SessionState.SUBMITTING:
                session.resume_state = session.state
            elif session.submission_id:
                logger.info("Session %s: submission %s superseded",
                            session.session_id, session.submission_id)

            session.submission_id = uuid.uuid4().hex
            session.submission_style = style
            session.last_error = None
            session.state = SessionState.SUBMITTING
            logger.info("Session %s: submission %s started (style=%s)",
                        session.session_id, session.submission_id, style)
            return session.submission_id

    def _is_current(self, session: HeadshotSession, submission_id: str) -> bool:
        if session.state != SessionState.SUBMITTING or submission_id != session.submission_id:
            logger.warning("Session %s: ignoring stale response for submission %s",
                           session.session_id, submission_id)
            return False
        return True

    def complete_submission(self, session: HeadshotSession, submission_id: str, image: ImageSource) -> bool:
        """
        Accept the provider's image for the current submission.
        Returns False (and changes nothing) for an obsolete submission.
        """
        with session.lock:
            if not self._is_current(session, submission_id):
                return False

            try:
                decoded = self.image_service.load(image)
                result = self.cropping_service.prepare_for(decoded, session.frame).frozen()
            except HeadshotError as err:
                self.fail_submission(session, submission_id, err)
                raise

            session.result = result
            session.submission_id = None
            session.resume_state = None
            session.state = SessionState.RESULT
            logger.info("Session %s: submission %s completed", session.session_id, submission_id)
            return True

    def fail_submission(self, session: HeadshotSession, submission_id: str, error: Exception | str) -> bool:
        """Return to the state the session was in before the submission started."""
        with session.lock:
            if not self._is_current(session, submission_id):
                return False
            session.last_error = str(error)
            session.state = session.resume_state or SessionState.IMAGE_LOADED
            session.submission_id = None
            session.resume_state = None
            logger.error("Session %s: submission %s failed: %s",
                         session.session_id, submission_id, error)
            return True

    def submit(self, session: HeadshotSession, provider: TransformProvider, style: str) -> PixelBuffer:
        """
        Send the current enhanced frame to `provider` and store the result.
        Raises TransformError / DecodeError after rolling the state back.

        The provider call runs without the session lock, so a newer
        submission may supersede this one while it waits.
        """
        with session.lock:
            submission_id = self.begin_submission(session, style)
            payload = self.image_service.to_png_bytes(session.enhanced)
        try:
            image_bytes = provider.transform(payload, style)
        except Exception as err:
            self.fail_submission(session, submission_id, err)
            raise

        with session.lock:
            if not self.complete_submission(session, submission_id, image_bytes):
                raise InvalidSessionState(f"Submission {submission_id} was superseded")
            return session.result

    # ─── Output ──────────────────────────────────────────────────────
    def export_png(self, session: HeadshotSession, which: str = "enhanced") -> bytes:
        buffers = {
            "original": session.original,
            "enhanced": session.enhanced,
            "result": session.result,
        }
        if which not in buffers:
            raise InvalidSessionState(f"Unknown frame {which!r}; expected one of {sorted(buffers)}")
        buffer = buffers[which]
        if buffer is None:
            raise InvalidSessionState(f"No {which} frame in session state {session.state.value}")
        return self.image_service.to_png_bytes(buffer)

    def new_photo(self, session: HeadshotSession) -> HeadshotSession:
        with session.lock:
            session.clear()
        return session
