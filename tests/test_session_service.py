"""
Tests for the session state machine.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from headshot_studio.errors import DecodeError, InvalidSessionState, InvalidSettings, TransformError
from headshot_studio.models.image_adjustments import AdjustmentSettings
from headshot_studio.models.session import SessionState
from headshot_studio.services.adjustment_service import AdjustmentService
from headshot_studio.services.session_service import SessionService
from headshot_studio.services.transform_provider import CLOTHING, TransformProvider


@pytest.fixture
def service():
    return SessionService()


@pytest.fixture
def loaded(service, make_png):
    """Session holding a square-mode frame built from a 300x200 photo."""
    session = service.new_session("square")
    service.load_image(session, make_png(300, 200, (90, 140, 200)))
    return session


class TestUpload:
    def test_new_session_is_empty(self, service):
        session = service.new_session()
        assert session.state == SessionState.EMPTY
        assert session.original is None

    def test_load_builds_original_and_enhanced(self, loaded):
        assert loaded.state == SessionState.IMAGE_LOADED
        assert loaded.original.size == (800, 800)
        assert loaded.enhanced.equals(loaded.original)
        assert loaded.source_size == (300, 200)

    def test_original_is_read_only(self, loaded):
        assert not loaded.original.pixels.flags.writeable

    def test_mode_switch_on_upload(self, service, loaded, make_png):
        service.load_image(loaded, make_png(100, 100), mode="portrait")
        assert loaded.original.size == (1024, 1536)
        assert loaded.frame.name == "portrait"

    def test_failed_upload_keeps_previous_image(self, service, loaded):
        previous = loaded.original
        with pytest.raises(DecodeError):
            service.load_image(loaded, b"garbage")
        assert loaded.original is previous
        assert loaded.state == SessionState.IMAGE_LOADED

    def test_new_upload_resets_settings(self, service, loaded, make_png):
        service.update_settings(loaded, brightness=40)
        service.load_image(loaded, make_png(80, 80))
        assert loaded.settings == AdjustmentSettings()
        assert loaded.state == SessionState.IMAGE_LOADED


class TestAdjusting:
    def test_update_moves_to_adjusting(self, service, loaded):
        service.update_settings(loaded, brightness=25)
        assert loaded.state == SessionState.ADJUSTING
        assert loaded.settings.brightness == 25
        assert not loaded.enhanced.equals(loaded.original)

    def test_reset_restores_original_exactly(self, service, loaded):
        service.update_settings(loaded, brightness=25, saturation=-60, blur=2.0, vignette=70)
        service.reset(loaded)
        assert loaded.state == SessionState.IMAGE_LOADED
        assert loaded.enhanced.equals(loaded.original)
        assert loaded.settings.is_identity

    def test_zeroing_sliders_restores_original_exactly(self, service, loaded):
        service.update_settings(loaded, contrast=45, vignette=30)
        service.update_settings(loaded, contrast=0, vignette=0)
        assert loaded.enhanced.equals(loaded.original)

    def test_result_depends_only_on_final_settings(self, service, make_png):
        first = service.new_session("square")
        second = service.new_session("square")
        photo = make_png(120, 90, (30, 160, 220))
        service.load_image(first, photo)
        service.load_image(second, photo)

        for change in ({"brightness": 30}, {"saturation": 20}, {"blur": 3.0},
                       {"brightness": 10}, {"blur": 1.0}):
            service.update_settings(first, **change)
        service.apply_settings(second, {"brightness": 10, "saturation": 20, "blur": 1.0})

        assert first.settings == second.settings
        assert first.enhanced.equals(second.enhanced)

    def test_invalid_update_changes_nothing(self, service, loaded):
        service.update_settings(loaded, brightness=15)
        enhanced, settings = loaded.enhanced, loaded.settings
        with pytest.raises(InvalidSettings):
            service.update_settings(loaded, contrast=500)
        assert loaded.enhanced is enhanced
        assert loaded.settings == settings

    def test_adjust_without_image(self, service):
        with pytest.raises(InvalidSessionState):
            service.update_settings(service.new_session(), brightness=5)

    def test_overlapping_adjustments_match_their_settings(self, service, loaded):
        settings = [AdjustmentSettings(blur=1.0), AdjustmentSettings(blur=12.0, vignette=30)] * 4
        renderer = AdjustmentService()
        expected = [renderer.render(loaded.original, s) for s in settings[:2]]

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(lambda s: service.apply_settings(loaded, s), settings))

        for i, enhanced in enumerate(results):
            assert enhanced.equals(expected[i % 2])
        assert loaded.enhanced.equals(renderer.render(loaded.original, loaded.settings))

    def test_reset_drops_a_transform_result(self, service, loaded, fake_provider):
        service.submit(loaded, fake_provider, "modern")
        service.reset(loaded)
        assert loaded.state == SessionState.IMAGE_LOADED
        assert loaded.result is None
        assert loaded.summary()["has_result"] is False


class TestSubmission:
    def test_submit_stores_result_at_frame_size(self, service, loaded, fake_provider):
        result = service.submit(loaded, fake_provider, "modern")
        assert loaded.state == SessionState.RESULT
        assert result.size == (800, 800)
        assert fake_provider.calls[0][1] == "modern"
        assert fake_provider.calls[0][0].startswith(b"\x89PNG")

    def test_provider_failure_rolls_back(self, service, loaded, rate_limited_provider):
        service.update_settings(loaded, brightness=5)
        with pytest.raises(TransformError) as exc:
            service.submit(loaded, rate_limited_provider, "traditional")
        assert exc.value.status == 429
        assert loaded.state == SessionState.ADJUSTING
        assert "Too many requests" in loaded.last_error

    def test_invalid_style_is_rejected_before_submitting(self, service, loaded, fake_provider):
        with pytest.raises(TransformError):
            service.submit(loaded, fake_provider, "tuxedo")
        assert loaded.state == SessionState.IMAGE_LOADED
        assert fake_provider.calls == []

    def test_stale_response_is_ignored(self, service, loaded, make_png):
        old_id = service.begin_submission(loaded, "relaxed")
        new_id = service.begin_submission(loaded, "modern")
        assert old_id != new_id

        assert service.complete_submission(loaded, old_id, make_png(64, 64)) is False
        assert loaded.state == SessionState.SUBMITTING
        assert loaded.result is None

        assert service.complete_submission(loaded, new_id, make_png(64, 64)) is True
        assert loaded.state == SessionState.RESULT

    def test_failed_resubmission_keeps_previous_result(self, service, loaded, fake_provider):
        service.submit(loaded, fake_provider, "modern")
        first_result = loaded.result

        submission_id = service.begin_submission(loaded, "relaxed")
        assert service.fail_submission(loaded, submission_id, "gateway timeout") is True

        assert loaded.state == SessionState.RESULT
        assert loaded.result is first_result
        assert loaded.summary()["has_result"] is True
        assert loaded.last_error == "gateway timeout"

    def test_late_failure_after_completion_is_ignored(self, service, loaded, make_png):
        submission_id = service.begin_submission(loaded, "modern")
        service.complete_submission(loaded, submission_id, make_png(64, 64))
        assert service.fail_submission(loaded, submission_id, "timeout") is False
        assert loaded.state == SessionState.RESULT

    def test_unreadable_result_fails_submission(self, service, loaded):
        submission_id = service.begin_submission(loaded, "modern")
        with pytest.raises(DecodeError):
            service.complete_submission(loaded, submission_id, b"not a png")
        assert loaded.state == SessionState.IMAGE_LOADED
        assert loaded.last_error

    def test_cannot_submit_without_image(self, service, fake_provider):
        with pytest.raises(InvalidSessionState):
            service.submit(service.new_session(), fake_provider, "modern")

    def test_adjusting_is_blocked_while_submitting(self, service, loaded):
        service.begin_submission(loaded, "modern")
        with pytest.raises(InvalidSessionState):
            service.update_settings(loaded, brightness=1)


class TestOutput:
    def test_export_enhanced_png(self, service, loaded):
        assert service.export_png(loaded).startswith(b"\x89PNG")

    def test_export_result_before_submission(self, service, loaded):
        with pytest.raises(InvalidSessionState):
            service.export_png(loaded, "result")

    def test_export_unknown_frame(self, service, loaded):
        with pytest.raises(InvalidSessionState):
            service.export_png(loaded, "thumbnail")

    def test_new_photo_empties_session(self, service, loaded):
        service.new_photo(loaded)
        assert loaded.state == SessionState.EMPTY
        assert loaded.original is None and loaded.enhanced is None


class TestStylePrompts:
    @pytest.mark.parametrize("style", ["traditional", "modern", "relaxed"])
    def test_each_style_has_its_own_prompt(self, style):
        prompt = TransformProvider.prompt_for(style)
        assert "corporate headshot" in prompt
        assert CLOTHING[style] in prompt

    def test_unknown_style_has_no_prompt(self):
        with pytest.raises(TransformError) as exc:
            TransformProvider.prompt_for("pirate")
        assert exc.value.status == 400
