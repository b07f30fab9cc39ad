"""
Tests for provider outcome interpretation.

Fal.ai queue status and result documents, and Kie.ai record documents.
"""

import json

import pytest

from timeless.models.domain import Failed, Pending, Succeeded
from timeless.services.outcomes import (
    COMPLETED_NO_OUTPUT,
    DEFAULT_FAILURE_REASON,
    ResultReady,
    extract_fal_output_url,
    extract_kie_output_url,
    interpret_fal_result,
    interpret_fal_status,
    interpret_kie_record,
)


class TestInterpretFalStatus:
    """Tests for interpret_fal_status."""

    def test_completed_needs_result_fetch(self):
        """COMPLETED is not terminal until the result is fetched."""
        assert isinstance(interpret_fal_status({"status": "COMPLETED"}), ResultReady)

    def test_failed_carries_error(self):
        """FAILED uses the provider error as reason."""
        outcome = interpret_fal_status({"status": "FAILED", "error": "NSFW content"})

        assert outcome == Failed(reason="NSFW content", provider_status="FAILED")

    def test_failed_without_error_uses_default(self):
        """FAILED without an error string gets a default reason."""
        outcome = interpret_fal_status({"status": "FAILED"})

        assert isinstance(outcome, Failed)
        assert outcome.reason == DEFAULT_FAILURE_REASON

    @pytest.mark.parametrize("status", ["IN_QUEUE", "IN_PROGRESS", "SOMETHING_NEW"])
    def test_other_statuses_pending(self, status):
        """Any other status keeps the job pending."""
        assert interpret_fal_status({"status": status}) == Pending(provider_status=status)

    def test_malformed_document_pending(self):
        """Non-dict documents read as no signal."""
        assert interpret_fal_status(["not", "a", "dict"]) == Pending()


class TestExtractFalOutputUrl:
    """Tests for extract_fal_output_url."""

    def test_video_url(self):
        assert extract_fal_output_url({"video": {"url": "https://v.mp4"}}) == "https://v.mp4"

    def test_images_list(self):
        result = {"images": [{"url": "https://a.png"}, {"url": "https://b.png"}]}
        assert extract_fal_output_url(result) == "https://a.png"

    def test_audio_file(self):
        assert extract_fal_output_url({"audio_file": {"url": "https://a.wav"}}) == "https://a.wav"

    def test_bare_video_string(self):
        assert extract_fal_output_url({"video": "https://v.mp4"}) == "https://v.mp4"

    def test_nothing_recognizable(self):
        assert extract_fal_output_url({"seed": 42}) is None


class TestInterpretFalResult:
    """Tests for interpret_fal_result."""

    def test_video_success(self):
        """Video results carry the thumbnail when present."""
        result = {"video": {"url": "https://v.mp4"}, "thumbnail": {"url": "https://t.jpg"}}

        outcome = interpret_fal_result(result, "video")

        assert outcome == Succeeded(output_url="https://v.mp4", thumbnail_url="https://t.jpg")

    def test_image_thumbnail_falls_back_to_output(self):
        """Images are their own thumbnail."""
        outcome = interpret_fal_result({"images": [{"url": "https://a.png"}]}, "image")

        assert outcome == Succeeded(output_url="https://a.png", thumbnail_url="https://a.png")

    def test_no_output_stays_pending(self):
        """A completed job with no URL stays pending."""
        assert interpret_fal_result({}, "video") == Pending(provider_status=COMPLETED_NO_OUTPUT)


class TestExtractKieOutputUrl:
    """Tests for extract_kie_output_url."""

    def test_result_json_string(self):
        """resultJson is a JSON string holding resultUrls."""
        record = {"resultJson": json.dumps({"resultUrls": ["https://out.mp4"]})}
        assert extract_kie_output_url(record) == "https://out.mp4"

    def test_result_json_unparseable_falls_through(self):
        """Broken resultJson is ignored in favour of other locations."""
        record = {"resultJson": "{not json", "response": {"resultUrls": ["https://r.png"]}}
        assert extract_kie_output_url(record) == "https://r.png"

    def test_suno_songs(self):
        record = {"response": {"sunoData": [{"audioUrl": "https://song.mp3"}]}}
        assert extract_kie_output_url(record) == "https://song.mp3"

    def test_result_image_url(self):
        record = {"response": {"resultImageUrl": "https://img.png"}}
        assert extract_kie_output_url(record) == "https://img.png"


class TestInterpretKieRecord:
    """Tests for interpret_kie_record."""

    def test_success_flag_with_result_urls(self):
        """successFlag 1 with resultUrls completes the row."""
        record = {"successFlag": 1, "response": {"resultUrls": ["https://out.png"]}}

        outcome = interpret_kie_record(record, "image")

        assert outcome == Succeeded(output_url="https://out.png", thumbnail_url="https://out.png")

    def test_success_status_video_has_no_thumbnail(self):
        record = {"status": "SUCCESS", "resultJson": '{"resultUrls": ["https://v.mp4"]}'}

        outcome = interpret_kie_record(record, "video")

        assert outcome == Succeeded(output_url="https://v.mp4")

    @pytest.mark.parametrize("flag", [2, 3])
    def test_failure_flags(self, flag):
        """successFlag 2 or 3 fails the job."""
        outcome = interpret_kie_record({"successFlag": flag}, "image")

        assert isinstance(outcome, Failed)
        assert outcome.reason == DEFAULT_FAILURE_REASON

    def test_error_message_wins(self):
        """errorMessage becomes the failure reason, even alongside success signals."""
        record = {
            "successFlag": 1,
            "errorMessage": "content policy violation",
            "response": {"resultUrls": ["https://out.png"]},
        }

        outcome = interpret_kie_record(record, "image")

        assert outcome == Failed(reason="content policy violation", provider_status="FAILED")

    @pytest.mark.parametrize("status", ["failed", "GENERATE_FAILED", "create_task_failed"])
    def test_failure_statuses(self, status):
        outcome = interpret_kie_record({"status": status}, "music")

        assert isinstance(outcome, Failed)
        assert outcome.provider_status == status.upper()

    def test_state_field_read_when_no_status(self):
        """Jobs API records report state instead of status."""
        outcome = interpret_kie_record({"state": "fail", "failMsg": "x"}, "video")

        assert outcome == Failed(reason=DEFAULT_FAILURE_REASON, provider_status="FAIL")

    def test_running_is_pending(self):
        assert interpret_kie_record({"status": "GENERATING"}, "music") == Pending(
            provider_status="GENERATING"
        )

    def test_no_status_is_in_progress(self):
        assert interpret_kie_record({}, "video") == Pending(provider_status="IN_PROGRESS")

    def test_completed_without_url_pending(self):
        """completeTime without any URL keeps the job pending."""
        record = {"completeTime": 1730000000}

        assert interpret_kie_record(record, "video") == Pending(provider_status=COMPLETED_NO_OUTPUT)

    @pytest.mark.parametrize(
        "record",
        [
            {"resultUrls": ["https://cdn.kie.ai/a.mp4"]},
            {"output": ["https://cdn.kie.ai/a.mp4"]},
            {"video": {"url": "https://cdn.kie.ai/a.mp4"}},
        ],
    )
    def test_url_without_success_flag_completes(self, record):
        """Models that never set a success flag complete once a URL is attached."""
        outcome = interpret_kie_record(record, "video")

        assert outcome == Succeeded(output_url="https://cdn.kie.ai/a.mp4")

    def test_url_with_image_type_gets_thumbnail(self):
        outcome = interpret_kie_record({"resultUrls": ["https://cdn.kie.ai/a.png"]}, "image")

        assert outcome == Succeeded(
            output_url="https://cdn.kie.ai/a.png", thumbnail_url="https://cdn.kie.ai/a.png"
        )

    def test_first_song_ready_is_still_pending(self):
        """A partial music record waits for the remaining songs."""
        record = {
            "status": "FIRST_SUCCESS",
            "response": {"sunoData": [{"audioUrl": "https://cdn.kie.ai/1.mp3"}]},
        }

        assert interpret_kie_record(record, "music") == Pending(provider_status="FIRST_SUCCESS")

    def test_failure_beats_attached_url(self):
        record = {"resultUrls": ["https://cdn.kie.ai/a.mp4"], "errorMessage": "nsfw"}

        assert isinstance(interpret_kie_record(record, "video"), Failed)

    def test_unhashable_success_flag_ignored(self):
        """Odd flag types are not a failure signal."""
        assert interpret_kie_record({"successFlag": [2]}, "image") == Pending(
            provider_status="IN_PROGRESS"
        )

    def test_non_dict_record_pending(self):
        assert interpret_kie_record("garbage", "image") == Pending()


class TestKieMusicVariations:
    """Tests for multi-song music records."""

    def test_two_songs_make_one_variation(self):
        """The first song completes the row, the second becomes a variation."""
        record = {
            "status": "SUCCESS",
            "response": {
                "sunoData": [
                    {"audioUrl": "https://one.mp3", "title": "Night Drive"},
                    {"audioUrl": "https://two.mp3", "title": "Night Drive II"},
                ]
            },
        }

        outcome = interpret_kie_record(record, "music", fallback_title="lofi beat")

        assert isinstance(outcome, Succeeded)
        assert outcome.output_url == "https://one.mp3"
        assert outcome.title == "Night Drive"
        assert len(outcome.variations) == 1
        assert outcome.variations[0].output_url == "https://two.mp3"
        assert outcome.variations[0].title == "Night Drive II"

    def test_untitled_variation_uses_fallback(self):
        record = {
            "successFlag": 1,
            "response": {
                "sunoData": [
                    {"audioUrl": "https://one.mp3"},
                    {"sourceAudioUrl": "https://two.mp3"},
                ]
            },
        }

        outcome = interpret_kie_record(record, "music", fallback_title="lofi beat")

        assert isinstance(outcome, Succeeded)
        assert outcome.title is None
        assert outcome.variations[0].title == "lofi beat (Variation 2)"

    def test_single_song_has_no_variations(self):
        record = {"successFlag": 1, "response": {"sunoData": [{"audioUrl": "https://one.mp3"}]}}

        outcome = interpret_kie_record(record, "music")

        assert outcome == Succeeded(output_url="https://one.mp3")
