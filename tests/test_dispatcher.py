"""Tests for the step dispatcher."""

import pytest

from genailib.core.config import ModerationConfig
from genailib.core.exceptions import (
    ConfigurationError,
    ContentPolicyError,
    DownloadError,
    MissingFieldError,
    ReferenceNotFoundError,
    TypeMismatchError,
    UnsupportedFunctionTypeError,
    UnsupportedProviderError,
)
from genailib.workflow.dispatcher import StepDispatcher
from genailib.workflow.guard import PromptGuard
from genailib.workflow.models import StepValue, ValueKind, WorkflowStep


@pytest.fixture
def dispatcher(service) -> StepDispatcher:
    return service.dispatcher


class TestTextSteps:
    """Tests for texts_to_text."""

    @pytest.mark.asyncio
    async def test_returns_interpolated_prompt(self, dispatcher: StepDispatcher) -> None:
        step = WorkflowStep(id="s", function_type="texts_to_text", prompt="Hi ${name}, see ${prev}")
        value = await dispatcher.dispatch(step, {"name": "Ada"}, {"prev": StepValue.of_text("notes")})
        assert value == StepValue.of_text("Hi Ada, see notes")

    @pytest.mark.asyncio
    async def test_missing_prompt(self, dispatcher: StepDispatcher) -> None:
        step = WorkflowStep(id="s", function_type="texts_to_text")
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.field == "prompt"

    @pytest.mark.asyncio
    async def test_unknown_function_type(self, dispatcher: StepDispatcher) -> None:
        step = WorkflowStep(id="s", function_type="text_to_song", prompt="x")
        with pytest.raises(UnsupportedFunctionTypeError):
            await dispatcher.dispatch(step, {}, {})


class TestImageSteps:
    """Tests for text_to_image and text_and_image_to_image."""

    @pytest.mark.asyncio
    async def test_text_to_image_default_provider(self, dispatcher, registry) -> None:
        step = WorkflowStep(
            id="img",
            function_type="text_to_image",
            prompt="a ${animal}",
            options={"aspect_ratio": "1:1"},
        )
        value = await dispatcher.dispatch(step, {"animal": "fox"}, {})

        assert value.kind == ValueKind.BYTES
        assert value.value == b"image:a fox"
        call = registry.providers["fake-image"].calls[0]
        assert call["prompt"] == "a fox"
        assert call["options"] == {"aspect_ratio": "1:1"}

    @pytest.mark.asyncio
    async def test_provider_returning_url(self, dispatcher) -> None:
        step = WorkflowStep(id="img", function_type="text_to_image", provider="fake-url", prompt="x")
        value = await dispatcher.dispatch(step, {}, {})
        assert value == StepValue.of_url("https://cdn.test/image.png")

    @pytest.mark.asyncio
    async def test_unknown_provider(self, dispatcher) -> None:
        step = WorkflowStep(id="img", function_type="text_to_image", provider="leonardo-kino-xl", prompt="x")
        with pytest.raises(UnsupportedProviderError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.provider == "leonardo-kino-xl"

    @pytest.mark.asyncio
    async def test_provider_without_capability(self, dispatcher) -> None:
        """A registered provider that cannot edit images is rejected."""
        step = WorkflowStep(
            id="edit",
            function_type="text_and_image_to_image",
            provider="fake-url",
            prompt="x",
            image="https://cdn.test/a.png",
        )
        with pytest.raises(UnsupportedProviderError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.capability == "image_edit"

    @pytest.mark.asyncio
    async def test_edit_passes_bytes_for_bare_reference(self, dispatcher, registry) -> None:
        step = WorkflowStep(id="edit", function_type="text_and_image_to_image", prompt="night", image="${start}")
        await dispatcher.dispatch(step, {}, {"start": StepValue.of_bytes(b"png-bytes")})
        assert registry.providers["fake-image"].calls[0]["image"] == b"png-bytes"

    @pytest.mark.asyncio
    async def test_edit_passes_url_string(self, dispatcher, registry) -> None:
        step = WorkflowStep(
            id="edit",
            function_type="text_and_image_to_image",
            prompt="night",
            image="https://cdn.test/${name}.png",
        )
        await dispatcher.dispatch(step, {"name": "start"}, {})
        assert registry.providers["fake-image"].calls[0]["image"] == "https://cdn.test/start.png"

    @pytest.mark.asyncio
    async def test_edit_missing_image(self, dispatcher) -> None:
        step = WorkflowStep(id="edit", function_type="text_and_image_to_image", prompt="x")
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.field == "image"


class TestVideoSteps:
    """Tests for the frame-driven video steps."""

    @pytest.mark.asyncio
    async def test_two_frames(self, dispatcher, registry) -> None:
        step = WorkflowStep(
            id="clip",
            function_type="text_and_images_to_video",
            prompt="dawn to dusk",
            first_image="${a}",
            last_image="${b}",
        )
        value = await dispatcher.dispatch(step, {"b": b"frame-b"}, {"a": StepValue.of_bytes(b"frame-a")})

        assert value == StepValue.of_bytes(b"video:dawn to dusk", "video/mp4")
        call = registry.providers["fake-video"].calls[0]
        assert call["first_frame"] == b"frame-a"
        assert call["last_frame"] == b"frame-b"

    @pytest.mark.asyncio
    async def test_single_frame(self, dispatcher, registry) -> None:
        step = WorkflowStep(
            id="clip",
            function_type="text_and_image_to_video",
            prompt="walk",
            first_image="https://cdn.test/a.png",
        )
        await dispatcher.dispatch(step, {}, {})
        call = registry.providers["fake-video"].calls[0]
        assert call["first_frame"] == "https://cdn.test/a.png"
        assert call["last_frame"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("first,last", [("", "x"), ("x", ""), ("", "")])
    async def test_missing_frames(self, dispatcher, first: str, last: str) -> None:
        step = WorkflowStep(
            id="clip",
            function_type="text_and_images_to_video",
            prompt="p",
            first_image=first,
            last_image=last,
        )
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert "missing first or last image" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_single_frame_missing(self, dispatcher) -> None:
        step = WorkflowStep(id="clip", function_type="text_and_image_to_video", prompt="p")
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.field == "first_image"


class TestMediaSteps:
    """Tests for videos_to_video and video_and_audio_to_video."""

    @pytest.mark.asyncio
    async def test_merge_in_list_order(self, dispatcher, combiner) -> None:
        results = {"a": StepValue.of_bytes(b"AAA"), "b": StepValue.of_bytes(b"BBB")}
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["b", "${a}"])

        value = await dispatcher.dispatch(step, {}, results)

        assert combiner.combined == [[b"BBB", b"AAA"]]
        assert value.value == b"BBB|AAA"

    @pytest.mark.asyncio
    async def test_results_shadow_inputs(self, dispatcher, combiner) -> None:
        """Media references look in results before inputs."""
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["clip"])
        await dispatcher.dispatch(step, {"clip": b"from-input"}, {"clip": StepValue.of_bytes(b"from-result")})
        assert combiner.combined == [[b"from-result"]]

    @pytest.mark.asyncio
    async def test_urls_are_downloaded(self, dispatcher, combiner, downloader) -> None:
        inputs = {"one": "https://cdn.test/clip1.mp4"}
        results = {"two": StepValue.of_url("https://cdn.test/clip2.mp4")}
        step = WorkflowStep(
            id="m",
            function_type="videos_to_video",
            videos=["one", "two", "https://cdn.test/clip1.mp4"],
        )

        await dispatcher.dispatch(step, inputs, results)

        assert combiner.combined == [[b"remote-clip-1", b"remote-clip-2", b"remote-clip-1"]]
        assert downloader.requested == [
            "https://cdn.test/clip1.mp4",
            "https://cdn.test/clip2.mp4",
            "https://cdn.test/clip1.mp4",
        ]

    @pytest.mark.asyncio
    async def test_interpolated_reference_name(self, dispatcher, combiner) -> None:
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["clip_${n}"])
        await dispatcher.dispatch(step, {"n": "2"}, {"clip_2": StepValue.of_bytes(b"two")})
        assert combiner.combined == [[b"two"]]

    @pytest.mark.asyncio
    async def test_indirect_reference(self, dispatcher, combiner, downloader) -> None:
        """A placeholder holding a name resolves to the value under that name."""
        step = WorkflowStep(id="merge", function_type="videos_to_video", videos=["${which}", "${which}"])
        await dispatcher.dispatch(step, {"which": "clip", "clip": b"CLIP"}, {})

        assert combiner.combined == [[b"CLIP", b"CLIP"]]
        assert downloader.requested == []

    @pytest.mark.asyncio
    async def test_indirect_reference_to_result(self, dispatcher, combiner) -> None:
        step = WorkflowStep(id="merge", function_type="videos_to_video", videos=["${which}"])
        await dispatcher.dispatch(step, {"which": "intro"}, {"intro": StepValue.of_bytes(b"INTRO")})
        assert combiner.combined == [[b"INTRO"]]

    @pytest.mark.asyncio
    async def test_placeholder_holding_url_is_downloaded(self, dispatcher, combiner, downloader) -> None:
        step = WorkflowStep(id="merge", function_type="videos_to_video", videos=["${remote}"])
        await dispatcher.dispatch(step, {"remote": "https://cdn.test/clip2.mp4"}, {})

        assert downloader.requested == ["https://cdn.test/clip2.mp4"]
        assert combiner.combined == [[b"remote-clip-2"]]

    @pytest.mark.asyncio
    async def test_missing_reference(self, dispatcher) -> None:
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["nowhere"])
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.reference == "nowhere"

    @pytest.mark.asyncio
    async def test_type_mismatch(self, dispatcher) -> None:
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["meta", "n"])
        with pytest.raises(TypeMismatchError) as exc_info:
            await dispatcher.dispatch(step, {}, {"meta": StepValue.of_output({"a": 1})})
        assert exc_info.value.reference == "meta"

        with pytest.raises(TypeMismatchError):
            await dispatcher.dispatch(
                WorkflowStep(id="m", function_type="videos_to_video", videos=["n"]), {"n": 3}, {}
            )

    @pytest.mark.asyncio
    async def test_failed_download(self, dispatcher) -> None:
        step = WorkflowStep(id="m", function_type="videos_to_video", videos=["gone"])
        with pytest.raises(DownloadError):
            await dispatcher.dispatch(step, {"gone": "https://cdn.test/missing.mp4"}, {})

    @pytest.mark.asyncio
    async def test_no_videos(self, dispatcher) -> None:
        step = WorkflowStep(id="m", function_type="videos_to_video")
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.field == "videos"

    @pytest.mark.asyncio
    async def test_overlay_audio(self, dispatcher, combiner) -> None:
        step = WorkflowStep(id="o", function_type="video_and_audio_to_video", video="${v}", audio="song")
        value = await dispatcher.dispatch(
            step,
            {"song": "https://cdn.test/song.mp3"},
            {"v": StepValue.of_bytes(b"VID")},
        )
        assert combiner.overlays == [(b"VID", b"remote-song")]
        assert value.value == b"VID+remote-song"

    @pytest.mark.asyncio
    async def test_overlay_missing_audio(self, dispatcher) -> None:
        step = WorkflowStep(id="o", function_type="video_and_audio_to_video", video="v")
        with pytest.raises(MissingFieldError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.field == "audio"


class TestUpload:
    """Tests for uploading byte results."""

    @pytest.mark.asyncio
    async def test_upload_bytes(self, dispatcher, storage) -> None:
        step = WorkflowStep(
            id="img",
            function_type="text_to_image",
            prompt="x",
            upload=True,
            object_name="frames/${topic}.png",
        )
        value = await dispatcher.dispatch(step, {"topic": "fox"}, {})

        assert value.kind == ValueKind.URL
        assert value.value == "https://storage.test/frames/fox.png"
        assert storage.uploads[0]["data"] == b"image:x"

    @pytest.mark.asyncio
    async def test_upload_default_name(self, dispatcher, storage) -> None:
        step = WorkflowStep(id="t", function_type="videos_to_video", videos=["a"], upload=True)
        await dispatcher.dispatch(step, {"a": b"clip"}, {})
        assert storage.uploads[0]["object_name"].startswith("object-")
        assert storage.uploads[0]["content_type"] == "video/mp4"

    @pytest.mark.asyncio
    async def test_text_results_not_uploaded(self, dispatcher, storage) -> None:
        step = WorkflowStep(id="t", function_type="texts_to_text", prompt="x", upload=True)
        assert (await dispatcher.dispatch(step, {}, {})).kind == ValueKind.TEXT
        assert storage.uploads == []

    @pytest.mark.asyncio
    async def test_upload_without_storage(self, test_config, registry, combiner, downloader) -> None:
        dispatcher = StepDispatcher(test_config, provider_factory=registry, combiner=combiner, downloader=downloader)
        assert dispatcher.storage is None

        step = WorkflowStep(id="img", function_type="text_to_image", prompt="x", upload=True)
        with pytest.raises(ConfigurationError):
            await dispatcher.dispatch(step, {}, {})


class TestPromptGuard:
    """Tests for prompt moderation."""

    def _dispatcher(self, test_config, registry, sanitize: bool) -> StepDispatcher:
        moderator = registry("fake-moderator")
        guard = PromptGuard(
            ModerationConfig(enabled=True, sanitize_flagged=sanitize),
            lambda name: moderator,
        )
        return StepDispatcher(test_config, provider_factory=registry, guard=guard)

    @pytest.mark.asyncio
    async def test_clean_prompt_passes(self, test_config, registry) -> None:
        dispatcher = self._dispatcher(test_config, registry, sanitize=False)
        step = WorkflowStep(id="img", function_type="text_to_image", prompt="a calm lake")

        await dispatcher.dispatch(step, {}, {})

        assert registry.providers["fake-moderator"].calls[0]["text"] == "a calm lake"
        assert registry.providers["fake-image"].calls[0]["prompt"] == "a calm lake"

    @pytest.mark.asyncio
    async def test_flagged_prompt_rejected(self, test_config, registry) -> None:
        dispatcher = self._dispatcher(test_config, registry, sanitize=False)
        registry.providers["fake-moderator"].flagged = True
        step = WorkflowStep(id="img", function_type="text_to_image", prompt="bad")

        with pytest.raises(ContentPolicyError) as exc_info:
            await dispatcher.dispatch(step, {}, {})
        assert exc_info.value.details["categories"] == ["violence"]
        assert registry.providers["fake-image"].calls == []

    @pytest.mark.asyncio
    async def test_flagged_prompt_rewritten(self, test_config, registry) -> None:
        dispatcher = self._dispatcher(test_config, registry, sanitize=True)
        registry.providers["fake-moderator"].flagged = True
        step = WorkflowStep(id="img", function_type="text_to_image", prompt="bad")

        await dispatcher.dispatch(step, {}, {})
        assert registry.providers["fake-image"].calls[0]["prompt"] == "safe bad"

    @pytest.mark.asyncio
    async def test_text_steps_not_moderated(self, test_config, registry) -> None:
        dispatcher = self._dispatcher(test_config, registry, sanitize=False)
        registry.providers["fake-moderator"].flagged = True
        step = WorkflowStep(id="t", function_type="texts_to_text", prompt="bad")

        assert (await dispatcher.dispatch(step, {}, {})).value == "bad"


class TestProviderCache:
    """Tests for provider reuse and shutdown."""

    @pytest.mark.asyncio
    async def test_providers_cached_and_closed(self, dispatcher, registry) -> None:
        assert dispatcher.get_provider("fake-image") is dispatcher.get_provider("fake-image")
        provider = registry.providers["fake-image"]

        await dispatcher.close()
        assert provider.closed
