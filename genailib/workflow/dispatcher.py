"""
Step Dispatcher
===============

Executes a single workflow step: selects the handler for the step's function
type, resolves its templated fields and media references, calls the provider
or media combiner, and returns the result as a ``StepValue``.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from ..api.base import BaseProvider, Capability, Frame, GenerationResult
from ..api.factory import get_provider
from ..core.config import Config, get_config
from ..core.exceptions import (
    ConfigurationError,
    GenerationError,
    MissingFieldError,
    ReferenceNotFoundError,
    TypeMismatchError,
    UnsupportedProviderError,
)
from ..media.combiner import MediaCombiner
from ..utils.download import Downloader
from ..utils.image_utils import detect_mime_type
from ..utils.storage import Storage, get_storage
from .guard import PromptGuard
from .interpolate import bare_reference, interpolate
from .models import FunctionType, StepValue, ValueKind, WorkflowStep

logger = logging.getLogger(__name__)


ProviderFactory = Callable[[str], BaseProvider]


class StepDispatcher:
    """
    Runs workflow steps against providers and the media combiner.

    Collaborators are injectable; by default they are built from ``config``.

    Args:
        config: Library configuration (process default when omitted)
        provider_factory: Callable creating a provider from an identifier
        combiner: Media combiner
        downloader: URL downloader
        storage: Upload target for steps with ``upload`` set
        guard: Prompt moderation gate
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        provider_factory: Optional[ProviderFactory] = None,
        combiner: Optional[MediaCombiner] = None,
        downloader: Optional[Downloader] = None,
        storage: Optional[Storage] = None,
        guard: Optional[PromptGuard] = None,
    ):
        self.config = config or get_config()
        self._provider_factory = provider_factory or self._create_provider
        self._providers: Dict[str, BaseProvider] = {}

        self.combiner = combiner or MediaCombiner(self.config.media)
        self.downloader = downloader or Downloader(timeout=self.config.media.download_timeout)
        self.storage = storage if storage is not None else get_storage(self.config.storage)
        self.guard = guard or PromptGuard(self.config.moderation, self.get_provider)

        self._handlers = {
            FunctionType.TEXTS_TO_TEXT: self._texts_to_text,
            FunctionType.TEXT_TO_IMAGE: self._text_to_image,
            FunctionType.TEXT_AND_IMAGE_TO_IMAGE: self._text_and_image_to_image,
            FunctionType.TEXT_AND_IMAGES_TO_VIDEO: self._text_and_images_to_video,
            FunctionType.TEXT_AND_IMAGE_TO_VIDEO: self._text_and_image_to_video,
            FunctionType.VIDEOS_TO_VIDEO: self._videos_to_video,
            FunctionType.VIDEO_AND_AUDIO_TO_VIDEO: self._video_and_audio_to_video,
        }

    # -------------------------------------------------------------------------
    # Entry Point
    # -------------------------------------------------------------------------

    async def dispatch(
        self,
        step: WorkflowStep,
        inputs: Mapping[str, Any],
        results: Mapping[str, StepValue],
    ) -> StepValue:
        """
        Execute one step.

        Args:
            step: Step to execute
            inputs: Caller inputs (read only)
            results: Results of the steps executed so far (read only)

        Returns:
            The step's result

        Raises:
            UnsupportedFunctionTypeError: If the function type is unknown
            WorkflowError: On missing fields or unresolvable references
            CollaboratorError: If a provider, download, upload or ffmpeg fails
        """
        function_type = FunctionType.parse(step.function_type)
        value = await self._handlers[function_type](step, inputs, results)

        if step.upload:
            value = await self._upload(step, value, inputs, results)
        return value

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def _create_provider(self, name: str) -> BaseProvider:
        settings = self.config.get_provider_config(name)
        return get_provider(
            name,
            api_key=settings.get("api_key"),
            base_url=settings.get("base_url"),
            timeout=self.config.providers.timeout,
            poll_interval=self.config.providers.poll_interval,
            max_wait=self.config.providers.max_wait,
        )

    def get_provider(self, name: str) -> BaseProvider:
        """Get (and cache) the provider registered under ``name``."""
        if name not in self._providers:
            self._providers[name] = self._provider_factory(name)
        return self._providers[name]

    def _provider_for(self, step: WorkflowStep, capability: Capability, default: str) -> BaseProvider:
        name = step.provider or default
        provider = self.get_provider(name)
        if not provider.supports(capability):
            raise UnsupportedProviderError(name, capability=capability.value)
        return provider

    async def close(self) -> None:
        """Close every provider created by this dispatcher."""
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()

    # -------------------------------------------------------------------------
    # Field Resolution
    # -------------------------------------------------------------------------

    @staticmethod
    def _require(step: WorkflowStep, *names: str) -> None:
        for name in names:
            if not getattr(step, name):
                raise MissingFieldError(name, f"missing {name} in step configuration")

    @staticmethod
    def _lookup(name: str, inputs: Mapping[str, Any], results: Mapping[str, StepValue]):
        """Find a reference in results, then inputs. Returns (found, value)."""
        if name in results:
            return True, results[name]
        if name in inputs:
            return True, inputs[name]
        return False, None

    async def _prompt(self, step: WorkflowStep, inputs, results) -> str:
        prompt = interpolate(step.prompt, inputs, results)
        return await self.guard.check(prompt)

    async def resolve_media(self, reference: str, inputs: Mapping[str, Any], results: Mapping[str, StepValue]) -> bytes:
        """
        Resolve a media reference to bytes.

        A bare ``${name}`` naming a byte buffer yields the bytes. Anything
        else is interpolated into a name, which is then looked up, so
        ``${which}`` holding ``"clip"`` resolves ``clip``. Byte values are
        used as they are, text and URL values are downloaded. A literal
        http(s) URL that names no result or input is downloaded too.

        Raises:
            ReferenceNotFoundError: If the name is in neither scope
            TypeMismatchError: If the value is neither bytes nor a URL
            DownloadError: If a URL cannot be fetched
        """
        direct = bare_reference(reference)
        if direct is not None:
            found, value = self._lookup(direct, inputs, results)
            if found:
                if isinstance(value, StepValue) and value.is_bytes:
                    return value.value
                if isinstance(value, (bytes, bytearray)):
                    return bytes(value)

        name = interpolate(reference, inputs, results)
        found, value = self._lookup(name, inputs, results)
        if not found:
            if name.startswith(("http://", "https://")):
                return await self.downloader.download(name)
            raise ReferenceNotFoundError(name)

        if isinstance(value, StepValue):
            if value.kind == ValueKind.BYTES:
                return value.value
            if value.kind in (ValueKind.TEXT, ValueKind.URL):
                return await self.downloader.download(value.value)
            raise TypeMismatchError(name, value.kind.value)

        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return await self.downloader.download(value)
        raise TypeMismatchError(name, type(value).__name__)

    def resolve_frame(self, field_value: str, inputs: Mapping[str, Any], results: Mapping[str, StepValue]) -> Frame:
        """
        Resolve an image field to bytes or a URL.

        ``${name}`` naming a byte buffer yields the bytes; otherwise the
        interpolated string is passed on as a URL.
        """
        name = bare_reference(field_value)
        if name is not None:
            found, value = self._lookup(name, inputs, results)
            if found:
                if isinstance(value, StepValue) and value.is_bytes:
                    return value.value
                if isinstance(value, (bytes, bytearray)):
                    return bytes(value)
        return interpolate(field_value, inputs, results)

    @staticmethod
    def _value_from_result(result: GenerationResult) -> StepValue:
        if result.data is not None:
            if result.media_type == "image":
                media_type = detect_mime_type(result.data)
            else:
                media_type = "video/mp4"
            return StepValue.of_bytes(result.data, media_type)
        if result.url:
            return StepValue.of_url(result.url)
        if result.output is not None:
            return StepValue.of_output(result.output)
        raise GenerationError(
            "provider returned no result",
            provider=result.provider,
            job_id=result.job_id,
            prompt=result.prompt,
        )

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _texts_to_text(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "prompt")
        return StepValue.of_text(interpolate(step.prompt, inputs, results))

    async def _text_to_image(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "prompt")
        provider = self._provider_for(step, Capability.IMAGE, self.config.providers.default_image_provider)
        prompt = await self._prompt(step, inputs, results)

        logger.info(f"Step {step.id}: generating image with {provider.model}")
        result = await provider.generate_image(prompt, **step.options)
        return self._value_from_result(result)

    async def _text_and_image_to_image(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "prompt", "image")
        provider = self._provider_for(step, Capability.IMAGE_EDIT, self.config.providers.default_image_edit_provider)
        prompt = await self._prompt(step, inputs, results)
        image = self.resolve_frame(step.image, inputs, results)

        logger.info(f"Step {step.id}: editing image with {provider.model}")
        result = await provider.generate_image(prompt, image=image, **step.options)
        return self._value_from_result(result)

    async def _text_and_images_to_video(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "prompt")
        if not step.first_image or not step.last_image:
            raise MissingFieldError(
                "first_image" if not step.first_image else "last_image",
                "missing first or last image in step configuration",
            )
        return await self._generate_video(step, inputs, results, with_last_frame=True)

    async def _text_and_image_to_video(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "prompt", "first_image")
        return await self._generate_video(step, inputs, results, with_last_frame=False)

    async def _generate_video(self, step: WorkflowStep, inputs, results, with_last_frame: bool) -> StepValue:
        provider = self._provider_for(step, Capability.VIDEO, self.config.providers.default_video_provider)
        prompt = await self._prompt(step, inputs, results)
        first_frame = self.resolve_frame(step.first_image, inputs, results)
        last_frame = self.resolve_frame(step.last_image, inputs, results) if with_last_frame else None

        logger.info(f"Step {step.id}: generating video with {provider.model}")
        result = await provider.generate_video(prompt, first_frame=first_frame, last_frame=last_frame, **step.options)
        return self._value_from_result(result)

    async def _videos_to_video(self, step: WorkflowStep, inputs, results) -> StepValue:
        if not step.videos:
            raise MissingFieldError("videos", "no videos specified in step configuration")

        clips = [await self.resolve_media(ref, inputs, results) for ref in step.videos]
        logger.info(f"Step {step.id}: merging {len(clips)} videos")
        merged = await self.combiner.combine_videos(clips)
        return StepValue.of_bytes(merged, "video/mp4")

    async def _video_and_audio_to_video(self, step: WorkflowStep, inputs, results) -> StepValue:
        self._require(step, "video", "audio")
        video = await self.resolve_media(step.video, inputs, results)
        audio = await self.resolve_media(step.audio, inputs, results)

        logger.info(f"Step {step.id}: overlaying audio")
        combined = await self.combiner.overlay_audio(video, audio)
        return StepValue.of_bytes(combined, "video/mp4")

    # -------------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------------

    async def _upload(self, step: WorkflowStep, value: StepValue, inputs, results) -> StepValue:
        if not value.is_bytes:
            return value
        if self.storage is None:
            raise ConfigurationError(
                f"step {step.id} requests upload but no storage is configured",
                config_key="storage.backend",
            )

        object_name = interpolate(step.object_name, inputs, results) if step.object_name else None
        url = await self.storage.upload(value.value, object_name=object_name, content_type=value.media_type)
        return StepValue.of_url(url, value.media_type)
