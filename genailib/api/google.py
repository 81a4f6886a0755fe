"""
Google GenAI Provider
=====================

Direct integration with the Gemini API for Imagen and Gemini Flash image
generation and Veo video generation.

Features:
- Imagen 3 text-to-image
- Gemini 2.0 Flash image generation and image editing
- Veo 3 preview video with first/last frame control
"""

import os
import base64
import logging
from typing import Optional, Dict, Any

from .base import (
    BaseProvider,
    Capability,
    Frame,
    GenerationResult,
    GenerationStatus,
)
from .factory import register_provider
from ..core.exceptions import GenerationError

logger = logging.getLogger(__name__)


IMAGEN_3_MODEL = "imagen-3.0-generate-002"
FLASH_2_MODEL = "gemini-2.0-flash-exp-image-generation"
VEO_3_PREVIEW_MODEL = "veo-3.0-generate-preview"

# Step options -> Gemini API parameter names
PARAMETER_NAMES = {
    "aspect_ratio": "aspectRatio",
    "duration": "durationSeconds",
    "person_generation": "personGeneration",
    "sample_count": "sampleCount",
    "seed": "seed",
    "generate_audio": "generateAudio",
    "resolution": "resolution",
}


@register_provider(IMAGEN_3_MODEL, FLASH_2_MODEL, VEO_3_PREVIEW_MODEL, aliases={"google": IMAGEN_3_MODEL})
class GoogleGenAIProvider(BaseProvider):
    """
    Google Gemini API provider.

    Imagen answers synchronously; Veo runs as a long-running operation that
    is polled until done and then downloaded with the API key.
    """

    MODEL_CAPABILITIES = {
        IMAGEN_3_MODEL: {Capability.IMAGE},
        FLASH_2_MODEL: {Capability.IMAGE, Capability.IMAGE_EDIT},
        VEO_3_PREVIEW_MODEL: {Capability.VIDEO},
    }

    @property
    def provider_name(self) -> str:
        return "Google GenAI"

    @property
    def env_key_name(self) -> str:
        return "GEMINI_API_KEY"

    def _get_default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com/v1beta"

    def _get_api_key_from_env(self) -> Optional[str]:
        return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")

    def _get_headers(self) -> Dict[str, str]:
        """Gemini API takes the key in the x-goog-api-key header."""
        return {"x-goog-api-key": self.api_key or ""}

    @staticmethod
    def _build_parameters(options: Dict[str, Any]) -> Dict[str, Any]:
        return {PARAMETER_NAMES.get(k, k): v for k, v in options.items() if k != "negative_prompt"}

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        image: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        """
        Generate an image with Imagen or Gemini Flash.

        Args:
            prompt: Text prompt
            image: Source image to edit (Gemini Flash only)
            **options: Extra generation parameters (aspect_ratio, seed, ...)

        Returns:
            Completed GenerationResult with image bytes
        """
        self._require(Capability.IMAGE_EDIT if image is not None else Capability.IMAGE)
        logger.info(f"Generating image with {self.model}")

        if self.model == IMAGEN_3_MODEL:
            data, mime_type = await self._predict_image(prompt, options)
        else:
            data, mime_type = await self._generate_content_image(prompt, image, options)

        return GenerationResult(
            data=data,
            media_type="image",
            provider=self.provider_name,
            model=self.model,
            prompt=prompt,
            generation_params={"mime_type": mime_type, **options},
        ).mark_completed()

    async def _predict_image(self, prompt: str, options: Dict[str, Any]):
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, **self._build_parameters(options)},
        }
        data = await self._request_json("POST", f"{self.base_url}/models/{self.model}:predict", json=payload)

        for prediction in data.get("predictions") or []:
            encoded = prediction.get("bytesBase64Encoded")
            if encoded:
                return base64.b64decode(encoded), prediction.get("mimeType", "image/png")

        raise GenerationError(
            "Imagen returned no image",
            provider=self.provider_name,
            stage="predict",
            prompt=prompt,
        )

    async def _generate_content_image(self, prompt: str, image: Optional[Frame], options: Dict[str, Any]):
        parts = [{"text": prompt}]
        if image is not None:
            inline = await self.frame_to_inline_image(image)
            parts.append({"inlineData": {"mimeType": inline["mimeType"], "data": inline["bytesBase64Encoded"]}})

        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        if options:
            payload["generationConfig"].update(self._build_parameters(options))

        data = await self._request_json(
            "POST", f"{self.base_url}/models/{self.model}:generateContent", json=payload
        )

        for candidate in data.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    return base64.b64decode(inline["data"]), inline.get("mimeType", "image/png")

        raise GenerationError(
            "Gemini returned no image",
            provider=self.provider_name,
            stage="generateContent",
            prompt=prompt,
        )

    # -------------------------------------------------------------------------
    # Video
    # -------------------------------------------------------------------------

    async def generate_video(
        self,
        prompt: str,
        first_frame: Optional[Frame] = None,
        last_frame: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        """
        Generate a video with Veo and wait for the operation to finish.

        Args:
            prompt: Text prompt
            first_frame: Start frame (bytes or URL)
            last_frame: End frame (bytes or URL)
            **options: aspect_ratio, duration, seed, negative_prompt, ...

        Returns:
            Completed GenerationResult with the video bytes
        """
        self._require(Capability.VIDEO)

        instance: Dict[str, Any] = {"prompt": prompt}
        if first_frame is not None:
            instance["image"] = await self.frame_to_inline_image(first_frame)
        if last_frame is not None:
            instance["lastFrame"] = await self.frame_to_inline_image(last_frame)
        if options.get("negative_prompt"):
            instance["negativePrompt"] = options["negative_prompt"]

        payload = {"instances": [instance], "parameters": self._build_parameters(options)}

        logger.info(f"Generating video with {self.model}")
        data = await self._request_json(
            "POST", f"{self.base_url}/models/{self.model}:predictLongRunning", json=payload
        )

        operation = data.get("name")
        if not operation:
            raise GenerationError(
                "No operation name in response",
                provider=self.provider_name,
                stage="predictLongRunning",
                prompt=prompt,
            )

        result = await self.wait_for_completion(operation)
        if result.data is None:
            result.data = await self._download_file(result.url)

        result.prompt = prompt
        result.model = self.model
        result.generation_params = dict(options)
        return result

    async def check_status(self, job_id: str) -> GenerationResult:
        """Poll a long-running operation once."""
        data = await self._request_json("GET", f"{self.base_url}/{job_id}")
        result = GenerationResult(job_id=job_id, provider=self.provider_name, model=self.model)

        if not data.get("done"):
            result.status = GenerationStatus.PROCESSING
            return result

        if "error" in data:
            result.status = GenerationStatus.FAILED
            result.error_message = (data["error"] or {}).get("message", "Unknown error")
            return result

        return self._parse_video_response(data.get("response") or {}, result)

    def _parse_video_response(self, data: Dict[str, Any], result: GenerationResult) -> GenerationResult:
        """Parse the Veo operation response."""
        samples = (
            (data.get("generateVideoResponse") or {}).get("generatedSamples")
            or data.get("generatedVideos")
            or []
        )
        video = (samples[0].get("video") or {}) if samples else {}

        if video.get("uri"):
            result.url = video["uri"]
        elif video.get("bytesBase64Encoded"):
            result.data = base64.b64decode(video["bytesBase64Encoded"])

        if result.url or result.data is not None:
            return result.mark_completed()

        result.status = GenerationStatus.FAILED
        reasons = (data.get("generateVideoResponse") or {}).get("raiMediaFilteredReasons")
        result.error_message = "; ".join(reasons) if reasons else "No video in response"
        return result

    async def _download_file(self, uri: str) -> bytes:
        """Download a generated file; the Files API needs the API key header."""
        response = await self._request("GET", uri, follow_redirects=True)
        logger.debug(f"Downloaded {len(response.content)} bytes of video")
        return response.content
