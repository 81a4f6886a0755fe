"""
Replicate Provider
==================

Hosted open models through Replicate's predictions API.

Features:
- Seedance 1 / 1 Lite image-to-video with first and last frame control
- Luma Photon and FLUX schnell text-to-image
- Model version lookup cached per provider instance
"""

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
from ..core.exceptions import GenerationError, ProviderError

logger = logging.getLogger(__name__)


SEEDANCE_1 = "bytedance/seedance-1"
SEEDANCE_1_LITE = "bytedance/seedance-1-lite"
PHOTON = "luma/photon"
PHOTON_FLASH = "luma/photon-flash"
FLUX_SCHNELL = "black-forest-labs/flux-schnell"


def extract_output_url(output: Any) -> Any:
    """
    Pull the media URL out of a prediction output.

    Lists yield their first http(s) entry and dicts their ``url`` key;
    anything else is returned unchanged.
    """
    if isinstance(output, list):
        if output and isinstance(output[0], str) and output[0].startswith("http"):
            return output[0]
    elif isinstance(output, dict):
        if isinstance(output.get("url"), str):
            return output["url"]
    return output


@register_provider(
    SEEDANCE_1,
    SEEDANCE_1_LITE,
    PHOTON,
    PHOTON_FLASH,
    FLUX_SCHNELL,
    aliases={"flux-schnell": FLUX_SCHNELL, "replicate": SEEDANCE_1_LITE},
)
class ReplicateProvider(BaseProvider):
    """
    Replicate provider for hosted image and video models.

    Every call creates a prediction against the model's current version and
    polls it until it succeeds; outputs are returned as URLs.
    """

    MODEL_CAPABILITIES = {
        SEEDANCE_1: {Capability.VIDEO},
        SEEDANCE_1_LITE: {Capability.VIDEO},
        PHOTON: {Capability.IMAGE},
        PHOTON_FLASH: {Capability.IMAGE},
        FLUX_SCHNELL: {Capability.IMAGE},
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._versions: Dict[str, str] = {}

    @property
    def provider_name(self) -> str:
        return "Replicate"

    @property
    def env_key_name(self) -> str:
        return "REPLICATE_API_TOKEN"

    def _get_default_base_url(self) -> str:
        return "https://api.replicate.com/v1"

    def _get_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Token {self.api_key}"}

    # -------------------------------------------------------------------------
    # Predictions
    # -------------------------------------------------------------------------

    async def get_model_version(self, model: str) -> str:
        """Resolve (and cache) the version id of a model."""
        if model in self._versions:
            return self._versions[model]

        info = await self._request_json("GET", f"{self.base_url}/models/{model}")
        version = (info.get("default_version") or {}).get("id") or (info.get("latest_version") or {}).get("id")
        if not version:
            raise ProviderError(f"model version not found for {model}", provider=self.provider_name)

        self._versions[model] = version
        return version

    async def run(self, prompt: str, model: Optional[str] = None, **inputs: Any) -> GenerationResult:
        """
        Create a prediction and wait for it to finish.

        Args:
            prompt: Text prompt
            model: Model id (defaults to the configured model)
            **inputs: Extra model inputs merged over the prompt

        Returns:
            Completed GenerationResult; ``output`` holds the raw prediction
            output and ``url`` the extracted media URL
        """
        model = model or self.model
        version = await self.get_model_version(model)
        payload = {"version": version, "input": {"prompt": prompt, **inputs}}

        logger.info(f"Creating Replicate prediction for {model}")
        prediction = await self._request_json("POST", f"{self.base_url}/predictions", json=payload)

        job_id = prediction.get("id")
        if not job_id:
            raise GenerationError("No prediction id in response", provider=self.provider_name, prompt=prompt)

        result = self._parse_prediction(prediction)
        if not result.is_complete():
            result = await self.wait_for_completion(job_id)

        result.model = model
        result.prompt = prompt
        result.generation_params = {
            k: v for k, v in inputs.items() if not (isinstance(v, str) and v.startswith("data:"))
        }
        return result

    async def check_status(self, job_id: str) -> GenerationResult:
        """Check prediction status."""
        prediction = await self._request_json("GET", f"{self.base_url}/predictions/{job_id}")
        return self._parse_prediction(prediction)

    def _parse_prediction(self, prediction: Dict[str, Any]) -> GenerationResult:
        result = GenerationResult(
            job_id=prediction.get("id"),
            provider=self.provider_name,
            status=GenerationStatus.from_provider_status(prediction.get("status", "")),
        )

        if result.status == GenerationStatus.COMPLETED:
            result.output = prediction.get("output")
            url = extract_output_url(result.output)
            if isinstance(url, str):
                result.url = url
            result.mark_completed()
        elif result.status == GenerationStatus.FAILED:
            result.error_message = prediction.get("error") or "Failed"

        return result

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        image: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        self._require(Capability.IMAGE_EDIT if image is not None else Capability.IMAGE)
        result = await self.run(prompt, **options)
        result.media_type = "image"
        return result

    async def generate_video(
        self,
        prompt: str,
        first_frame: Optional[Frame] = None,
        last_frame: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        """
        Generate a video with Seedance.

        Frames are sent as URLs or data URIs in the ``image`` and
        ``last_frame_image`` inputs; options such as duration, resolution,
        aspect_ratio, fps, camera_fixed and seed are passed through.
        """
        self._require(Capability.VIDEO)

        inputs = dict(options)
        if first_frame is not None:
            inputs["image"] = self.frame_to_reference(first_frame)
        if last_frame is not None:
            inputs["last_frame_image"] = self.frame_to_reference(last_frame)

        result = await self.run(prompt, **inputs)
        result.media_type = "video"
        return result
