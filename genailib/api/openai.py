"""
OpenAI Provider
===============

OpenAI Images API (gpt-image-1, DALL-E 3) plus the moderation and chat
endpoints used to screen and rewrite prompts.
"""

import base64
import logging
from typing import Optional, List, Dict, Any, Tuple

from .base import BaseProvider, Capability, Frame, GenerationResult
from .factory import register_provider
from ..core.exceptions import GenerationError, ProviderError
from ..utils.image_utils import detect_mime_type, extension_for_mime

logger = logging.getLogger(__name__)


GPT_IMAGE_1 = "gpt-image-1"
DALL_E_3 = "dall-e-3"

DEFAULT_MODERATION_MODEL = "omni-moderation-latest"
DEFAULT_SANITIZE_MODEL = "gpt-4.1-mini"

SANITIZE_SYSTEM_PROMPT = (
    "You are a prompt sanitization assistant. Your task is to rewrite image generation "
    "prompts to be safe and appropriate while maintaining the creative intent. Always "
    "respond with just the sanitized prompt, no explanations or additional text."
)

SANITIZE_USER_PROMPT = """Please rewrite the following image generation prompt to be safe and appropriate while maintaining the core creative intent. Follow these rules:
1. Replace any specific brand names, IP, or copyrighted content with generic descriptions
2. Remove or replace any potentially offensive, sexual, or violent content
3. Keep the artistic style and main subject matter intact
4. Make the description more general while preserving the creative vision
5. Ensure the prompt follows content policy guidelines
6. Keep the response concise and focused on visual elements

Original prompt: {prompt}"""

# Per-model request defaults
MODEL_DEFAULTS = {
    GPT_IMAGE_1: {"size": "1024x1024", "quality": "high", "output_format": "webp", "moderation": "low"},
    DALL_E_3: {"size": "1024x1024", "quality": "hd", "response_format": "b64_json"},
}


@register_provider(GPT_IMAGE_1, DALL_E_3, aliases={"openai": GPT_IMAGE_1})
class OpenAIProvider(BaseProvider):
    """OpenAI image generation, image editing and prompt moderation."""

    MODEL_CAPABILITIES = {
        GPT_IMAGE_1: {Capability.IMAGE, Capability.IMAGE_EDIT},
        DALL_E_3: {Capability.IMAGE},
    }

    @property
    def provider_name(self) -> str:
        return "OpenAI"

    @property
    def env_key_name(self) -> str:
        return "OPENAI_API_KEY"

    def _get_default_base_url(self) -> str:
        return "https://api.openai.com/v1"

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
        Generate an image, or edit ``image`` with gpt-image-1.

        Args:
            prompt: Text prompt
            image: Source image (bytes or URL) for an edit
            **options: size, quality, ... (override the model defaults)

        Returns:
            Completed GenerationResult with image bytes (or URL)
        """
        self._require(Capability.IMAGE_EDIT if image is not None else Capability.IMAGE)
        params = {**MODEL_DEFAULTS.get(self.model, {}), **options}

        if image is None:
            logger.info(f"Generating image with {self.model}")
            payload = {"model": self.model, "prompt": prompt, "n": 1, **params}
            data = await self._request_json("POST", f"{self.base_url}/images/generations", json=payload)
        else:
            logger.info(f"Editing image with {self.model}")
            data = await self._edit_image(prompt, image, params)

        return self._parse_image_response(data, prompt, params)

    async def _edit_image(self, prompt: str, image: Frame, params: Dict[str, Any]) -> Dict[str, Any]:
        source = await self.frame_to_bytes(image)
        mime_type = detect_mime_type(source)
        filename = f"image{extension_for_mime(mime_type) or '.png'}"

        # The edits endpoint rejects generation-only fields
        form = {"model": self.model, "prompt": prompt, "n": "1"}
        for key, value in params.items():
            if key not in ("output_format", "moderation", "response_format"):
                form[key] = str(value)

        return await self._request_json(
            "POST",
            f"{self.base_url}/images/edits",
            data=form,
            files={"image": (filename, source, mime_type)},
        )

    def _parse_image_response(self, data: Dict[str, Any], prompt: str, params: Dict[str, Any]) -> GenerationResult:
        items = data.get("data") or []
        if not items:
            raise GenerationError(
                "empty response",
                provider=self.provider_name,
                stage="images",
                prompt=prompt,
            )

        result = GenerationResult(
            media_type="image",
            provider=self.provider_name,
            model=self.model,
            prompt=prompt,
            generation_params=params,
        )
        if items[0].get("b64_json"):
            result.data = base64.b64decode(items[0]["b64_json"])
        elif items[0].get("url"):
            result.url = items[0]["url"]
        else:
            raise GenerationError(
                "Image response carries neither b64_json nor url",
                provider=self.provider_name,
                stage="images",
                prompt=prompt,
            )
        return result.mark_completed()

    # -------------------------------------------------------------------------
    # Moderation
    # -------------------------------------------------------------------------

    async def moderate(self, text: str, model: str = DEFAULT_MODERATION_MODEL) -> Tuple[bool, List[str]]:
        """
        Screen text with the moderation endpoint.

        Returns:
            Tuple of (flagged, flagged category names)
        """
        data = await self._request_json(
            "POST",
            f"{self.base_url}/moderations",
            json={"model": model, "input": text},
        )
        results = data.get("results") or []
        if not results:
            return False, []

        categories = [name for name, hit in (results[0].get("categories") or {}).items() if hit]
        return bool(results[0].get("flagged")), categories

    async def sanitize_prompt(self, prompt: str, model: str = DEFAULT_SANITIZE_MODEL) -> str:
        """Rewrite a prompt so it passes content policy while keeping its intent."""
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SANITIZE_SYSTEM_PROMPT},
                {"role": "user", "content": SANITIZE_USER_PROMPT.format(prompt=prompt)},
            ],
        }
        data = await self._request_json("POST", f"{self.base_url}/chat/completions", json=payload)

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("empty response", provider=self.provider_name)
        return (choices[0].get("message") or {}).get("content", "").strip()
