"""
API Integration Layer
=====================

Unified access to the generative-media APIs the workflow engine calls.

Supported Providers:
- Google Gemini API (Imagen 3, Gemini 2.0 Flash, Veo 3 preview)
- OpenAI (gpt-image-1, DALL-E 3, moderation)
- Replicate (Seedance 1, Luma Photon, FLUX schnell)

Usage:
    from genailib.api import get_provider

    provider = get_provider("veo-3.0-generate-preview")
    result = await provider.generate_video(
        prompt="A person walking",
        first_frame=image_bytes,
    )
"""

from .base import BaseProvider, Capability, GenerationResult, GenerationStatus
from .factory import get_provider, list_providers, is_registered, register_provider

__all__ = [
    "BaseProvider",
    "Capability",
    "GenerationResult",
    "GenerationStatus",
    "get_provider",
    "list_providers",
    "is_registered",
    "register_provider",
]
