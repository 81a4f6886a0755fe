"""
Prompt Guard
============

Screens generation prompts with a moderation endpoint before they reach an
image or video provider, optionally rewriting flagged prompts.
"""

import logging
from typing import Callable

from ..api.base import BaseProvider
from ..core.config import ModerationConfig
from ..core.exceptions import ConfigurationError, ContentPolicyError

logger = logging.getLogger(__name__)


class PromptGuard:
    """
    Moderation gate for prompts.

    Args:
        config: Moderation settings
        provider_factory: Callable returning a provider by identifier
    """

    def __init__(self, config: ModerationConfig, provider_factory: Callable[[str], BaseProvider]):
        self.config = config
        self._provider_factory = provider_factory

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def check(self, prompt: str) -> str:
        """
        Return the prompt to send to the provider.

        Raises:
            ContentPolicyError: If the prompt is flagged and rewriting is off
        """
        if not self.config.enabled:
            return prompt

        moderator = self._provider_factory(self.config.provider)
        if not hasattr(moderator, "moderate"):
            raise ConfigurationError(
                f"{self.config.provider} cannot moderate prompts",
                config_key="moderation.provider",
            )

        flagged, categories = await moderator.moderate(prompt, model=self.config.moderation_model)
        if not flagged:
            return prompt

        if not self.config.sanitize_flagged:
            raise ContentPolicyError(
                "prompt flagged by moderation",
                categories=categories,
                provider=moderator.provider_name,
            )

        logger.warning(f"Prompt flagged ({', '.join(categories) or 'unspecified'}), rewriting")
        rewritten = await moderator.sanitize_prompt(prompt, model=self.config.sanitize_model)
        if not rewritten:
            raise ContentPolicyError(
                "prompt flagged by moderation and could not be rewritten",
                categories=categories,
                provider=moderator.provider_name,
            )
        return rewritten
