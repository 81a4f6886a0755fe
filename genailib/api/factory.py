"""
Provider Factory
================

Registry mapping provider identifiers (model ids and aliases) to provider
classes, plus a factory for creating provider instances.
"""

import logging
from typing import Optional, List, Dict, Type

from .base import BaseProvider, Capability
from ..core.exceptions import UnsupportedProviderError

logger = logging.getLogger(__name__)

# Registry of available providers
_PROVIDERS: Dict[str, Type[BaseProvider]] = {}

# Aliases resolved to a concrete model id before construction
_ALIASES: Dict[str, str] = {}


def register_provider(*names: str, aliases: Optional[Dict[str, str]] = None):
    """
    Decorator to register a provider class under one or more identifiers.

    Args:
        *names: Identifiers (usually model ids) served by the class
        aliases: Extra identifiers mapped to one of the class's model ids
    """
    def decorator(cls: Type[BaseProvider]):
        for name in names:
            _PROVIDERS[name.lower()] = cls
        for alias, target in (aliases or {}).items():
            _PROVIDERS[alias.lower()] = cls
            _ALIASES[alias.lower()] = target
        return cls
    return decorator


def _ensure_builtin_providers() -> None:
    """Import the bundled provider modules so their decorators run."""
    from . import google, openai, replicate  # noqa: F401


def resolve_model(name: str) -> str:
    """Return the model id an identifier refers to."""
    key = name.lower()
    return _ALIASES.get(key, key)


def is_registered(name: str) -> bool:
    _ensure_builtin_providers()
    return bool(name) and name.lower() in _PROVIDERS


def get_provider_class(name: str) -> Type[BaseProvider]:
    """
    Look up the class registered for an identifier.

    Raises:
        UnsupportedProviderError: If nothing is registered under ``name``
    """
    _ensure_builtin_providers()
    provider_class = _PROVIDERS.get((name or "").lower())
    if provider_class is None:
        raise UnsupportedProviderError(name)
    return provider_class


def get_provider(
    name: str,
    api_key: Optional[str] = None,
    **kwargs,
) -> BaseProvider:
    """
    Get a provider instance.

    The instance is bound to the model ``name`` refers to; aliases such as
    ``openai`` or ``flux-schnell`` resolve to a concrete model id first.

    Args:
        name: Provider identifier (e.g. 'gpt-image-1', 'veo-3.0-generate-preview')
        api_key: Optional API key (otherwise read from environment)
        **kwargs: Additional provider arguments (timeout, client, ...)

    Returns:
        Configured provider instance

    Raises:
        UnsupportedProviderError: If the identifier is not registered
    """
    provider_class = get_provider_class(name)
    model = resolve_model(name)
    if model in provider_class.MODEL_CAPABILITIES:
        kwargs.setdefault("model", model)
    return provider_class(api_key=api_key, **kwargs)


def list_providers(capability: Optional[Capability] = None) -> List[str]:
    """
    List registered provider identifiers.

    Args:
        capability: Only list model ids offering this capability

    Returns:
        Sorted list of identifiers
    """
    _ensure_builtin_providers()
    if capability is None:
        return sorted(_PROVIDERS)

    names = []
    for name, cls in _PROVIDERS.items():
        caps = cls.MODEL_CAPABILITIES.get(resolve_model(name))
        if caps and capability in caps:
            names.append(name)
    return sorted(names)
