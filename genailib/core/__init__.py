"""
Core Module
===========

Core utilities, configuration, and exceptions for genailib.
"""

from .config import (
    Config,
    ProviderConfig,
    MediaConfig,
    StorageConfig,
    ModerationConfig,
    LoggingConfig,
    configure_logging,
    get_config,
    set_config,
    reset_config,
)
from .exceptions import (
    GenAILibError,
    ConfigurationError,
    ValidationError,
    WorkflowError,
    NilWorkflowError,
    InvalidWorkflowError,
    MissingFieldError,
    ReferenceNotFoundError,
    TypeMismatchError,
    UnsupportedFunctionTypeError,
    UnsupportedProviderError,
    StepError,
    CollaboratorError,
    ProviderError,
    RateLimitError,
    ContentPolicyError,
    GenerationError,
    DownloadError,
    StorageError,
    MediaError,
    TimeoutError,
)
from .security import sanitize_filename, redact_api_key, validate_url

__all__ = [
    # Configuration
    "Config",
    "ProviderConfig",
    "MediaConfig",
    "StorageConfig",
    "ModerationConfig",
    "LoggingConfig",
    "configure_logging",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "GenAILibError",
    "ConfigurationError",
    "ValidationError",
    "WorkflowError",
    "NilWorkflowError",
    "InvalidWorkflowError",
    "MissingFieldError",
    "ReferenceNotFoundError",
    "TypeMismatchError",
    "UnsupportedFunctionTypeError",
    "UnsupportedProviderError",
    "StepError",
    "CollaboratorError",
    "ProviderError",
    "RateLimitError",
    "ContentPolicyError",
    "GenerationError",
    "DownloadError",
    "StorageError",
    "MediaError",
    "TimeoutError",
    # Security
    "sanitize_filename",
    "redact_api_key",
    "validate_url",
]
