"""
genailib
========

Workflow orchestration for generative-media APIs: chain text, image and
video generation calls and post-process their outputs with ffmpeg.

Features:
- Ordered, typed workflow steps with ``${name}`` variable references
- Providers for Google (Imagen, Gemini Flash, Veo), OpenAI and Replicate
- Video merging and audio overlay through ffmpeg
- Optional prompt moderation and upload of results to object storage
- CLI and an HTTP job API

Quick Start:
    from genailib import Workflow, WorkflowService

    workflow = Workflow.load("workflows/story.yaml")
    async with WorkflowService() as service:
        video, output = await service.generate(workflow, {"topic": "a lighthouse"})
"""

__version__ = "0.1.0"

# Workflow engine
from .workflow import (
    FunctionType,
    StepValue,
    ValueKind,
    Workflow,
    WorkflowStep,
    WorkflowService,
    WorkflowRun,
    StepDispatcher,
    interpolate,
)

# Core utilities
from .core.config import Config, get_config, set_config, configure_logging
from .core.exceptions import (
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
)

# Collaborators
from .api import get_provider, list_providers
from .media import MediaCombiner

__all__ = [
    "__version__",

    # Workflow engine
    "FunctionType",
    "StepValue",
    "ValueKind",
    "Workflow",
    "WorkflowStep",
    "WorkflowService",
    "WorkflowRun",
    "StepDispatcher",
    "interpolate",

    # Core
    "Config",
    "get_config",
    "set_config",
    "configure_logging",

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

    # Collaborators
    "get_provider",
    "list_providers",
    "MediaCombiner",
]
