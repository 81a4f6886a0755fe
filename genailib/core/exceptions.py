"""
Custom Exceptions
=================

Unified exception hierarchy for the workflow engine and its collaborators.

Engine errors (``WorkflowError`` and subclasses) describe a problem with a
workflow definition or the values flowing between its steps. Collaborator
errors (``CollaboratorError`` and subclasses) wrap failures surfaced by
providers, downloads, uploads and the media combiner.
"""

from typing import Optional, Dict, Any


class GenAILibError(Exception):
    """Base exception for all genailib errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(GenAILibError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, details=details, **kwargs)


class ValidationError(GenAILibError):
    """Input/output validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Workflow Engine Errors
# =============================================================================


class WorkflowError(GenAILibError):
    """Errors raised by the step-execution engine."""


class NilWorkflowError(WorkflowError):
    """No workflow was supplied to the runner."""

    def __init__(self, message: str = "nil workflow", **kwargs):
        super().__init__(message, **kwargs)


class InvalidWorkflowError(WorkflowError):
    """The workflow definition is structurally invalid (e.g. duplicate step ids)."""

    def __init__(self, message: str, step_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if step_id is not None:
            details["step_id"] = step_id
        super().__init__(message, details=details, **kwargs)


class MissingFieldError(WorkflowError):
    """A field required by the step's function type is empty."""

    def __init__(self, field: str, message: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["field"] = field
        super().__init__(
            message or f"missing {field} in step configuration",
            details=details,
            **kwargs,
        )
        self.field = field


class ReferenceNotFoundError(WorkflowError):
    """A media reference resolves in neither the results nor the inputs."""

    def __init__(self, reference: str, **kwargs):
        details = kwargs.pop("details", {})
        details["reference"] = reference
        super().__init__(f"reference {reference} not found", details=details, **kwargs)
        self.reference = reference


class TypeMismatchError(WorkflowError):
    """A resolved reference is neither a byte buffer nor a URL string."""

    def __init__(self, reference: str, actual_type: str, expected: str = "bytes or URL", **kwargs):
        details = kwargs.pop("details", {})
        details.update({"reference": reference, "actual_type": actual_type, "expected": expected})
        super().__init__(
            f"reference {reference} is {actual_type}, expected {expected}",
            details=details,
            **kwargs,
        )
        self.reference = reference
        self.actual_type = actual_type


class UnsupportedFunctionTypeError(WorkflowError):
    """The step's function type tag is not recognised."""

    def __init__(self, function_type: str, **kwargs):
        details = kwargs.pop("details", {})
        details["function_type"] = function_type
        super().__init__(f"unsupported function type: {function_type}", details=details, **kwargs)
        self.function_type = function_type


class UnsupportedProviderError(WorkflowError):
    """The provider identifier is unknown or lacks the requested capability."""

    def __init__(self, provider: str, capability: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["provider"] = provider
        if capability:
            details["capability"] = capability
            message = f"provider {provider} does not support {capability}"
        else:
            message = f"unsupported provider: {provider}"
        super().__init__(message, details=details, **kwargs)
        self.provider = provider
        self.capability = capability


class StepError(WorkflowError):
    """
    A workflow step failed; the run was aborted.

    Carries the failing step's id, the underlying cause and a snapshot of the
    results produced by earlier steps.
    """

    def __init__(
        self,
        step_id: str,
        cause: BaseException,
        results: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["step_id"] = step_id
        if isinstance(cause, GenAILibError):
            details["cause"] = cause.to_dict()
            kwargs.setdefault("recoverable", cause.recoverable)
        else:
            details["cause"] = {"error": type(cause).__name__, "message": str(cause)}
        super().__init__(f"processing workflow step {step_id}: {cause}", details=details, **kwargs)
        self.step_id = step_id
        self.cause = cause
        self.results = dict(results or {})


# =============================================================================
# Collaborator Errors
# =============================================================================


class CollaboratorError(GenAILibError):
    """Failure surfaced by a provider, download, upload or media subprocess."""

    def __init__(self, message: str, collaborator: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if collaborator:
            details["collaborator"] = collaborator
        super().__init__(message, details=details, **kwargs)
        self.collaborator = collaborator


class ProviderError(CollaboratorError):
    """Provider/API-related errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500] if len(response_body) > 500 else response_body

        recoverable = kwargs.pop("recoverable", status_code in (429, 500, 502, 503, 504) if status_code else False)
        super().__init__(message, collaborator=provider, recoverable=recoverable, details=details, **kwargs)
        self.provider = provider
        self.status_code = status_code


class RateLimitError(ProviderError):
    """Rate limit exceeded errors."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, status_code=429, recoverable=True, details=details, **kwargs)


class ContentPolicyError(ProviderError):
    """The prompt or output violates the provider's content policy."""

    def __init__(self, message: str, categories: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", {})
        if categories:
            details["categories"] = categories
        super().__init__(message, recoverable=False, details=details, **kwargs)


class GenerationError(ProviderError):
    """A generation job finished without a usable result."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        prompt: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if job_id:
            details["job_id"] = job_id
        if stage:
            details["stage"] = stage
        if prompt:
            details["prompt"] = prompt[:200] if len(prompt) > 200 else prompt
        super().__init__(message, details=details, **kwargs)


class DownloadError(CollaboratorError):
    """Fetching a URL into memory failed."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, collaborator="download", details=details, **kwargs)


class StorageError(CollaboratorError):
    """Uploading to object storage failed."""

    def __init__(self, message: str, backend: Optional[str] = None, object_name: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if object_name:
            details["object_name"] = object_name
        super().__init__(message, collaborator=backend or "storage", details=details, **kwargs)


class MediaError(CollaboratorError):
    """The ffmpeg/ffprobe subprocess is missing or failed."""

    def __init__(self, message: str, command: Optional[str] = None, stderr: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if command:
            details["command"] = command
        if stderr:
            details["stderr"] = stderr[-1000:]
        super().__init__(message, collaborator="ffmpeg", details=details, **kwargs)


class TimeoutError(CollaboratorError):
    """Operation timeout errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, recoverable=True, details=details, **kwargs)
