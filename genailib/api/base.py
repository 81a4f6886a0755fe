"""
Base Provider
=============

Abstract base class for all generative-media API providers.

Providers speak REST over a shared ``httpx.AsyncClient`` and report their
results as ``GenerationResult`` objects. Long-running jobs are surfaced as a
single awaitable call: ``wait_for_completion`` polls with a bounded interval
and a maximum wait, and is cancelled together with the awaiting task.
"""

import os
import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Set, Union

import httpx

from ..core.exceptions import (
    ProviderError,
    RateLimitError,
    GenerationError,
    TimeoutError,
    UnsupportedProviderError,
)
from ..core.security import redact_api_key
from ..utils.download import download_url
from ..utils.image_utils import to_data_uri, detect_mime_type

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 300
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_WAIT = 900.0

# A frame is either raw image bytes or a URL
Frame = Union[bytes, str]


class Capability(Enum):
    """What a provider model can generate."""

    IMAGE = "image"
    IMAGE_EDIT = "image_edit"
    VIDEO = "video"


class GenerationStatus(Enum):
    """Status of a generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_provider_status(cls, status: str) -> "GenerationStatus":
        """Normalize provider-specific status strings to GenerationStatus."""
        status_lower = (status or "").lower().strip()

        if status_lower in ("completed", "succeeded", "done", "success", "finished"):
            return cls.COMPLETED

        if status_lower in ("failed", "error", "failure", "errored"):
            return cls.FAILED

        if status_lower in ("cancelled", "canceled", "aborted", "stopped"):
            return cls.CANCELLED

        if status_lower in ("pending", "queued", "in_queue", "waiting", "scheduled", "starting"):
            return cls.PENDING

        return cls.PROCESSING


@dataclass
class GenerationResult:
    """Result of an image or video generation request."""

    # Core result data: bytes, a URL, or structured provider output
    data: Optional[bytes] = None
    url: Optional[str] = None
    output: Any = None
    media_type: str = "video"
    status: GenerationStatus = GenerationStatus.PENDING

    # Generation metadata
    job_id: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    prompt: Optional[str] = None
    generation_params: Dict[str, Any] = field(default_factory=dict)

    # Timing
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    error_message: Optional[str] = None

    def is_complete(self) -> bool:
        """Check if generation completed successfully."""
        return self.status == GenerationStatus.COMPLETED

    def mark_completed(self) -> "GenerationResult":
        self.status = GenerationStatus.COMPLETED
        self.completed_at = datetime.now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "size_bytes": len(self.data) if self.data is not None else None,
            "media_type": self.media_type,
            "status": self.status.value,
            "job_id": self.job_id,
            "provider": self.provider,
            "model": self.model,
            "prompt": self.prompt,
            "generation_params": self.generation_params,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


class BaseProvider(ABC):
    """
    Abstract base class for generation providers.

    Subclasses declare ``MODEL_CAPABILITIES`` (model id -> capabilities) and
    override the generation methods for the capabilities they support.
    """

    MODEL_CAPABILITIES: Dict[str, Set[Capability]] = {}

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key (or read from environment)
            model: Model identifier (defaults to the first supported model)
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            poll_interval: Seconds between job status checks
            max_wait: Maximum seconds to wait for a background job
            client: Pre-configured HTTP client (owned by the caller)
        """
        self.api_key = api_key or self._get_api_key_from_env()
        self.model = model or self.default_model
        self.base_url = (base_url or self._get_default_base_url()).rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait

        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None
        self._client_lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

        self._validate_config()

    # -------------------------------------------------------------------------
    # Abstract Members
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @property
    @abstractmethod
    def env_key_name(self) -> str:
        """Return the environment variable name for the API key."""
        pass

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Return the default base URL for this provider."""
        pass

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------

    @property
    def supported_models(self) -> List[str]:
        """Return list of supported models."""
        return list(self.MODEL_CAPABILITIES)

    @property
    def default_model(self) -> Optional[str]:
        models = self.supported_models
        return models[0] if models else None

    @property
    def capabilities(self) -> Set[Capability]:
        """Capabilities of the configured model."""
        return set(self.MODEL_CAPABILITIES.get(self.model, set()))

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _require(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise UnsupportedProviderError(self.model or self.provider_name, capability=capability.value)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        image: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        """
        Generate an image, or edit ``image`` when given.

        Args:
            prompt: Text prompt
            image: Optional source image (bytes or URL) to edit
            **options: Provider-specific parameters

        Returns:
            GenerationResult with image bytes or an image URL
        """
        self._require(Capability.IMAGE_EDIT if image is not None else Capability.IMAGE)
        raise NotImplementedError

    async def generate_video(
        self,
        prompt: str,
        first_frame: Optional[Frame] = None,
        last_frame: Optional[Frame] = None,
        **options: Any,
    ) -> GenerationResult:
        """
        Generate a video clip from a prompt and optional boundary frames.

        When only ``first_frame`` is given the model infers the rest of the clip.

        Returns:
            GenerationResult with video bytes or a video URL
        """
        self._require(Capability.VIDEO)
        raise NotImplementedError

    async def check_status(self, job_id: str) -> GenerationResult:
        """
        Check the status of a background generation job.

        Args:
            job_id: The job ID to check

        Returns:
            Updated GenerationResult
        """
        raise ProviderError(
            f"{self.provider_name} does not run background jobs",
            provider=self.provider_name,
        )

    async def wait_for_completion(
        self,
        job_id: str,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> GenerationResult:
        """
        Wait for a background job to complete.

        Args:
            job_id: The job ID to wait for
            poll_interval: Seconds between status checks
            max_wait: Maximum seconds to wait

        Returns:
            The completed GenerationResult

        Raises:
            GenerationError: If the job failed or was cancelled upstream
            TimeoutError: If the job did not finish within ``max_wait``
        """
        poll_interval = poll_interval or self.poll_interval
        max_wait = max_wait or self.max_wait
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            result = await self.check_status(job_id)

            if result.status == GenerationStatus.COMPLETED:
                return result

            if result.status in (GenerationStatus.FAILED, GenerationStatus.CANCELLED):
                raise GenerationError(
                    f"Job {job_id} {result.status.value}: {result.error_message or 'no details'}",
                    provider=self.provider_name,
                    job_id=job_id,
                    stage="wait_for_completion",
                )

            elapsed = loop.time() - start_time
            if elapsed >= max_wait:
                raise TimeoutError(
                    f"Job {job_id} timed out after {max_wait} seconds",
                    operation="wait_for_completion",
                    timeout_seconds=max_wait,
                    collaborator=self.provider_name,
                )

            logger.debug(f"Job {job_id} status: {result.status.value}, waiting...")
            await asyncio.sleep(min(poll_interval, max(max_wait - elapsed, 0)))

    # -------------------------------------------------------------------------
    # HTTP Helpers
    # -------------------------------------------------------------------------

    def _get_api_key_from_env(self) -> Optional[str]:
        """Get API key from environment variable."""
        return os.getenv(self.env_key_name)

    def _validate_config(self) -> None:
        """Validate the provider configuration."""
        if not self.api_key:
            logger.warning(
                f"No API key found for {self.provider_name}. "
                f"Set {self.env_key_name} environment variable or pass api_key parameter."
            )

    def _lock(self) -> asyncio.Lock:
        """Client lock bound to the running event loop, created on first use."""
        loop = asyncio.get_running_loop()
        if self._client_lock is None or self._lock_loop is not loop:
            self._client_lock = asyncio.Lock()
            self._lock_loop = loop
        return self._client_lock

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        async with self._lock():
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout),
                    headers=self._get_headers(),
                    follow_redirects=True,
                )
                self._owns_client = True
            return self._client

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        return {"Authorization": f"Bearer {self.api_key}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and translate transport and HTTP failures into ProviderErrors.

        Injected clients do not carry the provider headers, so they are added per request.
        """
        client = await self._get_client()
        headers = {**self._get_headers(), **kwargs.pop("headers", {})}
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TimeoutError(
                f"{self.provider_name} request timed out",
                operation=f"{method} {redact_api_key(url)}",
                timeout_seconds=self.timeout,
                collaborator=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.provider_name} request failed: {redact_api_key(str(e))}",
                provider=self.provider_name,
            ) from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                f"{self.provider_name} rate limit exceeded",
                provider=self.provider_name,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 400:
            body = redact_api_key(response.text)
            logger.error(f"{self.provider_name} API error {response.status_code}: {body[:200]}")
            raise ProviderError(
                f"{self.provider_name} API error: {response.status_code}",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=body,
            )
        return response

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.provider_name} returned invalid JSON",
                provider=self.provider_name,
                status_code=response.status_code,
                response_body=response.text,
            ) from e

    # -------------------------------------------------------------------------
    # Frame Utilities
    # -------------------------------------------------------------------------

    @staticmethod
    def encode_bytes_to_base64(data: bytes) -> str:
        return base64.b64encode(data).decode("utf-8")

    async def frame_to_bytes(self, frame: Frame) -> bytes:
        """Return frame bytes, downloading URLs."""
        if isinstance(frame, (bytes, bytearray)):
            return bytes(frame)
        return await download_url(frame, timeout=self.timeout)

    async def frame_to_inline_image(self, frame: Frame) -> Dict[str, str]:
        """Encode a frame as a base64 image object (bytesBase64Encoded + mimeType)."""
        data = await self.frame_to_bytes(frame)
        return {
            "bytesBase64Encoded": self.encode_bytes_to_base64(data),
            "mimeType": detect_mime_type(data),
        }

    @staticmethod
    def frame_to_reference(frame: Frame) -> str:
        """URLs pass through; bytes become a data URI."""
        if isinstance(frame, (bytes, bytearray)):
            return to_data_uri(bytes(frame))
        return frame

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        async with self._lock():
            if self._client is not None and self._owns_client:
                await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
