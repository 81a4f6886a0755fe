"""Shared test fixtures."""

from typing import Any, Dict, List, Optional

import pytest

from genailib.api.base import BaseProvider, Capability, GenerationResult
from genailib.core.config import Config, ProviderConfig, reset_config
from genailib.core.exceptions import DownloadError, UnsupportedProviderError
from genailib.utils.storage import Storage
from genailib.workflow.runner import WorkflowService


class FakeProvider(BaseProvider):
    """In-memory provider recording every generation call."""

    MODEL_CAPABILITIES = {
        "fake-image": {Capability.IMAGE, Capability.IMAGE_EDIT},
        "fake-video": {Capability.VIDEO},
        "fake-url": {Capability.IMAGE},
        "fake-moderator": set(),
    }

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("api_key", "test-key")
        super().__init__(**kwargs)
        self.calls: List[Dict[str, Any]] = []
        self.flagged: bool = False
        self.closed = False

    @property
    def provider_name(self) -> str:
        return "Fake"

    @property
    def env_key_name(self) -> str:
        return "FAKE_API_KEY"

    def _get_default_base_url(self) -> str:
        return "https://fake.test"

    async def generate_image(self, prompt: str, image=None, **options: Any) -> GenerationResult:
        self._require(Capability.IMAGE_EDIT if image is not None else Capability.IMAGE)
        self.calls.append({"method": "generate_image", "prompt": prompt, "image": image, "options": options})
        if self.model == "fake-url":
            return GenerationResult(url="https://cdn.test/image.png", media_type="image").mark_completed()
        return GenerationResult(data=f"image:{prompt}".encode(), media_type="image").mark_completed()

    async def generate_video(self, prompt: str, first_frame=None, last_frame=None, **options: Any) -> GenerationResult:
        self._require(Capability.VIDEO)
        self.calls.append({
            "method": "generate_video",
            "prompt": prompt,
            "first_frame": first_frame,
            "last_frame": last_frame,
            "options": options,
        })
        return GenerationResult(data=f"video:{prompt}".encode(), media_type="video").mark_completed()

    async def moderate(self, text: str, model: str = "") -> Any:
        self.calls.append({"method": "moderate", "text": text, "model": model})
        return self.flagged, ["violence"] if self.flagged else []

    async def sanitize_prompt(self, prompt: str, model: str = "") -> str:
        self.calls.append({"method": "sanitize_prompt", "prompt": prompt, "model": model})
        return f"safe {prompt}"

    async def close(self) -> None:
        self.closed = True


class ProviderRegistry:
    """Provider factory handing out one FakeProvider per identifier."""

    def __init__(self) -> None:
        self.providers: Dict[str, FakeProvider] = {}

    def __call__(self, name: str) -> FakeProvider:
        if name not in FakeProvider.MODEL_CAPABILITIES:
            raise UnsupportedProviderError(name)
        if name not in self.providers:
            self.providers[name] = FakeProvider(model=name)
        return self.providers[name]


class FakeCombiner:
    """Media combiner stand-in that joins buffers instead of running ffmpeg."""

    def __init__(self) -> None:
        self.combined: List[List[bytes]] = []
        self.overlays: List[tuple] = []

    async def combine_videos(self, videos: List[bytes]) -> bytes:
        self.combined.append(list(videos))
        return b"|".join(videos)

    async def overlay_audio(self, video: bytes, audio: bytes) -> bytes:
        self.overlays.append((video, audio))
        return video + b"+" + audio


class FakeDownloader:
    """Downloader serving canned bodies by URL."""

    def __init__(self, responses: Optional[Dict[str, bytes]] = None) -> None:
        self.responses = dict(responses or {})
        self.requested: List[str] = []

    async def download(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self.responses:
            raise DownloadError(f"Download failed with status 404: {url}", url=url, status_code=404)
        return self.responses[url]


class FakeStorage(Storage):
    """Storage recording uploads in memory."""

    backend_name = "fake"

    def __init__(self) -> None:
        self.uploads: List[Dict[str, Any]] = []

    async def upload(self, data: bytes, object_name: Optional[str] = None, content_type: Optional[str] = None) -> str:
        name = self._object_name(object_name)
        self.uploads.append({"data": data, "object_name": name, "content_type": content_type})
        return f"https://storage.test/{name}"


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from real config files, credentials and global state."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for var in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY", "REPLICATE_API_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_config() -> Config:
    """Configuration routing every default provider to fakes."""
    return Config(
        providers=ProviderConfig(
            default_image_provider="fake-image",
            default_image_edit_provider="fake-image",
            default_video_provider="fake-video",
            poll_interval=0.01,
            max_wait=0.05,
        )
    )


@pytest.fixture
def registry() -> ProviderRegistry:
    return ProviderRegistry()


@pytest.fixture
def combiner() -> FakeCombiner:
    return FakeCombiner()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader({
        "https://cdn.test/clip1.mp4": b"remote-clip-1",
        "https://cdn.test/clip2.mp4": b"remote-clip-2",
        "https://cdn.test/song.mp3": b"remote-song",
    })


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def service(test_config, registry, combiner, downloader, storage) -> WorkflowService:
    """Workflow service wired to in-memory collaborators."""
    return WorkflowService(
        test_config,
        provider_factory=registry,
        combiner=combiner,
        downloader=downloader,
        storage=storage,
    )
