"""
Workflow Models
===============

Data model for workflow definitions and the values flowing between steps.

A workflow is an ordered list of steps. Each step names a function type (what
kind of transformation it performs), an optional provider, and templated
fields that may reference caller inputs or earlier results as ``${name}``.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

import yaml

from ..core.exceptions import (
    InvalidWorkflowError,
    UnsupportedFunctionTypeError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class FunctionType(Enum):
    """Kinds of transformation a step performs. Values are the wire tags."""

    TEXTS_TO_TEXT = "texts_to_text"
    TEXT_TO_IMAGE = "text_to_image"
    TEXT_AND_IMAGE_TO_IMAGE = "text_and_image_to_image"
    TEXT_AND_IMAGES_TO_VIDEO = "text_and_images_to_video"
    TEXT_AND_IMAGE_TO_VIDEO = "text_and_image_to_video"
    VIDEOS_TO_VIDEO = "videos_to_video"
    VIDEO_AND_AUDIO_TO_VIDEO = "video_and_audio_to_video"

    @classmethod
    def parse(cls, tag: Union[str, "FunctionType"]) -> "FunctionType":
        """
        Parse a tag string.

        Raises:
            UnsupportedFunctionTypeError: If the tag is not recognised
        """
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            raise UnsupportedFunctionTypeError(str(tag)) from None


class ValueKind(Enum):
    """Kinds of step result."""

    TEXT = "text"
    BYTES = "bytes"
    URL = "url"
    OUTPUT = "output"


@dataclass(frozen=True)
class StepValue:
    """
    Typed result of a workflow step.

    ``value`` holds a ``str`` for TEXT and URL, ``bytes`` for BYTES and the
    provider's structured output for OUTPUT.
    """

    kind: ValueKind
    value: Any
    media_type: Optional[str] = None

    @classmethod
    def of_text(cls, text: str) -> "StepValue":
        return cls(ValueKind.TEXT, text)

    @classmethod
    def of_bytes(cls, data: bytes, media_type: Optional[str] = None) -> "StepValue":
        return cls(ValueKind.BYTES, bytes(data), media_type)

    @classmethod
    def of_url(cls, url: str, media_type: Optional[str] = None) -> "StepValue":
        return cls(ValueKind.URL, url, media_type)

    @classmethod
    def of_output(cls, output: Any) -> "StepValue":
        return cls(ValueKind.OUTPUT, output)

    @classmethod
    def from_raw(cls, value: Any) -> "StepValue":
        """Wrap a plain Python value (bytes, URL string, text, anything else)."""
        if isinstance(value, StepValue):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.of_bytes(value)
        if isinstance(value, str):
            if value.startswith(("http://", "https://")):
                return cls.of_url(value)
            return cls.of_text(value)
        return cls.of_output(value)

    @property
    def is_bytes(self) -> bool:
        return self.kind == ValueKind.BYTES

    def render(self) -> str:
        """String form used by interpolation; byte buffers render as ``<N bytes>``."""
        if self.kind == ValueKind.BYTES:
            return f"<{len(self.value)} bytes>"
        if self.kind in (ValueKind.TEXT, ValueKind.URL):
            return self.value
        return str(self.value)

    def describe(self) -> Dict[str, Any]:
        """JSON-safe summary (byte buffers reported by size)."""
        summary: Dict[str, Any] = {"kind": self.kind.value}
        if self.kind == ValueKind.BYTES:
            summary["size_bytes"] = len(self.value)
        else:
            summary["value"] = self.value if self.kind != ValueKind.OUTPUT else _json_safe(self.value)
        if self.media_type:
            summary["media_type"] = self.media_type
        return summary

    def __str__(self) -> str:
        return self.render()


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


# Step fields holding plain strings
STRING_FIELDS = ("provider", "prompt", "image", "first_image", "last_image", "video", "audio", "object_name")


@dataclass
class WorkflowStep:
    """A single step in a workflow."""

    id: str
    function_type: str
    provider: str = ""

    # Templated fields
    prompt: str = ""
    image: str = ""
    first_image: str = ""
    last_image: str = ""
    video: str = ""
    audio: str = ""
    videos: List[str] = field(default_factory=list)

    # Forwarded to the provider call
    options: Dict[str, Any] = field(default_factory=dict)

    # Publish byte results through the configured storage
    upload: bool = False
    object_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        """Create a step from a mapping (as parsed from YAML/JSON)."""
        if not isinstance(data, dict):
            raise ValidationError("workflow step must be a mapping", field="steps", value=data)

        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown step fields: {', '.join(sorted(unknown))}")

        videos = data.get("videos") or []
        if isinstance(videos, str):
            videos = [videos]

        options = data.get("options") or {}
        if not isinstance(options, dict):
            raise ValidationError("step options must be a mapping", field="options", value=options)

        kwargs = {name: str(data.get(name) or "") for name in STRING_FIELDS}
        return cls(
            id=str(data.get("id") or ""),
            function_type=str(data.get("function_type") or ""),
            videos=[str(v) for v in videos],
            options=dict(options),
            upload=bool(data.get("upload", False)),
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a mapping, omitting empty optional fields."""
        data: Dict[str, Any] = {"id": self.id, "function_type": self.function_type}
        for name in STRING_FIELDS:
            value = getattr(self, name)
            if value:
                data[name] = value
        if self.videos:
            data["videos"] = list(self.videos)
        if self.options:
            data["options"] = dict(self.options)
        if self.upload:
            data["upload"] = True
        return data


@dataclass
class Workflow:
    """An ordered set of steps plus a free-form output label."""

    name: str = ""
    steps: List[WorkflowStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    output: str = ""

    def validate(self, check_function_types: bool = False) -> None:
        """
        Check the workflow before execution.

        Args:
            check_function_types: Also parse every step's function type

        Raises:
            InvalidWorkflowError: On an empty or duplicate step id
            UnsupportedFunctionTypeError: On an unknown tag (when checked)
        """
        seen = set()
        for index, step in enumerate(self.steps):
            if not step.id:
                raise InvalidWorkflowError(f"step {index} has an empty id")
            if step.id in seen:
                raise InvalidWorkflowError(f"duplicate step id: {step.id}", step_id=step.id)
            seen.add(step.id)
            if check_function_types:
                FunctionType.parse(step.function_type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        """Create a workflow from a mapping."""
        if not isinstance(data, dict):
            raise ValidationError("workflow definition must be a mapping", value=data)

        steps = data.get("steps") or []
        if not isinstance(steps, list):
            raise ValidationError("steps must be a list", field="steps", value=steps)

        created_at = data.get("created_at")
        if isinstance(created_at, str):
            try:
                created_at = datetime.fromisoformat(created_at)
            except ValueError:
                raise ValidationError(
                    "created_at must be an ISO 8601 timestamp",
                    field="created_at",
                    value=created_at,
                ) from None

        return cls(
            name=str(data.get("name") or ""),
            steps=[WorkflowStep.from_dict(s) for s in steps],
            created_at=created_at if isinstance(created_at, datetime) else datetime.now(),
            output=str(data.get("output") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "steps": [s.to_dict() for s in self.steps],
            "created_at": self.created_at.isoformat(),
        }
        if self.output:
            data["output"] = self.output
        return data

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Workflow":
        """
        Load a workflow from a YAML or JSON file (JSON when the suffix is .json).

        Raises:
            ValidationError: If the file does not hold a valid definition
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            try:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ValidationError(f"Cannot parse workflow file {path}: {e}") from e

        workflow = cls.from_dict(data or {})
        logger.debug(f"Loaded workflow '{workflow.name}' with {len(workflow.steps)} steps from {path}")
        return workflow

    def save(self, path: Union[str, Path]) -> str:
        """Save the workflow as YAML, or JSON when the suffix is .json."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                json.dump(self.to_dict(), f, indent=2)
            else:
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)

        return str(path)
