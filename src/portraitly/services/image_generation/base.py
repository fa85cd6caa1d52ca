"""Capability interfaces shared by all image-generation provider adapters.

Adapters implement exactly one of:
- SyncImageProvider: one call returns the image
- AsyncImageProvider: submit returns a task id, status is polled separately
- TextToImageProvider: terminal fallback seeded only from the prompt
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from portraitly.services.prompting.composer import ComposedPrompt


class ProviderMode(str, Enum):
    SYNC = "sync"
    ASYNC = "async"


class TaskState(str, Enum):
    """Normalized status of a provider-side asynchronous task."""

    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceImage:
    """Already-uploaded source photo; bytes are present once downloaded."""

    url: str
    data: Optional[bytes] = None
    content_type: str = "image/png"


@dataclass(frozen=True)
class GeneratedImage:
    """Provider output: raw bytes, or a URL the publisher downloads."""

    data: Optional[bytes] = None
    url: Optional[str] = None
    content_type: str = "image/png"

    def __post_init__(self):
        if self.data is None and not self.url:
            raise ValueError("GeneratedImage requires data or url")


@dataclass(frozen=True)
class TaskStatus:
    """One normalized status-check response."""

    state: TaskState
    result_ref: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


class SyncImageProvider(ABC):
    """Image-to-image provider answering with the result in a single call."""

    mode = ProviderMode.SYNC
    provider_id: str

    @abstractmethod
    async def transform(self, source: SourceImage, prompt: ComposedPrompt) -> GeneratedImage:
        """Transform the source image. Raises ProviderError on failure."""


class AsyncImageProvider(ABC):
    """Image-to-image provider that returns a task handle to poll."""

    mode = ProviderMode.ASYNC
    provider_id: str

    @abstractmethod
    async def submit(self, source: SourceImage, prompt: ComposedPrompt) -> str:
        """Submit a task and return its provider-issued id. Raises ProviderError on failure."""

    @abstractmethod
    async def get_task_status(self, task_id: str) -> TaskStatus:
        """Query a task once.

        Raises:
            TransientError: Transport failure or unparseable response (poll again)
            PollFailedError: The provider rejected the status query outright
        """


class TextToImageProvider(ABC):
    """Terminal fallback provider; receives no source image."""

    mode = ProviderMode.SYNC
    provider_id: str

    @abstractmethod
    async def generate(self, prompt: ComposedPrompt) -> GeneratedImage:
        """Generate an image from the prompt alone. Raises ProviderError on failure."""
