"""Domain events for the media compression pipelines.

Events flow through the EventBus from the orchestrator (publisher) to the UI
layer and any other subscriber. They carry only plain data, never the file
payloads themselves.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from typing import List, Optional
from pydantic import BaseModel
from .models import IntensityLevel, Pipeline, RunState, SizeEstimate


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class RunStateChanged(Event):
    """Emitted on every orchestrator state transition."""

    previous: RunState
    current: RunState


class EstimatesUpdated(Event):
    """Emitted after a selection or level change produced new estimates."""

    pipeline: Pipeline
    level: IntensityLevel
    estimates: List[SizeEstimate]


class FileEvent(Event):
    """Base class for events about a single file of the run."""

    index: int
    total: int
    name: str


class FileStarted(FileEvent):
    """Emitted when a worker picks up a file."""

    original_bytes: int


class FileCompleted(FileEvent):
    """Emitted when a file's pipeline step produced output."""

    output_name: str
    original_bytes: int
    new_bytes: int


class FileFailed(FileEvent):
    """Emitted when a file's pipeline step failed.

    In a batch the original bytes are kept (`fallback=True`).
    """

    error_message: str
    fallback: bool = False


class ProgressUpdated(Event):
    """Overall run progress (0-100) with a short status line."""

    percent: int
    completed: int
    total: int
    message: str = ""


class ArchiveStarted(Event):
    """Emitted right before the ZIP container is built."""

    entries: int


class RunCompleted(Event):
    file_name: str
    original_total_bytes: int
    new_total_bytes: int
    fallback_count: int = 0


class RunFailed(Event):
    error_message: str


class RunCancelled(Event):
    """Partial results were discarded."""

    completed: int = 0
    total: int = 0


class ActionMessage(Event):
    """User-facing advisory (e.g. output above the upload limit)."""

    message: str
    level: Optional[str] = "info"
