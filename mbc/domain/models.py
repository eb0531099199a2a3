import math
from enum import Enum
from pathlib import PurePath
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field

def round_half_up(value: float) -> int:
    """Rounds halves up (22.5 -> 23, 62.5 -> 63) rather than to the nearest even integer."""
    return math.floor(value + 0.5)

class IntensityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class Pipeline(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    PDF = "pdf"
    WEBP = "webp"

class RunState(str, Enum):
    IDLE = "IDLE"
    PREVIEWING = "PREVIEWING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

class FileStatus(str, Enum):
    PROCESSED = "processed"
    FALLBACK = "fallback"  # original bytes kept after a per-file failure

class InputFile(BaseModel):
    """One user-selected file. Immutable for the lifetime of a run."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    media_type: str = "application/octet-stream"
    name: str

    @computed_field
    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        """Name without its last extension (`a.b.mp3` -> `a.b`)."""
        suffix = PurePath(self.name).suffix
        return self.name[: -len(suffix)] if suffix else self.name

class SizeEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    original_bytes: int = Field(ge=0)
    estimated_bytes: float = Field(ge=0)
    estimated_reduction_percent: float = Field(ge=0, le=95)

class TranscodeResult(BaseModel):
    output_bytes: bytes = Field(repr=False)
    original_byte_length: int = Field(ge=0)
    format_extension: str

    @property
    def reduction_percent(self) -> int:
        if self.original_byte_length == 0:
            return 0
        return round_half_up((1 - len(self.output_bytes) / self.original_byte_length) * 100)

class FileReport(BaseModel):
    name: str
    output_name: str
    original_bytes: int
    new_bytes: int
    status: FileStatus = FileStatus.PROCESSED
    error_message: Optional[str] = None

class RunResult(BaseModel):
    downloadable_bytes: bytes = Field(repr=False)
    file_name: str
    original_total_bytes: int
    new_total_bytes: int
    pipeline: Pipeline
    files: List[FileReport] = Field(default_factory=list)

    @property
    def reduction_percent(self) -> int:
        if self.original_total_bytes == 0:
            return 0
        return round_half_up((1 - self.new_total_bytes / self.original_total_bytes) * 100)

    @property
    def fallback_count(self) -> int:
        return sum(1 for f in self.files if f.status == FileStatus.FALLBACK)
