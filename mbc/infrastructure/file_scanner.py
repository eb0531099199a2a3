import mimetypes
import os
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Tuple, Union
from mbc.domain.models import InputFile, Pipeline

PIPELINE_EXTENSIONS: Dict[Pipeline, Tuple[str, ...]] = {
    Pipeline.IMAGE: (".jpg", ".jpeg", ".png", ".webp"),
    Pipeline.WEBP: (".jpg", ".jpeg", ".png", ".webp"),
    Pipeline.PDF: (".pdf",),
    Pipeline.AUDIO: (".mp3", ".wav", ".m4a", ".aac", ".ogg", ".oga", ".flac", ".webm"),
}

# mimetypes tables differ between platforms; these are the ones that matter here.
_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".flac": "audio/flac",
    ".webm": "audio/webm",
}

def guess_media_type(name: str) -> str:
    suffix = Path(name).suffix.lower()
    if suffix in _MEDIA_TYPES:
        return _MEDIA_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"

class FileScanner:
    """Expands user-selected paths into InputFile objects for one pipeline."""

    def __init__(self, pipeline: Pipeline):
        self.pipeline = Pipeline(pipeline)
        self.extensions = PIPELINE_EXTENSIONS[self.pipeline]

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def _walk(self, root_dir: Path) -> Generator[Path, None, None]:
        for root, dirs, files in os.walk(str(root_dir)):
            # Ensure deterministic traversal: sort directories and files
            dirs.sort()
            files.sort()
            for file_name in files:
                yield Path(root) / file_name

    def iter_paths(self, paths: Iterable[Union[str, Path]]) -> Generator[Path, None, None]:
        """Yields accepted file paths.

        Directories are filtered silently. An explicitly named file the pipeline
        does not accept raises ValueError.
        """
        for entry in paths:
            path = Path(entry)
            if path.is_dir():
                for file_path in self._walk(path):
                    if self.accepts(file_path):
                        yield file_path
            elif path.is_file():
                if not self.accepts(path):
                    raise ValueError(
                        f"Unsupported file type for the {self.pipeline.value} pipeline: {path.name} "
                        f"(expected one of: {', '.join(self.extensions)})"
                    )
                yield path
            else:
                raise FileNotFoundError(f"Input path does not exist: {path}")

    def scan(self, paths: Iterable[Union[str, Path]]) -> List[InputFile]:
        """Reads every selected file into memory."""
        files = []
        for file_path in self.iter_paths(paths):
            files.append(InputFile(
                data=file_path.read_bytes(),
                media_type=guess_media_type(file_path.name),
                name=file_path.name,
            ))
        return files
