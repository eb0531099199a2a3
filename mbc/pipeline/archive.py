import io
import logging
import zipfile
from typing import Dict, Iterable, Optional, Tuple

from mbc.config.models import ArchiveConfig
from mbc.domain.errors import NoProcessableFilesError

logger = logging.getLogger(__name__)

_COMPRESSION = {
    "stored": zipfile.ZIP_STORED,
    "deflated": zipfile.ZIP_DEFLATED,
}


def build_archive(entries: Iterable[Tuple[str, bytes]], config: Optional[ArchiveConfig] = None) -> bytes:
    """Bundles (name, bytes) pairs into one ZIP container.

    Duplicate names are not renamed: the last entry for a name replaces the
    earlier one and keeps the earlier position.
    """
    config = config or ArchiveConfig()
    files: Dict[str, bytes] = {}
    for name, data in entries:
        if name in files:
            logger.warning(f"Archive entry {name!r} appears more than once; keeping the last one")
        files[name] = data

    if not files:
        raise NoProcessableFilesError()

    compression = _COMPRESSION[config.compression]
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression, compresslevel=config.compress_level) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    archive = buffer.getvalue()
    logger.info(f"Archive built: {len(files)} entries, {len(archive)} bytes ({config.compression})")
    return archive
