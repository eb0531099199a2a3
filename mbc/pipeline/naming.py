"""Output file names. Other parts of the product key user messages off these exact names."""

from mbc.domain.models import InputFile, Pipeline

ARCHIVE_NAMES = {
    Pipeline.IMAGE: "compressed_images.zip",
    Pipeline.AUDIO: "compressed_audio_files.zip",
    Pipeline.PDF: "documents.zip",
    Pipeline.WEBP: "converted_webp_images.zip",
}


def single_output_name(pipeline: Pipeline, file: InputFile) -> str:
    pipeline = Pipeline(pipeline)
    if pipeline == Pipeline.IMAGE:
        return f"compressed_{file.name}"
    if pipeline == Pipeline.AUDIO:
        return f"{file.stem}_compressed.mp3"
    if pipeline == Pipeline.WEBP:
        return f"{file.stem}.webp"
    return file.name


def archive_entry_name(pipeline: Pipeline, file: InputFile) -> str:
    """Name of a successfully processed file inside the batch archive."""
    pipeline = Pipeline(pipeline)
    if pipeline == Pipeline.AUDIO:
        return f"{file.stem}_compressed.mp3"
    if pipeline == Pipeline.WEBP:
        return f"{file.stem}.webp"
    return file.name


def archive_name(pipeline: Pipeline) -> str:
    return ARCHIVE_NAMES[Pipeline(pipeline)]
