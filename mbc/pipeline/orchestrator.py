"""Pipeline orchestrator for one compression run.

Drives the run state machine (IDLE → PREVIEWING → PROCESSING → COMPLETE | FAILED),
schedules one task per file onto a bounded thread pool, folds per-file outcomes
into either a direct download (one file) or a ZIP archive (several files), and
publishes progress through the EventBus. It never imports the UI layer.

Key rules:
- One active run per orchestrator; starting another while PROCESSING fails.
- Batch runs never drop a file: a failed step keeps the original bytes.
- Single-file runs surface the step's error unchanged.
- Cancellation is checked between files; partial results are discarded.
"""

import concurrent.futures
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, List, Optional, Sequence, Tuple

from mbc.config.models import AppConfig
from mbc.domain.errors import (
    FileTimeoutError,
    InvalidStateError,
    MbcError,
    NoProcessableFilesError,
    RunCancelledError,
    RunInProgressError,
)
from mbc.domain.events import (
    ActionMessage,
    ArchiveStarted,
    EstimatesUpdated,
    FileCompleted,
    FileFailed,
    FileStarted,
    ProgressUpdated,
    RunCancelled,
    RunCompleted,
    RunFailed,
    RunStateChanged,
)
from mbc.domain.models import (
    FileReport,
    FileStatus,
    InputFile,
    IntensityLevel,
    Pipeline,
    RunResult,
    RunState,
    SizeEstimate,
    TranscodeResult,
    round_half_up,
)
from mbc.infrastructure.event_bus import EventBus
from mbc.pipeline.archive import build_archive
from mbc.pipeline.audio import AudioTranscoder
from mbc.pipeline.estimator import estimate_all
from mbc.pipeline.images import compress_image, convert_to_webp
from mbc.pipeline.naming import archive_entry_name, archive_name, single_output_name

BATCH_PROGRESS_CEILING = 90  # the last 10% is reserved for building the archive
POLL_INTERVAL_S = 0.5


@dataclass
class FileOutcome:
    """Result of one file's pipeline step: exactly one of result/error is set."""
    index: int
    file: InputFile
    result: Optional[TranscodeResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def batch_progress(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(completed / total * BATCH_PROGRESS_CEILING)


class Orchestrator:
    """Compression run orchestrator.

    Args:
        config: AppConfig with worker count, timeouts and per-level tables.
        event_bus: EventBus for publishing run lifecycle events.
        audio_transcoder: Optional AudioTranscoder (built from config if omitted).
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        audio_transcoder: Optional[AudioTranscoder] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.audio_transcoder = audio_transcoder or AudioTranscoder(
            timeout_s=config.general.file_timeout_s,
            debug=config.general.debug,
        )
        self.logger = logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._cancel_event = threading.Event()
        self._state = RunState.IDLE
        self._files: List[InputFile] = []
        self._pipeline = Pipeline.IMAGE
        self._level = config.general.default_level
        self._estimates: List[SizeEstimate] = []
        self._result: Optional[RunResult] = None
        self._error: Optional[BaseException] = None
        self._progress = 0
        self._runner: Optional[concurrent.futures.ThreadPoolExecutor] = None

    # ── state ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    @property
    def level(self) -> IntensityLevel:
        return self._level

    @property
    def estimates(self) -> List[SizeEstimate]:
        with self._lock:
            return list(self._estimates)

    @property
    def result(self) -> Optional[RunResult]:
        with self._lock:
            return self._result

    @property
    def error(self) -> Optional[BaseException]:
        with self._lock:
            return self._error

    @property
    def progress(self) -> int:
        with self._lock:
            return self._progress

    def _set_progress(self, percent: int) -> int:
        with self._lock:
            self._progress = percent
        return percent

    def _set_state(self, new_state: RunState):
        with self._lock:
            previous = self._state
            self._state = new_state
        if previous != new_state:
            self.logger.debug(f"State: {previous.value} -> {new_state.value}")
            self.event_bus.publish(RunStateChanged(previous=previous, current=new_state))

    def _clear_selection(self):
        self._files = []
        self._estimates = []
        self._result = None
        self._error = None
        self._progress = 0

    # ── preview ──────────────────────────────────────────────────────────────

    def select(
        self,
        files: Sequence[InputFile],
        pipeline: Optional[Pipeline] = None,
        level: Optional[IntensityLevel] = None,
    ) -> List[SizeEstimate]:
        """Selects files for the next run and returns their estimates."""
        with self._lock:
            if self._state == RunState.PROCESSING:
                raise RunInProgressError("Cannot change selection while a run is processing")
            self._clear_selection()
            if pipeline is not None:
                self._pipeline = Pipeline(pipeline)
            if level is not None:
                self._level = IntensityLevel(level)
            if not files:
                self._set_state(RunState.IDLE)
                return []
            self._files = list(files)
            self._refresh_estimates()
            self._set_state(RunState.PREVIEWING)
            return list(self._estimates)

    def change_level(self, level: IntensityLevel) -> List[SizeEstimate]:
        with self._lock:
            if self._state != RunState.PREVIEWING:
                raise InvalidStateError(f"Level can only change while previewing (state={self._state.value})")
            self._level = IntensityLevel(level)
            self._refresh_estimates()
            return list(self._estimates)

    def change_pipeline(self, pipeline: Pipeline):
        """Switching pipeline drops the selection; an active run is cancelled."""
        with self._lock:
            self._pipeline = Pipeline(pipeline)
            if self._state == RunState.PROCESSING:
                self._cancel_event.set()
                return
            self._clear_selection()
            self._set_state(RunState.IDLE)

    def _refresh_estimates(self):
        self._estimates = estimate_all(self._files, self._level, self._pipeline, self.config.audio)
        self.event_bus.publish(EstimatesUpdated(
            pipeline=self._pipeline, level=self._level, estimates=self._estimates
        ))

    # ── run control ──────────────────────────────────────────────────────────

    def cancel(self):
        """Requests cancellation; honoured before the next file starts."""
        with self._lock:
            if self._state == RunState.PROCESSING:
                self.logger.info("Cancellation requested")
                self._cancel_event.set()

    def reset(self):
        with self._lock:
            if self._state == RunState.PROCESSING:
                raise RunInProgressError("Cannot reset while a run is processing")
            self._clear_selection()
            self._set_state(RunState.IDLE)

    def _begin(self) -> Tuple[List[InputFile], Pipeline, IntensityLevel]:
        with self._lock:
            if self._state == RunState.PROCESSING:
                raise RunInProgressError("A run is already processing")
            if self._state != RunState.PREVIEWING:
                raise InvalidStateError(f"Nothing to run (state={self._state.value}); select files first")
            self._cancel_event.clear()
            self._result = None
            self._error = None
            self._progress = 0
            self._set_state(RunState.PROCESSING)
            return list(self._files), self._pipeline, self._level

    def run(self) -> RunResult:
        """Processes the current selection on the calling thread."""
        return self._execute(*self._begin())

    def start(self) -> concurrent.futures.Future:
        """Processes the current selection on a dedicated worker thread."""
        with self._lock:
            snapshot = self._begin()
            if self._runner is None:
                self._runner = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="mbc-run")
            return self._runner.submit(self._execute, *snapshot)

    def close(self):
        if self._runner is not None:
            self._runner.shutdown(wait=True)
            self._runner = None

    def _execute(self, files: List[InputFile], pipeline: Pipeline, level: IntensityLevel) -> RunResult:
        start_time = time.monotonic()
        total = len(files)
        self.logger.info(f"Run started: pipeline={pipeline.value}, level={level.value}, files={total}")
        try:
            if total == 1:
                result = self._run_single(files[0], pipeline, level)
            else:
                result = self._run_batch(files, pipeline, level)
        except RunCancelledError:
            with self._lock:
                self._clear_selection()
                self._set_state(RunState.IDLE)
            self.logger.info("Run cancelled, partial results discarded")
            raise
        except Exception as e:
            self.logger.error(f"Run failed: {e}")
            with self._lock:
                self._error = e
                self._set_state(RunState.FAILED)
            self.event_bus.publish(RunFailed(error_message=str(e)))
            raise

        with self._lock:
            self._result = result
            self._set_state(RunState.COMPLETE)
        self.logger.info(
            f"Run complete: {result.file_name} {result.original_total_bytes} -> {result.new_total_bytes} bytes "
            f"({result.reduction_percent}%), fallbacks={result.fallback_count}, "
            f"elapsed={time.monotonic() - start_time:.2f}s"
        )
        self.event_bus.publish(RunCompleted(
            file_name=result.file_name,
            original_total_bytes=result.original_total_bytes,
            new_total_bytes=result.new_total_bytes,
            fallback_count=result.fallback_count,
        ))
        return result

    # ── per-file work ────────────────────────────────────────────────────────

    def transform(self, file: InputFile, pipeline: Pipeline, level: IntensityLevel) -> TranscodeResult:
        """Runs one file through the pipeline's transform."""
        if pipeline == Pipeline.IMAGE:
            output = compress_image(file.data, self.config.image.for_level(level))
            extension = PurePath(file.name).suffix.lstrip(".").lower()
        elif pipeline == Pipeline.WEBP:
            output = convert_to_webp(file.data, self.config.image.for_level(level).quality)
            extension = "webp"
        elif pipeline == Pipeline.AUDIO:
            output = self.audio_transcoder.transcode(
                file.data, self.config.audio.for_level(level), media_type=file.media_type, name=file.name
            )
            extension = "mp3"
        else:
            # PDFs are bundled, never recompressed.
            output = file.data
            extension = "pdf"
        return TranscodeResult(
            output_bytes=output, original_byte_length=file.size_bytes, format_extension=extension
        )

    def _process_file(
        self,
        index: int,
        total: int,
        file: InputFile,
        pipeline: Pipeline,
        level: IntensityLevel,
        started: Dict[int, float],
    ) -> FileOutcome:
        started[index] = time.monotonic()
        self.event_bus.publish(FileStarted(index=index, total=total, name=file.name, original_bytes=file.size_bytes))
        try:
            result = self.transform(file, pipeline, level)
        except MbcError as e:
            return FileOutcome(index=index, file=file, error=e)
        except Exception as e:
            # Unexpected codec library failure: logged with traceback, still one file's failure.
            self.logger.exception(f"Unexpected error processing {file.name}: {e}")
            return FileOutcome(index=index, file=file, error=e)
        finally:
            if self.config.general.debug:
                self.logger.debug(f"FILE_END: {file.name} elapsed={time.monotonic() - started[index]:.2f}s")
        return FileOutcome(index=index, file=file, result=result)

    def _run_files(
        self, files: List[InputFile], pipeline: Pipeline, level: IntensityLevel
    ) -> List[FileOutcome]:
        """Runs every file on the worker pool (submit-on-demand) and returns outcomes by index."""
        total = len(files)
        workers = self.config.general.workers
        timeout_s = self.config.general.file_timeout_s
        pending = deque(enumerate(files))
        in_flight: Dict[concurrent.futures.Future, int] = {}
        started: Dict[int, float] = {}
        outcomes: Dict[int, FileOutcome] = {}
        abandoned = False

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mbc-file")

        def submit_batch():
            """Submit files up to the worker limit; nothing new once cancelled."""
            while len(in_flight) < workers and pending and not self._cancel_event.is_set():
                index, file = pending.popleft()
                future = executor.submit(self._process_file, index, total, file, pipeline, level, started)
                in_flight[future] = index

        def record(outcome: FileOutcome):
            outcomes[outcome.index] = outcome
            if total > 1:
                percent = self._set_progress(batch_progress(len(outcomes), total))
                self.event_bus.publish(ProgressUpdated(
                    percent=percent,
                    completed=len(outcomes),
                    total=total,
                    message=f"Processing... ({len(outcomes)}/{total})",
                ))

        try:
            submit_batch()
            while in_flight:
                done, _ = concurrent.futures.wait(
                    set(in_flight.keys()),
                    timeout=POLL_INTERVAL_S,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                for future in done:
                    index = in_flight.pop(future)
                    if future.cancelled():
                        continue
                    record(future.result())

                now = time.monotonic()
                for future, index in list(in_flight.items()):
                    begun = started.get(index)
                    if begun is not None and now - begun > timeout_s:
                        in_flight.pop(future)
                        abandoned = True
                        self.logger.error(f"Timeout: {files[index].name} exceeded {timeout_s:g}s, abandoning")
                        record(FileOutcome(
                            index=index, file=files[index], error=FileTimeoutError(files[index].name, timeout_s)
                        ))

                if self._cancel_event.is_set():
                    for future in in_flight:
                        future.cancel()
                submit_batch()
        finally:
            executor.shutdown(wait=not abandoned, cancel_futures=True)

        if self._cancel_event.is_set():
            self.event_bus.publish(RunCancelled(completed=len(outcomes), total=total))
            raise RunCancelledError(f"Run cancelled after {len(outcomes)}/{total} files")
        return [outcomes[i] for i in range(total)]

    def _check_upload_limit(self, pipeline: Pipeline, name: str, size: int):
        limit = self.config.general.upload_limit_mb * 1024 * 1024
        if pipeline == Pipeline.AUDIO and size > limit:
            message = (
                f"{name} is {size / 1024 / 1024:.1f}MB, above the "
                f"{self.config.general.upload_limit_mb:g}MB upload limit; try a stronger level"
            )
            self.logger.warning(message)
            self.event_bus.publish(ActionMessage(message=message, level="warning"))

    def _run_single(self, file: InputFile, pipeline: Pipeline, level: IntensityLevel) -> RunResult:
        outcome = self._run_files([file], pipeline, level)[0]
        if not outcome.ok:
            self.event_bus.publish(FileFailed(
                index=0, total=1, name=file.name, error_message=str(outcome.error), fallback=False
            ))
            raise outcome.error

        output = outcome.result.output_bytes
        name = single_output_name(pipeline, file)
        self.event_bus.publish(FileCompleted(
            index=0, total=1, name=file.name, output_name=name,
            original_bytes=file.size_bytes, new_bytes=len(output),
        ))
        self._check_upload_limit(pipeline, name, len(output))
        self._set_progress(100)
        self.event_bus.publish(ProgressUpdated(percent=100, completed=1, total=1, message="Done"))
        return RunResult(
            downloadable_bytes=output,
            file_name=name,
            original_total_bytes=file.size_bytes,
            new_total_bytes=len(output),
            pipeline=pipeline,
            files=[FileReport(
                name=file.name, output_name=name,
                original_bytes=file.size_bytes, new_bytes=len(output),
            )],
        )

    def _run_batch(self, files: List[InputFile], pipeline: Pipeline, level: IntensityLevel) -> RunResult:
        outcomes = self._run_files(files, pipeline, level)
        total = len(files)

        entries: List[Tuple[str, bytes]] = []
        reports: List[FileReport] = []
        for outcome in outcomes:
            file = outcome.file
            if outcome.ok:
                name = archive_entry_name(pipeline, file)
                data = outcome.result.output_bytes
                reports.append(FileReport(
                    name=file.name, output_name=name, original_bytes=file.size_bytes, new_bytes=len(data),
                ))
                self.event_bus.publish(FileCompleted(
                    index=outcome.index, total=total, name=file.name, output_name=name,
                    original_bytes=file.size_bytes, new_bytes=len(data),
                ))
                self._check_upload_limit(pipeline, name, len(data))
            else:
                name, data = file.name, file.data
                self.logger.warning(f"Keeping original for {file.name}: {outcome.error}")
                reports.append(FileReport(
                    name=file.name, output_name=name, original_bytes=file.size_bytes, new_bytes=len(data),
                    status=FileStatus.FALLBACK, error_message=str(outcome.error),
                ))
                self.event_bus.publish(FileFailed(
                    index=outcome.index, total=total, name=file.name,
                    error_message=str(outcome.error), fallback=True,
                ))
            entries.append((name, data))

        if not entries:
            raise NoProcessableFilesError()

        self.event_bus.publish(ArchiveStarted(entries=len(entries)))
        self.event_bus.publish(ProgressUpdated(
            percent=self.progress, completed=total, total=total, message="Building ZIP archive..."
        ))
        archive = build_archive(entries, self.config.archive)
        self._set_progress(100)
        self.event_bus.publish(ProgressUpdated(percent=100, completed=total, total=total, message="Done"))

        return RunResult(
            downloadable_bytes=archive,
            file_name=archive_name(pipeline),
            original_total_bytes=sum(f.size_bytes for f in files),
            new_total_bytes=len(archive),
            pipeline=pipeline,
            files=reports,
        )
