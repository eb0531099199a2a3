import logging
from datetime import datetime
from mbc.infrastructure.event_bus import EventBus
from mbc.ui.state import UIState
from mbc.domain.models import RunState
from mbc.domain.events import (
    ActionMessage, ArchiveStarted, EstimatesUpdated,
    FileCompleted, FileFailed, FileStarted, ProgressUpdated,
    RunCancelled, RunCompleted, RunFailed, RunStateChanged,
)

logger = logging.getLogger(__name__)

class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStateChanged, self.on_state_changed)
        self.bus.subscribe(EstimatesUpdated, self.on_estimates_updated)
        self.bus.subscribe(FileStarted, self.on_file_started)
        self.bus.subscribe(FileCompleted, self.on_file_completed)
        self.bus.subscribe(FileFailed, self.on_file_failed)
        self.bus.subscribe(ProgressUpdated, self.on_progress)
        self.bus.subscribe(ArchiveStarted, self.on_archive_started)
        self.bus.subscribe(RunCompleted, self.on_run_completed)
        self.bus.subscribe(RunFailed, self.on_run_failed)
        self.bus.subscribe(RunCancelled, self.on_run_cancelled)
        self.bus.subscribe(ActionMessage, self.on_action_message)

    def on_state_changed(self, event: RunStateChanged):
        with self.state._lock:
            self.state.run_state = event.current
            if event.current == RunState.PROCESSING:
                self.state.processing_start_time = datetime.now()
                self.state.cancelled = False

    def on_estimates_updated(self, event: EstimatesUpdated):
        logger.debug(f"UI: {len(event.estimates)} estimates ({event.pipeline.value}/{event.level.value})")
        self.state.set_estimates(event.estimates)

    def on_file_started(self, event: FileStarted):
        self.state.mark_active(event.index, event.name, event.original_bytes, event.total)

    def on_file_completed(self, event: FileCompleted):
        self.state.mark_done(event.index, event.name, event.output_name, event.original_bytes, event.new_bytes)

    def on_file_failed(self, event: FileFailed):
        self.state.mark_failed(event.index, event.name, event.error_message, event.fallback)
        suffix = " (original kept)" if event.fallback else ""
        self.state.add_message(f"✗ {event.name}: {event.error_message}{suffix}")

    def on_progress(self, event: ProgressUpdated):
        with self.state._lock:
            self.state.progress_percent = event.percent
            self.state.status_message = event.message
            self.state.total_files = event.total

    def on_archive_started(self, event: ArchiveStarted):
        self.state.add_message(f"Building ZIP archive ({event.entries} entries)")

    def on_run_completed(self, event: RunCompleted):
        with self.state._lock:
            self.state.result_name = event.file_name
            self.state.progress_percent = 100

    def on_run_failed(self, event: RunFailed):
        with self.state._lock:
            self.state.error_message = event.error_message

    def on_run_cancelled(self, event: RunCancelled):
        with self.state._lock:
            self.state.cancelled = True
        self.state.add_message(f"Cancelled after {event.completed}/{event.total} files")

    def on_action_message(self, event: ActionMessage):
        self.state.add_message(event.message)
