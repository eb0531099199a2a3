import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional
from mbc.domain.models import RunState, SizeEstimate

class FileRow:
    """Display row for one file of the run."""

    def __init__(self, name: str, original_bytes: int = 0):
        self.name = name
        self.original_bytes = original_bytes
        self.new_bytes: Optional[int] = None
        self.output_name: Optional[str] = None
        self.status = "pending"  # pending | active | done | fallback | failed
        self.error_message: Optional[str] = None
        self.started_at: Optional[datetime] = None

class UIState:
    """Thread-safe state manager for the live dashboard."""

    def __init__(self, activity_feed_max_items: int = 5):
        self._lock = threading.RLock()

        self.run_state = RunState.IDLE
        self.estimates: List[SizeEstimate] = []
        self.rows: Dict[int, FileRow] = {}
        self.total_files = 0

        # Progress
        self.progress_percent = 0
        self.status_message = ""
        self.completed_count = 0
        self.fallback_count = 0
        self.failed_count = 0

        # Bytes tracking
        self.total_input_bytes = 0
        self.total_output_bytes = 0

        self.result_name: Optional[str] = None
        self.error_message: Optional[str] = None
        self.cancelled = False
        self.messages = deque(maxlen=activity_feed_max_items)
        self.processing_start_time: Optional[datetime] = None

    @property
    def space_saved_bytes(self) -> int:
        with self._lock:
            return max(0, self.total_input_bytes - self.total_output_bytes)

    @property
    def finished(self) -> bool:
        with self._lock:
            return self.run_state in (RunState.COMPLETE, RunState.FAILED) or self.cancelled

    def set_estimates(self, estimates: List[SizeEstimate]):
        with self._lock:
            self.estimates = list(estimates)

    def row(self, index: int, name: str) -> FileRow:
        with self._lock:
            if index not in self.rows:
                self.rows[index] = FileRow(name)
            return self.rows[index]

    def mark_active(self, index: int, name: str, original_bytes: int, total: int):
        with self._lock:
            self.total_files = total
            row = self.row(index, name)
            row.original_bytes = original_bytes
            row.status = "active"
            row.started_at = datetime.now()

    def mark_done(self, index: int, name: str, output_name: str, original_bytes: int, new_bytes: int):
        with self._lock:
            row = self.row(index, name)
            row.status = "done"
            row.output_name = output_name
            row.original_bytes = original_bytes
            row.new_bytes = new_bytes
            self.completed_count += 1
            self.total_input_bytes += original_bytes
            self.total_output_bytes += new_bytes

    def mark_failed(self, index: int, name: str, error_message: str, fallback: bool):
        with self._lock:
            row = self.row(index, name)
            row.status = "fallback" if fallback else "failed"
            row.error_message = error_message
            if fallback:
                self.fallback_count += 1
                self.total_input_bytes += row.original_bytes
                self.total_output_bytes += row.original_bytes
            else:
                self.failed_count += 1

    def add_message(self, message: str):
        with self._lock:
            self.messages.appendleft((datetime.now(), message))

    def active_rows(self) -> List[FileRow]:
        with self._lock:
            return [row for row in self.rows.values() if row.status == "active"]
