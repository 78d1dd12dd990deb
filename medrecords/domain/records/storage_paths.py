from __future__ import annotations

import re
import threading
import time
from typing import Callable, Optional

from medrecords.core.utils.filename_utils import sanitize_filename


class MonotonicMillisClock:
    """
    Wall-clock milliseconds that never repeat or go backwards within the process.

    Two reads in the same millisecond (or after a clock step back) return
    last + 1, so paths derived from it stay unique across files and retries.
    """

    def __init__(self, source: Optional[Callable[[], float]] = None):
        self._source = source or time.time
        self._last = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            candidate = int(self._source() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate


default_clock = MonotonicMillisClock()

# One storage path segment that is also safe inside a public URL.
PATIENT_SEGMENT_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")


def is_safe_patient_segment(patient_id: str) -> bool:
    return bool(PATIENT_SEGMENT_RE.fullmatch(str(patient_id or "")))


def build_storage_path(prefix: str, patient_id: str, timestamp_ms: int, filename: str) -> str:
    patient = str(patient_id or "").strip()
    if not is_safe_patient_segment(patient):
        raise ValueError(f"Invalid patient_id for storage path: {patient_id!r}")
    return f"{prefix}/{patient}/{timestamp_ms}_{sanitize_filename(filename)}"
