import logging
import time
from typing import Callable, List, Optional, Tuple

from app.domain.entities import ExtractionLogEntry


logger = logging.getLogger(__name__)

# Step identifiers surfaced to callers for incremental progress feedback
STEP_START = "1"
STEP_VIDEO_ID = "2"
STEP_LAUNCH = "3"
STEP_NAVIGATE = "4"
STEP_CONTENT = "5"
STEP_DESCRIPTION = "6"
STEP_SCROLL = "7"
STEP_EXPAND = "8"
STEP_EMBEDDED_DATA = "9"
STEP_DESCRIPTION_LINES = "10"
STEP_PARSE = "11"
STEP_TRACKS = "12"
STEP_COMPLETE = "13"
STEP_CLOSE = "14"
STEP_ERROR = "Error"


class ExtractionLog:
    """Append-only, ordered log of one extraction run.

    Entries are immutable once recorded; ``entries`` returns a snapshot. Every entry
    is mirrored to the module logger.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._entries: List[ExtractionLogEntry] = []

    def record(self, step: str, message: str) -> ExtractionLogEntry:
        entry = ExtractionLogEntry(step=step, message=message, timestamp=int(self._clock() * 1000))
        self._entries.append(entry)
        logger.info(f"{step}: {message}")
        return entry

    @property
    def entries(self) -> Tuple[ExtractionLogEntry, ...]:
        return tuple(self._entries)

    def messages(self, step: Optional[str] = None) -> List[str]:
        return [e.message for e in self._entries if step is None or e.step == step]

    def __len__(self) -> int:
        return len(self._entries)
