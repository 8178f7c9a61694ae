"""Start/end frame selection over an extracted frame index."""

import logging
import math
import time
from enum import Enum
from typing import Callable

from frame_timeline.models import Frame, FrameIndex

logger = logging.getLogger(__name__)

# Minimum seconds between two visual sync callbacks while scrubbing
SCROLL_INTERVAL = 0.1


class SelectionError(Exception):
    """Invalid selection request."""
    pass


class SelectionState(str, Enum):
    EMPTY = "empty"
    READY = "ready"
    START_SELECTED = "start_selected"
    RANGE_SELECTED = "range_selected"


def frame_index_at(position: float, count: int) -> int:
    """
    Map a position along the track (0.0 - 1.0) to a frame index.

    The right edge maps to the last frame, never to count.
    """
    if count <= 0:
        raise SelectionError("No frames loaded")
    if not math.isfinite(position):
        raise SelectionError(f"Invalid position: {position}")
    position = min(max(position, 0.0), 1.0)
    return min(math.floor(position * count), count - 1)


class ScrollThrottle:
    """Let through at most one call per interval."""

    def __init__(self, interval: float = SCROLL_INTERVAL, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._last: float | None = None

    def ready(self) -> bool:
        now = self.clock()
        if self._last is not None and now - self._last < self.interval:
            return False
        self._last = now
        return True

    def reset(self) -> None:
        self._last = None


class TimelineSelection:
    """
    Selection state for one loaded frame index.

    The first pick sets the start frame. A second pick earlier than the
    start replaces it; otherwise it becomes the end frame. Any pick after
    a complete range starts a new range.

    Scrubbing moves the current frame on every pointer move while a
    press is active. The on_scroll callback, used to keep the view in
    sync, is throttled so fast drags do not flood the renderer.
    """

    def __init__(
        self,
        on_reset: Callable[[], None] | None = None,
        on_scroll: Callable[[Frame], None] | None = None,
        throttle: ScrollThrottle | None = None
    ):
        self.on_reset = on_reset
        self.on_scroll = on_scroll
        self.throttle = throttle or ScrollThrottle()
        self.index: FrameIndex | None = None
        self.start_frame: Frame | None = None
        self.end_frame: Frame | None = None
        self.current_frame: Frame | None = None
        self.scrubbing = False

    @property
    def state(self) -> SelectionState:
        if self.index is None:
            return SelectionState.EMPTY
        if self.start_frame is None:
            return SelectionState.READY
        if self.end_frame is None:
            return SelectionState.START_SELECTED
        return SelectionState.RANGE_SELECTED

    @property
    def frame_count(self) -> int:
        return len(self.index) if self.index is not None else 0

    @property
    def duration_ms(self) -> int | None:
        """Length of the selected range in whole milliseconds."""
        if self.start_frame is None or self.end_frame is None:
            return None
        # Half up, so 500.5 ms reads as 501
        return math.floor(self.end_frame.timestamp - self.start_frame.timestamp + 0.5)

    def load(self, index: FrameIndex) -> None:
        """Replace the frames and drop any selection."""
        self.index = index
        self._clear_selection()
        logger.debug(f"Timeline loaded with {len(index)} frames")

    def _clear_selection(self) -> None:
        self.start_frame = None
        self.end_frame = None
        self.current_frame = None
        self.scrubbing = False
        self.throttle.reset()

    def _frame(self, index: int) -> Frame:
        if self.index is None:
            raise SelectionError("No frames loaded")
        if not 0 <= index < len(self.index):
            raise SelectionError(f"Frame {index} out of range (0-{len(self.index) - 1})")
        return self.index[index]

    def select(self, frame: Frame) -> SelectionState:
        """Apply one pick and return the resulting state."""
        frame = self._frame(frame.index)

        if self.start_frame is None:
            self.start_frame = frame
        elif self.end_frame is None:
            if frame.index < self.start_frame.index:
                self.start_frame = frame
            else:
                self.end_frame = frame
        else:
            self.start_frame = frame
            self.end_frame = None

        self.current_frame = frame
        return self.state

    def select_index(self, index: int) -> SelectionState:
        return self.select(self._frame(index))

    def select_at(self, position: float) -> SelectionState:
        return self.select_index(frame_index_at(position, self.frame_count))

    def frame_at(self, position: float) -> Frame:
        return self._frame(frame_index_at(position, self.frame_count))

    def _move_to(self, position: float) -> Frame:
        frame = self.frame_at(position)
        self.current_frame = frame
        if self.on_scroll is not None and self.throttle.ready():
            self.on_scroll(frame)
        return frame

    def begin_scrub(self, position: float) -> Frame:
        self.throttle.reset()
        frame = self._move_to(position)
        self.scrubbing = True
        return frame

    def scrub_to(self, position: float) -> Frame | None:
        """Move the current frame during a scrub. Ignored when no scrub is active."""
        if not self.scrubbing:
            return None
        return self._move_to(position)

    def end_scrub(self) -> Frame | None:
        self.scrubbing = False
        return self.current_frame

    def pointer_left(self) -> None:
        self.scrubbing = False

    def global_release(self) -> None:
        # Release outside the track still ends the scrub
        self.scrubbing = False

    def unload(self) -> None:
        """Forget frames and selection without touching the workspace."""
        self.index = None
        self._clear_selection()

    def reset(self) -> None:
        """
        Forget frames and selection, then remove the workspace.

        The state is cleared even when the teardown fails; the failure is
        logged and re-raised.
        """
        self.unload()
        if self.on_reset is None:
            return
        try:
            self.on_reset()
        except Exception as e:
            logger.warning(f"Workspace teardown after reset failed: {e}")
            raise
