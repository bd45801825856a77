# =============================================================================
# rehab_engine/scheduler.py
#
# FrameScheduler — the single cooperative loop that drives the pipeline.
#
# Per tick:
#   1. Apply queued commands (SetMode, SetProfile, Invoke) in arrival order
#   2. Detector path only: skip if < 32 ms since the last processed tick
#   3. source.next_raw_frame → SmoothingFilter (detector path) →
#      BlinkEdgeDetector → publish TrackerSnapshot to frame listeners
#   4. Notify tick listeners (session clocks) with the tick time
#
# An ended capture stream (SourceExhausted) releases the source and tells the
# exhaustion listeners; the loop keeps ticking on the last frame at
# confidence 0 so queued commands and session clocks still run.
#
# Single-writer model: only the loop mutates TrackerState and whatever the
# listeners own. Other threads talk to the loop exclusively through
# submit(); commands take effect at the start of the next tick.
#
# stop() returns once the loop has exited and the active source has released
# its capture device; no frame is published after that. A loop stuck in a
# slow tick past the join timeout releases the source itself on exit.
# =============================================================================

import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config import DETECTOR_MIN_INTERVAL_MS, SCHEDULER_TICK_S
from rehab_engine.data_structures import (
    SourceMode, PhysiologicalProfile, TrackerState, TrackerSnapshot,
)
from rehab_engine.frame_source import FrameSource, SyntheticSource
from rehab_engine.smoothing import SmoothingFilter
from rehab_engine.blink_detector import BlinkEdgeDetector
from rehab_engine.errors import SourceExhausted
from core.logger import get_logger

log = get_logger(__name__)


# ── Commands ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SetMode:
    mode: SourceMode


@dataclass(frozen=True)
class SetProfile:
    profile: PhysiologicalProfile


@dataclass(frozen=True)
class Invoke:
    """Run fn(now_ms) on the loop before the next frame is produced."""
    fn: Callable[[float], None]


# ── Scheduler ─────────────────────────────────────────────────────────────────

class FrameScheduler:
    """
    Usage:
        scheduler = FrameScheduler(SyntheticSource(), DetectedSource(cam, det))
        scheduler.subscribe(lambda snap: ...)
        scheduler.start_background()
        scheduler.submit(SetMode(SourceMode.REAL))
        ...
        scheduler.stop()

    For deterministic driving (tests, offline replay) call activate() and
    then tick(now_ms) directly instead of running the loop.
    """

    def __init__(
        self,
        synthetic: SyntheticSource,
        detected: Optional[FrameSource] = None,
        mode: SourceMode = SourceMode.DEMO,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = SCHEDULER_TICK_S,
        min_interval_ms: float = DETECTOR_MIN_INTERVAL_MS,
    ):
        self._sources: Dict[SourceMode, Optional[FrameSource]] = {
            SourceMode.DEMO: synthetic,
            SourceMode.REAL: detected,
        }
        if self._sources[mode] is None:
            raise ValueError(f"No frame source configured for mode {mode.value}")
        self._mode = mode
        self._clock = clock
        self.tick_interval = tick_interval
        self.min_interval_ms = min_interval_ms

        self.state = TrackerState()
        self._smoother = SmoothingFilter()
        self._blink = BlinkEdgeDetector()

        self._commands: "queue.SimpleQueue" = queue.SimpleQueue()
        self._frame_listeners: List[Callable[[TrackerSnapshot], None]] = []
        self._tick_listeners: List[Callable[[float], None]] = []
        self._exhausted_listeners: List[Callable[[float], None]] = []

        self._active = False
        self._t0_ms = 0.0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        log.info(f"FrameScheduler initialized (mode={mode.value}).")

    # ── Wiring ────────────────────────────────────────────────────────────────

    def subscribe(self, callback: Callable[[TrackerSnapshot], None]) -> None:
        """Receive every published TrackerSnapshot, in arrival order."""
        self._frame_listeners.append(callback)

    def on_tick(self, callback: Callable[[float], None]) -> None:
        """Receive the time (ms) of every tick, processed or throttled."""
        self._tick_listeners.append(callback)

    def on_exhausted(self, callback: Callable[[float], None]) -> None:
        """Called on the loop with the tick time when the capture stream ends."""
        self._exhausted_listeners.append(callback)

    def submit(self, command) -> None:
        """Queue a command for the start of the next tick. Thread-safe."""
        self._commands.put(command)

    @property
    def mode(self) -> SourceMode:
        return self._mode

    @property
    def source(self) -> FrameSource:
        return self._sources[self._mode]

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def processed_frames(self) -> int:
        return self.state.processed_frames

    def now_ms(self) -> float:
        return self._clock() * 1000.0

    # ── Activation ────────────────────────────────────────────────────────────

    def activate(self, now_ms: Optional[float] = None) -> None:
        """Acquire the current source and start accepting ticks."""
        if self._active:
            return
        self._t0_ms = self.now_ms() if now_ms is None else now_ms
        self.source.activate()
        self._active = True
        log.info(f"Scheduler active ({self._mode.value}).")

    def deactivate(self) -> None:
        """Stop accepting ticks and release the current source."""
        if not self._active:
            return
        self._active = False
        self.source.deactivate()
        log.info("Scheduler inactive; frame source released.")

    # ── Per-tick work ─────────────────────────────────────────────────────────

    def _apply_commands(self, now_ms: float) -> None:
        while True:
            try:
                cmd = self._commands.get_nowait()
            except queue.Empty:
                return

            if isinstance(cmd, SetMode):
                self._switch_mode(cmd.mode)
            elif isinstance(cmd, SetProfile):
                synthetic = self._sources[SourceMode.DEMO]
                synthetic.set_profile(cmd.profile)
                log.info(f"Synthetic profile → {cmd.profile.value}")
            elif isinstance(cmd, Invoke):
                cmd.fn(now_ms)
            else:
                log.warning(f"Ignoring unknown scheduler command: {cmd!r}")

    def _switch_mode(self, mode: SourceMode) -> None:
        if mode is self._mode:
            return
        if self._sources[mode] is None:
            log.warning(f"No frame source for mode {mode.value}; staying in {self._mode.value}.")
            return

        if self._active:
            self.source.deactivate()
        log.info(f"Mode: {self._mode.value} → {mode.value}")
        self._mode = mode
        self.state.last_process_ms = None
        self.state.last_capture_ts = None
        if self._active:
            self.source.activate()

    def tick(self, now_ms: float) -> Optional[TrackerSnapshot]:
        """
        Run one loop iteration at time now_ms.

        Returns:
            The published snapshot, or None when inactive or throttled.
        """
        if not self._active:
            return None

        self._apply_commands(now_ms)
        if not self._active:
            return None

        snapshot = None
        source = self.source
        state = self.state
        throttled = (
            source.throttled
            and state.last_process_ms is not None
            and now_ms - state.last_process_ms < self.min_interval_ms
        )

        if not throttled:
            state.last_process_ms = now_ms
            try:
                raw = source.next_raw_frame(now_ms - self._t0_ms, state)
            except SourceExhausted as e:
                log.info(f"{e}; capture released, holding the last frame.")
                source.deactivate()
                for callback in self._exhausted_listeners:
                    callback(now_ms)
                if not self._active:
                    return None
                raw = source.next_raw_frame(now_ms - self._t0_ms, state)

            frame = self._smoother.apply(state, raw) if source.smoothed else raw
            state.prev_frame = frame
            blink_event = self._blink.update(state, frame)
            state.processed_frames += 1

            snapshot = TrackerSnapshot(
                frame=frame,
                timestamp_ms=now_ms,
                blink_count=state.blink_count,
                blink_event=blink_event,
                mode=self._mode,
            )
            for callback in self._frame_listeners:
                if not self._active:
                    break
                callback(snapshot)

        for callback in self._tick_listeners:
            callback(now_ms)

        return snapshot

    # ── Loop ──────────────────────────────────────────────────────────────────

    def run(self) -> None:
        """Blocking loop: one tick per tick_interval until stop()."""
        self._stop.clear()
        self.activate()
        try:
            while not self._stop.is_set():
                try:
                    self.tick(self.now_ms())
                except Exception as e:
                    log.error(f"Scheduler tick failed: {e}", exc_info=True)
                self._stop.wait(timeout=self.tick_interval)
        finally:
            self.deactivate()

    def start_background(self) -> None:
        """Run the loop on a daemon thread. Returns immediately."""
        if self._thread is not None and self._thread.is_alive():
            log.warning("Scheduler already running.")
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run, daemon=True, name="rehab-scheduler"
        )
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """
        Stop the loop and release the source before returning. Safe to call
        from a listener running on the loop itself. If the loop is still
        inside a tick after `timeout`, the release is left to the loop.
        """
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                log.warning(f"Scheduler loop busy after {timeout:.1f}s; "
                            f"it releases the source when the tick returns.")
                return
            self._thread = None
        self.deactivate()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
