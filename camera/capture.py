"""
camera/capture.py — Capture Provider
Owns the OpenCV capture device and hands out StreamHandles.

A StreamHandle runs a small grabber thread that keeps only the most recent
frame together with the time it was captured. Consumers poll latest() and
compare the capture timestamp with the one they processed last to skip
frames they have already seen.
"""

import threading
import time
from typing import Optional, Tuple, Union

import cv2
import numpy as np

import config
from rehab_engine.errors import PermissionDenied
from core.logger import get_logger

log = get_logger(__name__)


class StreamHandle:
    """
    Live view onto one opened capture device or video file.

    Usage:
        handle = provider.acquire()
        packet = handle.latest()      # (capture_ts, frame_bgr) or None
        provider.release(handle)
    """

    def __init__(self, cap: cv2.VideoCapture, source: Union[int, str]):
        self.source = source
        self._cap = cap
        self._lock = threading.Lock()
        self._packet: Optional[Tuple[float, np.ndarray]] = None
        self._ended = threading.Event()
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"capture-{source}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        # Video files are paced to their own frame rate; devices block in read()
        is_file = isinstance(self.source, str)
        fps = self._cap.get(cv2.CAP_PROP_FPS) or config.CAMERA_FPS
        period = 1.0 / fps if is_file and fps > 0 else 0.0

        while not self._stop.is_set():
            ok, frame = self._cap.read()
            if not ok or frame is None:
                log.info(f"Capture source {self.source} has no more frames.")
                self._ended.set()
                return

            with self._lock:
                self._packet = (time.monotonic(), frame)

            if period:
                self._stop.wait(timeout=period)

    def latest(self) -> Optional[Tuple[float, np.ndarray]]:
        """Return (capture_ts, frame_bgr) of the newest frame, or None if none yet."""
        with self._lock:
            return self._packet

    @property
    def ended(self) -> bool:
        """True once the source stopped delivering frames."""
        return self._ended.is_set()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._cap.release()


class CameraCapture:
    """
    Capture Provider for the detector path.
    acquire() opens the device (or a video file for offline replay);
    release() stops the grabber and frees the device.
    """

    def __init__(
        self,
        source: Union[int, str] = config.CAMERA_INDEX,
        width: int = config.CAMERA_WIDTH,
        height: int = config.CAMERA_HEIGHT,
        fps: int = config.CAMERA_FPS,
    ):
        """
        Args:
            source: OS camera device index (0 = default webcam) or a video path.
            width:  Capture width in pixels.
            height: Capture height in pixels.
            fps:    Target capture frame rate.
        """
        self.source = source
        self.width = width
        self.height = height
        self.fps = fps

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def acquire(self) -> StreamHandle:
        """
        Open the capture source and start grabbing.

        Raises:
            PermissionDenied: the device could not be opened.
        """
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise PermissionDenied(f"Cannot open capture source {self.source!r}")

        if not isinstance(self.source, str):
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            cap.set(cv2.CAP_PROP_FPS, self.fps)
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        log.info(f"Opened capture source {self.source} at {actual_w}x{actual_h}.")

        handle = StreamHandle(cap, self.source)
        handle.start()
        return handle

    def release(self, handle: StreamHandle) -> None:
        """Stop the grabber thread and release the device."""
        handle.stop()
        log.info(f"Capture source {handle.source} released.")


# ──────────────────────────────────────────────────────────────────────────────
# Quick smoke test
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    provider = CameraCapture()
    try:
        stream = provider.acquire()
    except PermissionDenied as exc:
        print(f"Camera could not be opened: {exc}")
        raise SystemExit(1)

    print("Press 'q' to quit.")
    last_ts = None
    try:
        while not stream.ended:
            packet = stream.latest()
            if packet is None or packet[0] == last_ts:
                time.sleep(0.005)
                continue
            last_ts, frame = packet
            cv2.imshow("Capture Test", frame)
            if cv2.waitKey(1) & 0xFF == ord("q"):
                break
    finally:
        provider.release(stream)
        cv2.destroyAllWindows()
