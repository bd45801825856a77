"""
alerts/announcer.py — Spoken exercise prompts
Plays a short pygame cue tone, then speaks the prompt with pyttsx3 on a
background worker thread. announce() never blocks the frame loop.

A newer prompt replaces any prompt still waiting to be spoken, so the
patient always hears the current instruction. With no audio device the
announcer logs the prompt and stays silent.
"""

import os
import queue
import threading

import numpy as np
import pygame
import pygame.sndarray
import pyttsx3

import config
from core.logger import get_logger

log = get_logger(__name__)

_SHUTDOWN = object()


class Announcer:
    """
    Fire-and-forget voice prompts.

    Usage:
        announcer = Announcer()
        announcer.start()                     # mixer + TTS worker
        announcer.announce("Follow the blue dot.")
        announcer.stop()
    """

    def __init__(
        self,
        rate: int = config.TTS_RATE,
        volume: float = config.TTS_VOLUME,
        enabled: bool = True,
    ):
        self.rate = rate
        self.volume = volume
        self.enabled = enabled
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: threading.Thread | None = None
        self._mixer_ready: bool = False
        self._cue: "pygame.mixer.Sound | None" = None
        self.last_prompt: str | None = None

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Initialise the cue sound and start the speech worker."""
        if not self.enabled:
            log.info("Voice prompts disabled.")
            return

        try:
            pygame.mixer.pre_init(frequency=44100, size=-16, channels=1, buffer=512)
            pygame.mixer.init()
            self._mixer_ready = True
            self._cue = self._load_or_generate_cue(
                config.CUE_SOUND_PATH, config.CUE_FREQ, config.CUE_DURATION
            )
        except Exception as exc:
            log.warning(f"pygame mixer unavailable: {exc}. Cue tone disabled.")
            self._mixer_ready = False

        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._run, daemon=True, name="rehab-tts"
            )
            self._thread.start()

    def stop(self) -> None:
        """Drop pending prompts, stop the worker and tear down the mixer."""
        self._drain()
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(_SHUTDOWN)
            self._thread.join(timeout=2.0)
        self._thread = None
        if self._mixer_ready:
            pygame.mixer.stop()
            pygame.mixer.quit()
            self._mixer_ready = False

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    def announce(self, text: str) -> None:
        """Queue a prompt, replacing any prompt not yet spoken."""
        if not text:
            return
        log.info(f"Announce: {text}")
        self.last_prompt = text
        if self._thread is None:
            return
        self._drain()
        self._queue.put(text)

    # ──────────────────────────────────────────────────────────────────────────
    # Worker
    # ──────────────────────────────────────────────────────────────────────────

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def _run(self) -> None:
        # pyttsx3 engines are bound to the thread that created them
        try:
            engine = pyttsx3.init()
            engine.setProperty("rate", self.rate)
            engine.setProperty("volume", self.volume)
        except Exception as exc:
            log.warning(f"Text-to-speech unavailable: {exc}. Prompts are log-only.")
            engine = None

        while True:
            text = self._queue.get()
            if text is _SHUTDOWN:
                break
            if self._cue is not None:
                self._cue.play()
            if engine is None:
                continue
            try:
                engine.say(text)
                engine.runAndWait()
            except Exception as exc:
                log.error(f"Speech failed: {exc}")

    # ──────────────────────────────────────────────────────────────────────────
    # Cue sound
    # ──────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _generate_tone(
        freq: float = 660.0,
        duration: float = 0.15,
        sample_rate: int = 44100,
        volume: float = 0.5,
    ) -> np.ndarray:
        """Sine tone with 20 ms fades, int16 mono."""
        t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
        wave = np.sin(2 * np.pi * freq * t)

        fade = int(sample_rate * 0.02)
        wave[:fade] *= np.linspace(0, 1, fade)
        wave[-fade:] *= np.linspace(1, 0, fade)

        return (wave * volume * 32767).astype(np.int16)

    def _load_or_generate_cue(
        self, path: str, freq: float, duration: float
    ) -> "pygame.mixer.Sound | None":
        if not self._mixer_ready:
            return None

        if os.path.exists(path):
            try:
                return pygame.mixer.Sound(path)
            except Exception as exc:
                log.warning(f"Could not load {path}: {exc}. Generating tone.")

        tone = self._generate_tone(freq=freq, duration=duration)
        log.debug(f"Generated {freq:.0f} Hz cue ({duration:.2f} s).")
        return pygame.sndarray.make_sound(tone)

    # ──────────────────────────────────────────────────────────────────────────
    # Context manager
    # ──────────────────────────────────────────────────────────────────────────

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *_):
        self.stop()


if __name__ == "__main__":
    import time

    with Announcer() as announcer:
        announcer.announce("Follow the blue dot.")
        time.sleep(3.0)
        announcer.announce("Session complete. Analyzing clinical data.")
        time.sleep(4.0)
    print("Announcer OK.")
