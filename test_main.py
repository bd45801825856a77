# =============================================================================
# test_main.py — Command line and component lifecycle
# Run: pytest test_main.py
# =============================================================================

import logging

import pytest

from core.logger import ROOT_LOGGER, set_console_level
from core.thread_manager import ThreadManager
from main import RehabApp, main, parse_args


def test_defaults():
    args = parse_args([])
    assert args.mode == "demo"
    assert args.exercise == "follow_dot"
    assert args.profile == "healthy"
    assert args.duration == 60
    assert not args.no_server


def test_camera_accepts_index_or_file():
    assert parse_args(["--camera", "2"]).camera == 2
    assert parse_args(["--camera", "clip.mp4"]).camera == "clip.mp4"


@pytest.mark.parametrize("argv", [
    ["--duration", "0"],
    ["--mode", "webcam"],
    ["--exercise", "juggling"],
])
def test_rejects_bad_arguments(argv):
    with pytest.raises(SystemExit):
        parse_args(argv)


def test_thread_manager_stops_in_reverse_order():
    calls = []
    tm = ThreadManager()
    tm.register("first", lambda: calls.append("start first"), lambda: calls.append("stop first"))
    tm.register("second", None, lambda: calls.append("stop second"))

    def broken():
        raise RuntimeError("stuck")

    tm.register("third", None, broken)

    tm.start_all()
    assert tm.running == ["first", "second", "third"]
    failed = tm.stop_all()

    assert calls == ["start first", "stop second", "stop first"]
    assert failed == ["third"]
    assert tm.running == []
    assert tm.stop_all() == []


def test_thread_manager_rolls_back_failed_start():
    calls = []
    tm = ThreadManager()
    tm.register("announcer", lambda: calls.append("start announcer"),
                lambda: calls.append("stop announcer"))

    def refuse():
        raise OSError("port in use")

    tm.register("server", refuse, lambda: calls.append("stop server"))
    tm.register("core", lambda: calls.append("start core"), lambda: calls.append("stop core"))

    with pytest.raises(OSError):
        tm.start_all()

    assert calls == ["start announcer", "stop announcer"]
    assert tm.running == []


def test_headless_demo_session_runs_to_completion():
    pytest.importorskip("cv2")
    pytest.importorskip("mediapipe")
    code = main([
        "--no-server", "--no-voice",
        "--exercise", "blink_training", "--profile", "low",
        "--duration", "1", "--seed", "3",
    ])
    assert code == 0


def test_unclean_shutdown_fails_the_run():
    pytest.importorskip("cv2")
    pytest.importorskip("mediapipe")
    app = RehabApp(parse_args([
        "--no-server", "--no-voice", "--exercise", "head_stability",
        "--duration", "1", "--seed", "3",
    ]))
    stop_core = app.core.stop

    def stop_then_fail():
        stop_core()
        raise RuntimeError("camera still busy")

    app.tm.register("Leaky", None, stop_then_fail)

    assert app.run() == 1


def test_debug_flag_only_touches_console_level():
    assert parse_args(["--debug"]).debug
    set_console_level(logging.DEBUG)
    try:
        handlers = logging.getLogger(ROOT_LOGGER).handlers
        console = [h for h in handlers if type(h) is logging.StreamHandler]
        files = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert [h.level for h in console] == [logging.DEBUG]
        assert [h.level for h in files] == [logging.DEBUG]
    finally:
        set_console_level(logging.INFO)
