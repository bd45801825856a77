"""
server/websocket_server.py — Flask-SocketIO WebSocket Bridge
Pushes live rehab frames and finished session reports to the HUD.

Run standalone: python -m server.websocket_server
Or use WebSocketServer.start_background() from main.py.
"""

import threading
import time
from typing import List, Optional

from flask import Flask, jsonify
from flask_socketio import SocketIO
from flask_cors import CORS

import config
from core.logger import get_logger
from rehab_engine.data_structures import AssessmentResult, PatientDetails, SessionAnalysis

log = get_logger(__name__)


class WebSocketServer:
    """
    Lightweight Flask-SocketIO server that bridges the rehab engine to the
    HTML HUD via WebSocket. Doubles as the default report sink.

    Usage:
        server = WebSocketServer()
        server.start_background()                 # non-blocking
        core.add_frame_listener(server.emit_frame)
        core.add_report_sink(server.emit_analysis)
        server.stop()
    """

    def __init__(
        self,
        host: str = config.SERVER_HOST,
        port: int = config.SERVER_PORT,
        cors_origins: str = config.SERVER_CORS_ALLOWED_ORIGINS,
    ):
        self.host = host
        self.port = port
        self._running = False
        self._thread: Optional[threading.Thread] = None

        # ── Flask + SocketIO setup ─────────────────────────────────────────
        self.app = Flask(__name__, static_folder=None)
        self.app.config["SECRET_KEY"] = "rehab-secret"
        CORS(self.app, origins=cors_origins)

        self.socketio = SocketIO(
            self.app,
            cors_allowed_origins=cors_origins,
            async_mode="threading",
            logger=False,
            engineio_logger=False,
        )

        self._client_count: int = 0
        self._frames_sent: int = 0
        self.last_analysis: Optional[dict] = None

        self._register_routes()
        self._register_events()

    # ──────────────────────────────────────────────────────────────────────────
    # Flask routes
    # ──────────────────────────────────────────────────────────────────────────

    def _register_routes(self) -> None:
        @self.app.route("/health")
        def health():
            return jsonify({
                "status":     "ok",
                "clients":    self._client_count,
                "server":     "Rehab WebSocket Bridge",
                "port":       self.port,
                "framesSent": self._frames_sent,
            })

        @self.app.route("/report")
        def report():
            if self.last_analysis is None:
                return jsonify({"error": "no session finished yet"}), 404
            return jsonify(self.last_analysis)

    # ──────────────────────────────────────────────────────────────────────────
    # SocketIO events
    # ──────────────────────────────────────────────────────────────────────────

    def _register_events(self) -> None:
        @self.socketio.on("connect")
        def on_connect():
            self._client_count += 1
            log.info(f"HUD connected. Clients: {self._client_count}")

        @self.socketio.on("disconnect")
        def on_disconnect():
            self._client_count = max(0, self._client_count - 1)
            log.info(f"HUD disconnected. Clients: {self._client_count}")

        @self.socketio.on("ping_rehab")
        def on_ping(data=None):
            self.socketio.emit("pong_rehab", {"status": "alive"})

    # ──────────────────────────────────────────────────────────────────────────
    # Data emission
    # ──────────────────────────────────────────────────────────────────────────

    def emit_frame(self, data: dict) -> None:
        """
        Broadcast one frame payload to all connected HUD clients.

        Expected keys:
            yaw, pitch, roll, eyeOpennessLeft, eyeOpennessRight,
            mouthSymmetry, gazeX, gazeY, blinkDetected, confidence,
            leftEye, rightEye, blinkCount, timeLeft, score, phase
        """
        if not self._running:
            return
        try:
            self.socketio.emit(config.EMIT_EVENT_NAME, data)
            self._frames_sent += 1
        except Exception as exc:
            log.debug(f"Emit error: {exc}")

    def emit_analysis(
        self,
        analysis: SessionAnalysis,
        patient: PatientDetails,
        score_history: List[float],
    ) -> None:
        """Report sink: publish a finished session with patient metadata."""
        payload = {
            "analysis":     analysis.to_dict(),
            "patient":      patient.to_dict(),
            "scoreHistory": list(score_history),
            "generatedAt":  time.strftime("%Y-%m-%d %H:%M:%S"),
        }
        self.last_analysis = payload
        if not self._running:
            return
        try:
            self.socketio.emit(config.ANALYSIS_EVENT_NAME, payload)
            log.info(f"Session report sent to {self._client_count} client(s).")
        except Exception as exc:
            log.error(f"Report emit failed: {exc}")

    def emit_assessment(self, result: AssessmentResult) -> None:
        if not self._running:
            return
        try:
            self.socketio.emit("assessment_result", result.to_dict())
        except Exception as exc:
            log.error(f"Assessment emit failed: {exc}")

    # ──────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def start_background(self) -> None:
        """
        Start the SocketIO server in a background daemon thread.
        Returns immediately; frames are pushed through emit_frame().
        """
        if self._running:
            log.warning("Server already running.")
            return

        self._running = True
        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
            name="rehab-ws-server",
        )
        self._thread.start()
        time.sleep(0.5)   # give the server time to bind the port
        log.info(
            f"Server started at http://{self.host}:{self.port}  "
            f"(health: http://localhost:{self.port}/health)"
        )

    def _run_server(self) -> None:
        """Internal: run Flask-SocketIO (blocking, called in daemon thread)."""
        try:
            self.socketio.run(
                self.app,
                host=self.host,
                port=self.port,
                use_reloader=False,
                log_output=False,
                allow_unsafe_werkzeug=True,
            )
        except Exception as exc:
            self._running = False
            log.error(f"WebSocket server exited: {exc}", exc_info=True)

    def stop(self) -> None:
        """Signal the server to stop (best-effort for daemon thread)."""
        self._running = False
        log.info("Server stopped.")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def client_count(self) -> int:
        return self._client_count


# ──────────────────────────────────────────────────────────────────────────────
# Smoke test — stream synthetic frames without a session
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from rehab_engine.simulator import SyntheticGenerator

    server = WebSocketServer()
    server.start_background()
    generator = SyntheticGenerator()

    print("Streaming synthetic frames every 33 ms… press Ctrl+C to stop.")
    t0 = time.monotonic()
    try:
        while True:
            frame = generator.generate((time.monotonic() - t0) * 1000.0)
            server.emit_frame(frame.to_dict())
            time.sleep(1 / 30)
    except KeyboardInterrupt:
        server.stop()
        print("Done.")
