# =============================================================================
# test_server.py — WebSocket HUD bridge and report sink
# Uses the Flask / Flask-SocketIO test clients; no port is bound.
# Run: pytest test_server.py
# =============================================================================

import pytest

import config
from rehab_engine.data_structures import (
    AnalysisStatus, ExerciseKind, Frame, PatientDetails, SessionAnalysis,
)
from server.websocket_server import WebSocketServer


@pytest.fixture
def server():
    srv = WebSocketServer()
    # Emission is gated on the running flag; the test clients need no thread
    srv._running = True
    return srv


def _analysis():
    return SessionAnalysis(
        exercise_kind=ExerciseKind.HEAD_STABILITY,
        duration_seconds=60,
        score=0,
        clinical_value=45,
        clinical_unit="% Stability",
        status=AnalysisStatus.CRITICAL,
        recommendation="Stabilization training ongoing.",
    )


def test_health_route(server):
    resp = server.app.test_client().get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["port"] == config.SERVER_PORT


def test_report_route_before_and_after_session(server):
    client = server.app.test_client()
    assert client.get("/report").status_code == 404

    server.emit_analysis(_analysis(), PatientDetails(name="A. Patient"), [82, 45])

    body = client.get("/report").get_json()
    assert body["analysis"]["exerciseType"] == "HEAD STABILITY"
    assert body["analysis"]["status"] == "CRITICAL"
    assert body["patient"]["name"] == "A. Patient"
    assert body["patient"]["doctorName"] is None
    assert body["scoreHistory"] == [82, 45]


def test_frames_reach_connected_clients(server):
    sio_client = server.socketio.test_client(server.app)
    assert sio_client.is_connected()
    assert server.client_count == 1

    payload = Frame(yaw=3.0, confidence=0.99).to_dict()
    payload.update(blinkCount=2, timeLeft=30, score=12, phase="PLAYING")
    server.emit_frame(payload)

    received = [m for m in sio_client.get_received() if m["name"] == config.EMIT_EVENT_NAME]
    assert received[-1]["args"][0]["blinkCount"] == 2
    assert received[-1]["args"][0]["yaw"] == 3.0
    sio_client.disconnect()
    assert server.client_count == 0


def test_analysis_event_is_broadcast(server):
    sio_client = server.socketio.test_client(server.app)
    server.emit_analysis(_analysis(), PatientDetails(), [45])
    names = [m["name"] for m in sio_client.get_received()]
    assert config.ANALYSIS_EVENT_NAME in names


def test_stopped_server_emits_nothing(server):
    sio_client = server.socketio.test_client(server.app)
    server.stop()
    server.emit_frame({"yaw": 0.0})
    assert sio_client.get_received() == []
