import csv
import io
import pytest
from unittest.mock import patch


def capture(websocket, score=3, location=(25.03, 121.56), chunk=b"\x00" * 2048):
    """Run one full capture over an open socket and return the server reply."""
    websocket.send_json({"action": "select_sentiment", "score": score})
    assert websocket.receive_json() == {"type": "sentiment_selected", "score": score}

    if location is None:
        websocket.send_json({"action": "location_denied"})
    else:
        websocket.send_json(
            {"action": "location", "latitude": location[0], "longitude": location[1]}
        )

    websocket.send_json({"action": "capture"})
    assert websocket.receive_json() == {"type": "record_request", "max_duration": 1.0}
    websocket.send_bytes(chunk)
    websocket.send_json({"action": "clip_end"})
    return websocket.receive_json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_records_empty(client):
    response = client.get("/records")
    assert response.status_code == 200
    assert response.json() == []


def test_count_empty(client):
    response = client.get("/records/count")
    assert response.status_code == 200
    assert response.json() == {"count": 0, "poll_seconds": 2.0}


def test_websocket_capture_flow(client, app_dirs):
    with client.websocket_connect("/ws/capture?session_id=flow") as websocket:
        websocket.send_json({"action": "camera_ready"})
        saved = capture(websocket)

    assert saved["type"] == "record_saved"
    assert saved["sentiment"] == 3
    assert saved["latitude"] == 25.03
    assert saved["longitude"] == 121.56
    assert saved["videoUri"].endswith("_sentiment3.mp4")

    videos = list(app_dirs.videos.iterdir())
    assert [str(v) for v in videos] == [saved["videoUri"]]
    assert videos[0].read_bytes() == b"\x00" * 2048

    records = client.get("/records").json()
    assert len(records) == 1
    assert records[0]["id"] == saved["id"]
    assert client.get("/records/count").json()["count"] == 1


def test_websocket_capture_without_location(client):
    with client.websocket_connect("/ws/capture?session_id=noloc") as websocket:
        websocket.send_json({"action": "camera_ready"})
        saved = capture(websocket, score=1, location=None)

    assert saved["type"] == "record_saved"
    assert saved["latitude"] is None
    assert saved["longitude"] is None


def test_websocket_capture_requires_sentiment(client, store):
    with client.websocket_connect("/ws/capture?session_id=nosent") as websocket:
        websocket.send_json({"action": "camera_ready"})
        websocket.send_json({"action": "capture"})
        response = websocket.receive_json()

    assert response["type"] == "error"
    assert response["kind"] == "missing_input"
    assert store.count() == 0


def test_websocket_capture_camera_not_ready(client, store):
    with client.websocket_connect("/ws/capture?session_id=notready") as websocket:
        websocket.send_json({"action": "select_sentiment", "score": 2})
        websocket.receive_json()
        websocket.send_json({"action": "capture"})
        response = websocket.receive_json()

    assert response["kind"] == "device_not_ready"
    assert store.count() == 0


def test_websocket_empty_clip_is_capture_failure(client, store, app_dirs):
    with client.websocket_connect("/ws/capture?session_id=empty") as websocket:
        websocket.send_json({"action": "camera_ready"})
        websocket.send_json({"action": "select_sentiment", "score": 4})
        websocket.receive_json()
        websocket.send_json({"action": "capture"})
        websocket.receive_json()
        websocket.send_json({"action": "clip_end"})
        response = websocket.receive_json()

        assert response["kind"] == "capture_failed"

        # The socket stays usable and the selection survives
        websocket.send_json({"action": "capture"})
        assert websocket.receive_json()["type"] == "record_request"
        websocket.send_bytes(b"\x01" * 16)
        websocket.send_json({"action": "clip_end"})
        assert websocket.receive_json()["sentiment"] == 4

    assert store.count() == 1


def test_websocket_invalid_sentiment(client):
    with client.websocket_connect("/ws/capture?session_id=bad") as websocket:
        websocket.send_json({"action": "select_sentiment", "score": 9})
        response = websocket.receive_json()
    assert response["kind"] == "invalid_input"


def test_websocket_invalid_json_is_ignored(client):
    with client.websocket_connect("/ws/capture?session_id=junk") as websocket:
        websocket.send_text("INVALID JSON")
        websocket.send_bytes(b"\x00\x00")
        websocket.send_json({"action": "select_sentiment", "score": 2})
        assert websocket.receive_json()["type"] == "sentiment_selected"


def test_websocket_no_session(client):
    from starlette.websockets import WebSocketDisconnect

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/capture") as websocket:
            websocket.receive_text()
    assert exc.value.code == 4000


def test_websocket_location_during_clip_is_recorded(client):
    with client.websocket_connect("/ws/capture?session_id=lateloc") as websocket:
        websocket.send_json({"action": "camera_ready"})
        websocket.send_json({"action": "select_sentiment", "score": 4})
        websocket.receive_json()

        websocket.send_json({"action": "capture"})
        assert websocket.receive_json()["type"] == "record_request"
        websocket.send_bytes(b"\x00" * 64)
        websocket.send_json({"action": "location", "latitude": 48.85, "longitude": 2.35})
        websocket.send_json({"action": "clip_end"})
        saved = websocket.receive_json()

    assert saved["type"] == "record_saved"
    assert (saved["latitude"], saved["longitude"]) == (48.85, 2.35)


def test_websocket_capture_during_clip_is_busy(client, store):
    with client.websocket_connect("/ws/capture?session_id=double") as websocket:
        websocket.send_json({"action": "camera_ready"})
        websocket.send_json({"action": "select_sentiment", "score": 2})
        websocket.receive_json()

        websocket.send_json({"action": "capture"})
        assert websocket.receive_json()["type"] == "record_request"
        websocket.send_bytes(b"\x00" * 64)
        websocket.send_json({"action": "capture"})
        assert websocket.receive_json() == {"type": "busy"}
        websocket.send_json({"action": "clip_end"})
        assert websocket.receive_json()["type"] == "record_saved"

    assert store.count() == 1


def test_websocket_unsubscribes_from_reminders_on_disconnect(client):
    notifier = client.app.state.notifier
    with client.websocket_connect("/ws/capture?session_id=remind") as websocket:
        websocket.send_json({"action": "select_sentiment", "score": 2})
        websocket.receive_json()
        assert len(notifier.listeners) == 1

    assert notifier.listeners == []


def test_export_csv_nothing_to_export(client, app_dirs):
    response = client.post("/export/csv")
    assert response.status_code == 404
    assert response.json()["kind"] == "nothing_to_export"
    assert not app_dirs.csv.exists()


def test_export_csv(client, store, app_dirs):
    store.insert(3, "/videos/a,b.mp4", 25.03, 121.56)
    store.insert(2, "/videos/c.mp4")

    response = client.post("/export/csv")
    assert response.status_code == 200
    assert response.json() == {"path": str(app_dirs.csv), "shared": True}

    rows = list(csv.reader(io.StringIO(app_dirs.csv.read_text(encoding="utf-8"))))
    assert rows[0] == ["id", "sentiment", "videoUri", "latitude", "longitude", "timestamp", "datetime"]
    assert len(rows) == 3
    assert rows[1][2] == "/videos/a,b.mp4"
    assert (app_dirs.shared / "esm_data.csv").exists()

    download = client.get("/files/esm_data.csv")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")


def test_export_csv_sharing_unavailable(client, store, app_dirs):
    store.insert(3, "/videos/a.mp4")
    with patch("esm.api.endpoints.SHARE_DIR", None):
        response = client.post("/export/csv")
    assert response.status_code == 503
    assert response.json()["kind"] == "sharing_unavailable"
    assert app_dirs.csv.exists()


def test_export_videos_nothing(client):
    response = client.post("/export/videos?mode=latest")
    assert response.status_code == 404


def test_export_videos(client, app_dirs):
    app_dirs.videos.mkdir()
    names = ["1700000000000_sentiment1.mp4", "1700000100000_sentiment2.mp4"]
    for name in names:
        (app_dirs.videos / name).write_bytes(b"video")

    latest = client.post("/export/videos?mode=latest")
    assert latest.json() == {"shared": ["1700000100000_sentiment2.mp4"]}

    with patch("esm.api.endpoints.SHARE_DELAY_SECONDS", 0):
        everything = client.post("/export/videos?mode=all")
    assert everything.json() == {"shared": names}
    assert sorted(p.name for p in app_dirs.shared.iterdir()) == names


def test_download_video(client, app_dirs):
    app_dirs.videos.mkdir()
    (app_dirs.videos / "1700000000000_sentiment1.mp4").write_bytes(b"video")

    response = client.get("/files/1700000000000_sentiment1.mp4")
    assert response.status_code == 200
    assert response.headers["content-type"] == "video/mp4"
    assert response.content == b"video"


def test_download_missing_file(client):
    assert client.get("/files/nothing.mp4").status_code == 404
    assert client.get("/files/..").status_code == 404


def test_purge_requires_confirmation(client, store):
    store.insert(3, "/videos/a.mp4")
    response = client.delete("/records")
    assert response.status_code == 400
    assert response.json()["kind"] == "confirmation_required"
    assert store.count() == 1


def test_purge(client, store, app_dirs):
    with client.websocket_connect("/ws/capture?session_id=purge") as websocket:
        websocket.send_json({"action": "camera_ready"})
        first = capture(websocket, score=2)
        capture(websocket, score=5)

    response = client.delete("/records?confirm=true")
    assert response.status_code == 200
    assert response.json() == {"records_deleted": 2, "files_deleted": 2}
    assert store.count() == 0
    assert list(app_dirs.videos.iterdir()) == []

    # ids keep counting after a purge
    rec = store.insert(1, "/videos/x.mp4")
    assert rec.id == first["id"] + 2


def test_reminders(client):
    response = client.get("/reminders")
    assert response.status_code == 200
    assert response.json()["times"] == ["09:00", "12:00", "15:00", "18:00"]

    response = client.post("/reminders")
    assert response.status_code == 200
    assert len(response.json()["times"]) == 4

    # The live scheduler holds exactly one cron job per reminder time
    jobs = client.app.state.notifier.scheduler.get_jobs()
    assert sorted(j.id for j in jobs) == [
        "reminder_09:00",
        "reminder_12:00",
        "reminder_15:00",
        "reminder_18:00",
    ]
    assert client.app.state.notifier.scheduler.running
