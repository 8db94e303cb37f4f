"""Public tracking pages and QR endpoints (Flask test client)."""
from io import BytesIO

import pytest

from tests.conftest import collection_draft, quality_draft


@pytest.fixture
def herb1(context):
    c = context.ledger.append(collection_draft("HERB-1", eventId="COL-1"))
    q = context.ledger.append(quality_draft("HERB-1", eventId="EVT-42", parentEventId=c.eventId))
    return c, q


class TestTrack:

    def test_current_label(self, flask_client, herb1):
        resp = flask_client.get("/track/HERB-1/EVT-42")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["scannedEventId"] == "EVT-42"
        assert data["traceability"]["batchId"] == "HERB-1"
        assert len(data["traceability"]["journey"]) == 2

    def test_event_from_another_batch(self, flask_client, herb1):
        resp = flask_client.get("/track/HERB-1/EVT-NOT-HERE")
        assert resp.status_code == 404
        assert resp.get_json()["ok"] is False

    def test_unknown_batch(self, flask_client, herb1):
        resp = flask_client.get("/track/HERB-999/EVT-42")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["kind"] == "not_found"

    def test_legacy_label(self, flask_client, herb1):
        resp = flask_client.get("/track/EVT-42")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["legacy"] is True
        assert data["traceability"]["batchId"] == "HERB-1"

    def test_legacy_unknown(self, flask_client, herb1):
        assert flask_client.get("/track/NOPE").status_code == 404

    def test_ids_with_slashes_from_printed_label(self, flask_client, context):
        c = context.ledger.append(collection_draft("COOP/7", eventId="COL/1"))
        text = context.codec.encode("COOP/7", c.eventId).tracking_text
        assert "/track/COOP%2F7/COL%2F1" in text

        resp = flask_client.get(text[len(context.settings.tracking_origin):])
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["scannedEventId"] == "COL/1"
        assert data["traceability"]["batchId"] == "COOP/7"

    def test_query_string_is_ignored(self, flask_client, herb1):
        resp = flask_client.get("/track/HERB-1/EVT-42?utm=label")
        assert resp.status_code == 200
        assert resp.get_json()["scannedEventId"] == "EVT-42"

    def test_too_many_segments(self, flask_client, herb1):
        resp = flask_client.get("/track/HERB-1/EVT-42/extra")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["kind"] == "not_found"


class TestQr:

    def test_png(self, flask_client):
        resp = flask_client.get("/qr/HERB-1/EVT-42.png")
        assert resp.status_code == 200
        assert resp.mimetype == "image/png"
        assert resp.data.startswith(b"\x89PNG")

    def test_decode_text(self, flask_client, herb1):
        resp = flask_client.post("/qr/decode", json={"text": "https://x/track/EVT-42"})
        assert resp.status_code == 200
        assert resp.get_json()["decoded"] == {"batchId": "HERB-1", "eventId": "EVT-42", "source": "legacy_tracking_url"}

    def test_decode_uploaded_image(self, flask_client, context):
        png = context.codec.render_printable("HERB-1", "EVT-42")
        resp = flask_client.post(
            "/qr/decode",
            data={"image": (BytesIO(png), "label.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["decoded"]["eventId"] == "EVT-42"

    def test_decode_nothing(self, flask_client):
        resp = flask_client.post("/qr/decode", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["kind"] == "invalid_format"

    def test_decode_bad_image(self, flask_client):
        resp = flask_client.post(
            "/qr/decode",
            data={"image": (BytesIO(b"junk"), "label.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400


def test_health(flask_client):
    assert flask_client.get("/_health").get_json()["ok"] is True
