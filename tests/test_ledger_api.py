"""REST API over the ledger (FastAPI TestClient)."""
from tests.conftest import ORIGIN

API = "/api/v1/ledger"


def _create_batch(client, species="Tulsi", **extra):
    body = {"participant": "Ravi", "payload": {"herbSpecies": species, "weight": 200}, **extra}
    return client.post(f"{API}/batches", json=body)


def _append(client, batch_id, event_type, payload, **extra):
    body = {"batchId": batch_id, "eventType": event_type, "participant": "Lab Tech", "payload": payload, **extra}
    return client.post(f"{API}/events", json=body)


QUALITY = {"purity": 97.0, "moistureContent": 9.0, "pesticideLevel": 0.02}


class TestCreateBatch:

    def test_creates_batch_with_generated_id(self, api_client):
        resp = _create_batch(api_client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["ok"] is True
        batch_id = data["batch"]["batchId"]
        assert batch_id.startswith("HERB-")
        assert data["batch"]["currentStage"] == "COLLECTED"
        assert data["batch"]["eventCount"] == 1
        assert "events" not in data["batch"]
        assert data["event"]["eventType"] == "COLLECTION"
        assert data["event"]["payload"]["kind"] == "COLLECTION"
        tracking = data["tracking"]
        assert tracking["trackingText"] == f"{ORIGIN}/track/{batch_id}/{data['event']['eventId']}"
        assert tracking["qrDataUrl"].startswith("data:image/png;base64,")

    def test_explicit_batch_id_and_metadata(self, api_client):
        resp = _create_batch(api_client, batchId="HERB-1", metadata={"photo": "a.jpg"})
        assert resp.status_code == 201
        assert resp.json()["event"]["externalRef"].startswith("Qm")

    def test_second_collection_conflicts(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        resp = _create_batch(api_client, batchId="HERB-1")
        assert resp.status_code == 409
        assert resp.json()["error"]["kind"] == "duplicate_stage"

    def test_missing_species(self, api_client):
        resp = api_client.post(f"{API}/batches", json={"participant": "Ravi", "payload": {}})
        assert resp.status_code == 422
        body = resp.json()
        assert body["ok"] is False
        assert body["error"]["kind"] == "validation_error"
        assert "detail" not in body


class TestAppendEvents:

    def test_full_pipeline(self, api_client):
        col = _create_batch(api_client, batchId="HERB-1").json()["event"]

        q = _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        assert q.status_code == 201
        assert q.json()["event"]["parentEventId"] == col["eventId"]
        assert q.json()["event"]["organization"] == "Testing Laboratory"

        p = _append(api_client, "HERB-1", "PROCESSING", {"method": "Drying", "yield": 180})
        assert p.status_code == 201
        assert p.json()["event"]["payload"]["yield"] == 180

        m = _append(api_client, "HERB-1", "MANUFACTURING", {"productName": "Tulsi Tea"})
        assert m.status_code == 201
        assert m.json()["batch"]["isTerminal"] is True

        late = _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        assert late.status_code == 409
        assert late.json()["error"]["kind"] == "terminal_batch"

    def test_duplicate_and_out_of_order(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        skip = _append(api_client, "HERB-1", "PROCESSING", {"method": "Drying"})
        assert skip.status_code == 409
        assert skip.json()["error"]["kind"] == "out_of_order"

        _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        dup = _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        assert dup.json()["error"] == {
            "kind": "duplicate_stage",
            "reason": "This batch already has a quality test event.",
            "context": {"stage": "QUALITY_TESTED", "eventType": "QUALITY_TEST"},
        }

    def test_unknown_batch(self, api_client):
        resp = _append(api_client, "HERB-404", "QUALITY_TEST", QUALITY)
        assert resp.status_code == 404
        assert resp.json() == {
            "ok": False,
            "error": {"kind": "not_found", "reason": "Batch not found: HERB-404", "context": {"batchId": "HERB-404"}},
        }

    def test_bad_payload(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        resp = _append(api_client, "HERB-1", "QUALITY_TEST", {"purity": 97})
        assert resp.status_code == 422
        assert resp.json()["error"]["kind"] == "validation_error"
        assert resp.json()["error"]["context"] == {"batchId": "HERB-1", "eventType": "QUALITY_TEST"}

    def test_payload_kind_must_match(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        resp = _append(api_client, "HERB-1", "QUALITY_TEST", {"kind": "PROCESSING", "method": "Drying"})
        assert resp.status_code == 422
        assert resp.json()["ok"] is False

    def test_unknown_event_type(self, api_client):
        resp = _append(api_client, "HERB-1", "PACKAGING", {})
        assert resp.status_code == 422


class TestReads:

    def test_get_batch_and_event(self, api_client):
        ev = _create_batch(api_client, batchId="HERB-1").json()["event"]

        b = api_client.get(f"{API}/batches/HERB-1").json()["batch"]
        assert [e["eventId"] for e in b["events"]] == [ev["eventId"]]
        assert api_client.get(f"{API}/events/{ev['eventId']}").json()["event"] == ev

        assert api_client.get(f"{API}/batches/NOPE").status_code == 404
        assert api_client.get(f"{API}/events/NOPE").status_code == 404

    def test_list_batches_latest_first(self, api_client):
        _create_batch(api_client, batchId="OLD")
        _create_batch(api_client, batchId="NEW")
        _append(api_client, "OLD", "QUALITY_TEST", QUALITY)
        items = api_client.get(f"{API}/batches").json()["items"]
        assert [b["batchId"] for b in items] == ["OLD", "NEW"]

    def test_can_append(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        ok = api_client.get(f"{API}/batches/HERB-1/can-append", params={"eventType": "QUALITY_TEST"})
        assert ok.json()["decision"]["accepted"] is True

        no = api_client.get(f"{API}/batches/HERB-1/can-append", params={"eventType": "MANUFACTURING"})
        assert no.json()["decision"]["reason"] == "OutOfOrder"

        missing = api_client.get(f"{API}/batches/NOPE/can-append", params={"eventType": "QUALITY_TEST"})
        assert missing.status_code == 404

    def test_resolve(self, api_client):
        ev = _create_batch(api_client, batchId="HERB-1").json()["event"]
        data = api_client.get(f"{API}/resolve/{ev['eventId']}").json()
        assert data["batch"]["batchId"] == "HERB-1"
        assert data["matchedBy"] == "event_id"

        resp = api_client.get(f"{API}/resolve/HERB-999")
        assert resp.status_code == 404
        assert resp.json()["error"]["kind"] == "not_found"

    def test_traceability(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        vm = api_client.get(f"{API}/batches/HERB-1/traceability").json()["traceability"]
        assert vm["currentStage"] == "QUALITY_TESTED"
        assert vm["quality"]["status"] == "PASSED"
        assert len(vm["journey"]) == 2

    def test_audit(self, api_client):
        _create_batch(api_client, batchId="HERB-1")
        _append(api_client, "HERB-1", "QUALITY_TEST", QUALITY)
        items = api_client.get(f"{API}/audit").json()["items"]
        assert [a["eventType"] for a in items] == ["QUALITY_TEST", "COLLECTION"]
        assert len(api_client.get(f"{API}/audit", params={"limit": 1}).json()["items"]) == 1

    def test_health(self, api_client):
        assert api_client.get(f"{API}/_health").json()["ok"] is True
        assert api_client.get("/_health").json()["service"] == "herbtrace-api"


class TestTracking:

    def test_decode(self, api_client):
        ev = _create_batch(api_client, batchId="HERB-1").json()["event"]

        dual = api_client.post(f"{API}/tracking/decode", json={"text": f"{ORIGIN}/track/HERB-1/{ev['eventId']}"})
        assert dual.json()["decoded"] == {"batchId": "HERB-1", "eventId": ev["eventId"], "source": "tracking_url"}

        legacy = api_client.post(f"{API}/tracking/decode", json={"text": f"https://x/track/{ev['eventId']}"})
        assert legacy.json()["decoded"]["batchId"] == "HERB-1"

    def test_decode_unresolvable_legacy(self, api_client):
        resp = api_client.post(f"{API}/tracking/decode", json={"text": "https://x/track/EVT-999"})
        assert resp.status_code == 400
        assert resp.json()["error"]["kind"] == "invalid_format"

    def test_qr_png(self, api_client):
        resp = api_client.get(f"{API}/tracking/HERB-1/EVT-1/qr.png")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.content.startswith(b"\x89PNG")

        printable = api_client.get(f"{API}/tracking/HERB-1/EVT-1/qr.png", params={"printable": 1})
        assert printable.content.startswith(b"\x89PNG")
        assert printable.content != resp.content
