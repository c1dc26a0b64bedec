import asyncio

import pytest
from starlette.datastructures import UploadFile

SAMPLE_TEXT = "It is important to note that, in today's fast-paced world, technology plays a pivotal role."


def test_analyze_text_end_to_end(client, auth, providers):
    user, headers = auth

    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=headers)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    results = body["results"]
    assert set(results) == {"openai", "gptZero", "overall"}
    assert results["overall"]["confidence"] == pytest.approx(0.6)
    assert results["overall"]["isAiGenerated"] is True
    assert results["overall"]["indicators"] == ["Uniform sentence length", "Low burstiness"]
    assert "note" not in body
    assert [a["type"] for a in body["achievements"]] == ["first_analysis"]

    # history reflects the stored row
    history = client.get("/api/analyses", headers=headers).json()["analyses"]
    assert len(history) == 1
    stored = history[0]
    assert stored["id"] == body["analysisId"]
    assert stored["userId"] == user["id"]
    assert stored["contentType"] == "text"
    assert stored["overallConfidence"] == pytest.approx(0.6)
    assert stored["isAiGenerated"] is True
    assert stored["severity"] == "medium"
    assert stored["results"] == results


def test_analyze_requires_auth_and_skips_providers(client, providers):
    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT})

    assert resp.status_code == 401
    assert resp.json() == {"error": "Authentication required"}
    assert all(p.calls == 0 for p in providers)


def test_analyze_invalid_token(client, providers):
    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT},
                       headers={"Authorization": "Bearer not-a-token"})

    assert resp.status_code == 401
    assert all(p.calls == 0 for p in providers)


@pytest.mark.parametrize("text", ["", "   \n "])
def test_analyze_empty_text_rejected(client, auth, providers, text):
    _, headers = auth

    resp = client.post("/api/analyze/text", json={"text": text}, headers=headers)

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert all(p.calls == 0 for p in providers)


def test_analyze_missing_text_field(client, auth):
    _, headers = auth
    resp = client.post("/api/analyze/text", json={}, headers=headers)
    assert resp.status_code == 400


def test_analyze_image(client, auth, providers):
    _, headers = auth

    resp = client.post(
        "/api/analyze/image",
        files={"image": ("photo.png", b"\x89PNG\r\n\x1a\nfake", "image/png")},
        headers=headers,
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert set(body["results"]) == {"aiOrNot", "overall"}
    assert body["results"]["overall"]["confidence"] == pytest.approx(0.8)

    stored = client.get(f"/api/analyses/{body['analysisId']}", headers=headers).json()
    assert stored["contentType"] == "image"
    assert stored["fileName"] == "photo.png"
    assert stored["fileType"] == "image/png"
    assert stored["fileSize"] == len(b"\x89PNG\r\n\x1a\nfake")
    assert stored["contentText"] is None
    assert stored["severity"] == "high"
    assert providers[0].calls == 0


def test_analyze_audio(client, auth):
    _, headers = auth

    resp = client.post(
        "/api/analyze/audio",
        files={"audio": ("clip.mp3", b"ID3fakeaudio", "audio/mpeg")},
        headers=headers,
    )

    assert resp.status_code == 200, resp.text
    assert "aiOrNot" in resp.json()["results"]


def test_analyze_image_wrong_mime(client, auth, providers):
    _, headers = auth

    resp = client.post(
        "/api/analyze/image",
        files={"image": ("notes.txt", b"plain text", "text/plain")},
        headers=headers,
    )

    assert resp.status_code == 400
    assert providers[2].calls == 0


def test_analyze_image_too_large(app, client, auth, providers):
    _, headers = auth
    app.state.analysis_service.max_upload_bytes = 16

    resp = client.post(
        "/api/analyze/image",
        files={"image": ("big.png", b"x" * 17, "image/png")},
        headers=headers,
    )

    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]
    assert providers[2].calls == 0


def test_analyze_image_missing_file(client, auth):
    _, headers = auth
    resp = client.post("/api/analyze/image", headers=headers)
    assert resp.status_code == 400


def test_partial_provider_failure_adds_note(client, auth, providers):
    _, headers = auth
    providers[1].error = "HTTP 503"

    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert set(body["results"]) == {"openai", "overall"}
    assert body["results"]["overall"]["confidence"] == pytest.approx(0.9)
    assert "gptZero" in body["note"]


def test_all_providers_failing_returns_502_and_stores_nothing(client, auth, providers, storage):
    user, headers = auth
    providers[0].error = "down"
    providers[1].error = "down"

    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=headers)

    assert resp.status_code == 502
    assert "error" in resp.json()
    assert storage.count_analyses(user["id"]) == 0


def test_analysis_of_other_user_is_not_found(client, register):
    _, alice = register("alice@example.com")
    _, bob = register("bob@example.com")
    analysis_id = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=alice).json()["analysisId"]

    assert client.get(f"/api/analyses/{analysis_id}", headers=alice).status_code == 200
    assert client.get(f"/api/analyses/{analysis_id}", headers=bob).status_code == 404
    assert client.get("/api/analyses", headers=bob).json()["analyses"] == []
    assert client.get("/api/analyses/unknown-id", headers=alice).status_code == 404


def test_history_limit(client, auth):
    _, headers = auth
    for _ in range(3):
        client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=headers)

    assert len(client.get("/api/analyses?limit=2", headers=headers).json()["analyses"]) == 2
    assert client.get("/api/analyses?limit=0", headers=headers).status_code == 400


def test_analyze_audio_too_large(app, client, auth):
    _, headers = auth
    app.state.analysis_service.max_upload_bytes = 8

    resp = client.post(
        "/api/analyze/audio",
        files={"audio": ("long.mp3", b"ID3" + b"x" * 64, "audio/mpeg")},
        headers=headers,
    )

    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]


def test_upload_read_is_capped_one_byte_past_limit(app, client, auth, monkeypatch):
    _, headers = auth
    app.state.analysis_service.max_upload_bytes = 16
    sizes = []
    original_read = UploadFile.read

    async def recording_read(self, size=-1):
        sizes.append(size)
        return await original_read(self, size)

    monkeypatch.setattr(UploadFile, "read", recording_read)

    resp = client.post(
        "/api/analyze/image",
        files={"image": ("big.png", b"x" * 4096, "image/png")},
        headers=headers,
    )

    assert resp.status_code == 400
    assert sizes == [17]


def test_persistence_and_achievements_run_off_the_event_loop(client, auth, storage, monkeypatch):
    _, headers = auth
    on_loop = {}
    create_analysis = storage.create_analysis

    def loop_running():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def recording_create(record):
        on_loop["create_analysis"] = loop_running()
        return create_analysis(record)

    monkeypatch.setattr(storage, "create_analysis", recording_create)
    count_analyses = storage.count_analyses

    def recording_count(user_id):
        on_loop["achievements"] = loop_running()
        return count_analyses(user_id)

    monkeypatch.setattr(storage, "count_analyses", recording_count)

    resp = client.post("/api/analyze/text", json={"text": SAMPLE_TEXT}, headers=headers)

    assert resp.status_code == 200, resp.text
    assert on_loop == {"create_analysis": False, "achievements": False}
