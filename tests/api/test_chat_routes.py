"""Tests for chat session and generation job endpoints."""

import asyncio
import base64
import json

from fastapi.testclient import TestClient

from src.clients.models import GenerationResult
from tests.helpers import OTHER_OWNER_ID
from tests.helpers.polling import wait_for_terminal

OTHER = {"X-User-Id": OTHER_OWNER_ID}
PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nimage").decode()


class TestSessions:

    def test_create_list_and_get(self, client: TestClient, session_id):
        listed = client.get("/api/v1/chat/sessions").json()
        assert [s["id"] for s in listed] == [session_id]

        detail = client.get(f"/api/v1/chat/sessions/{session_id}").json()
        assert detail["title"] == "Launch copy"
        assert detail["status"] == "active"
        assert detail["messages"] == []

    def test_unknown_product_is_404(self, client: TestClient):
        response = client.post("/api/v1/chat/sessions", json={"product_id": "missing"})
        assert response.status_code == 404

    def test_archive(self, client: TestClient, session_id):
        response = client.patch(f"/api/v1/chat/sessions/{session_id}", json={"archived": True})
        assert response.json()["status"] == "archived"

    def test_delete(self, client: TestClient, session_id):
        assert client.delete(f"/api/v1/chat/sessions/{session_id}").status_code == 204
        assert client.get(f"/api/v1/chat/sessions/{session_id}").status_code == 404

    def test_other_owner_gets_404(self, client: TestClient, session_id):
        assert client.get(f"/api/v1/chat/sessions/{session_id}", headers=OTHER).status_code == 404
        response = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages",
            json={"prompt": "hi"},
            headers=OTHER,
        )
        assert response.status_code == 404


class TestSendMessage:

    def test_returns_202_and_threads_reply(self, client: TestClient, fake_adapter, session_id):
        fake_adapter.result = GenerationResult(text="A bold new roast.")

        response = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages",
            json={"prompt": "Write a tagline", "options": {"aspect_ratio": "16:9"}},
        )

        assert response.status_code == 202
        job_id = response.json()["job_id"]
        job = wait_for_terminal(client, f"/api/v1/generation/jobs/{job_id}")
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["session_id"] == session_id
        assert job["output"]["text"] == "A bold new roast."

        messages = client.get(f"/api/v1/chat/sessions/{session_id}").json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["content"] == "Write a tagline"
        assert messages[1]["generation_job_id"] == job_id
        assert fake_adapter.calls[0].options.aspect_ratio.value == "16:9"

    def test_media_reply_links_storage(self, client: TestClient, fake_adapter, fake_storage, session_id):
        fake_adapter.result = GenerationResult(media=PNG_B64, media_mime_type="image/png")

        job_id = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": "Studio shot"}
        ).json()["job_id"]
        wait_for_terminal(client, f"/api/v1/generation/jobs/{job_id}")

        reply = client.get(f"/api/v1/chat/sessions/{session_id}").json()["messages"][-1]
        assert reply["media_url"].startswith("https://media.test/users/")
        assert reply["media_data"] is None
        assert reply["metadata"]["uploaded_to_storage"] is True
        assert len(fake_storage.objects) == 1

    def test_reported_error_fails_job(self, client: TestClient, fake_adapter, session_id):
        fake_adapter.result = GenerationResult(error="Quota exceeded")

        job_id = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": "hi"}
        ).json()["job_id"]

        job = wait_for_terminal(client, f"/api/v1/generation/jobs/{job_id}")
        assert job["status"] == "failed"
        assert job["error_message"] == "Quota exceeded"
        reply = client.get(f"/api/v1/chat/sessions/{session_id}").json()["messages"][-1]
        assert reply["metadata"]["error"] is True

    def test_empty_prompt_is_422(self, client: TestClient, session_id):
        response = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": ""}
        )
        assert response.status_code == 422


class TestGenerationJobs:

    def test_list_and_active(self, client: TestClient, session_id):
        job_id = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": "hi"}
        ).json()["job_id"]
        wait_for_terminal(client, f"/api/v1/generation/jobs/{job_id}")

        assert [j["id"] for j in client.get("/api/v1/generation/jobs").json()] == [job_id]
        assert client.get("/api/v1/generation/jobs/active").json() == []
        assert client.get(f"/api/v1/generation/jobs/{job_id}", headers=OTHER).status_code == 404

    def test_stream_of_finished_job(self, client: TestClient, session_id):
        job_id = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": "hi"}
        ).json()["job_id"]
        wait_for_terminal(client, f"/api/v1/generation/jobs/{job_id}")

        response = client.get(f"/api/v1/generation/jobs/{job_id}/stream")

        assert response.status_code == 200
        assert '"status": "completed"' in response.text

    def test_stream_follows_running_job_to_completion(
        self, client: TestClient, fake_adapter, session_id
    ):
        gate = asyncio.Event()
        fake_adapter.gate = gate
        notifier = client.app.state.services.notifier
        job_id = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages", json={"prompt": "hi"}
        ).json()["job_id"]

        async def release_once_watched():
            while not notifier.is_registered(job_id):
                await asyncio.sleep(0.01)
            gate.set()

        client.portal.start_task_soon(release_once_watched)
        response = client.get(f"/api/v1/generation/jobs/{job_id}/stream")

        assert response.status_code == 200
        events = [
            json.loads(line[len("data:"):].strip())
            for line in response.text.splitlines()
            if line.startswith("data:")
        ]
        snapshots = [e["data"] for e in events if e["event"] == "snapshot"]
        assert snapshots[0]["status"] in {"pending", "processing"}
        assert any(
            s["status"] == "processing" and s["progress"] == 80 for s in snapshots[1:]
        )
        assert snapshots[-1]["status"] == "completed"
        assert snapshots[-1]["progress"] == 100
        assert [s["status"] for s in snapshots].count("completed") == 1
        assert not notifier.is_registered(job_id)
