import asyncio

import pytest

from deaddrop.api import deps
from deaddrop.api.api_v1.endpoints.upload import read_limited
from deaddrop.core.config import settings
from deaddrop.core.errors import ValidationError
from deaddrop.core.rate_limit import InMemoryCounterStore, RateLimiter
from deaddrop.main import app
from deaddrop.services import UploadController

API = settings.API_V1_STR


def upload_file(client, content=b"hello", **extra):
    body = {"filename": "hello.txt", "size": len(content), "mime_type": "text/plain", **extra}
    response = client.post(f"{API}/upload", json=body)
    assert response.status_code == 200, response.text
    ticket = response.json()

    response = client.put(ticket["upload_url"], content=content)
    assert response.status_code == 200, response.text

    response = client.post(f"{API}/upload/complete", json={"code": ticket["code"]})
    assert response.status_code == 200, response.text
    return ticket["code"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_upload_and_download_round_trip(client):
    code = upload_file(client)

    info = client.get(f"{API}/download/{code}")
    assert info.status_code == 200
    assert info.json()["name"] == "hello.txt"
    assert info.json()["downloads_remaining"] == 1
    assert info.headers["cache-control"] == "no-store, private"
    assert "server-timing" in info.headers

    grant = client.post(f"{API}/download/{code}").json()
    response = client.get(grant["download_url"])
    assert response.status_code == 200
    assert response.content == b"hello"
    assert response.headers["content-disposition"].startswith('attachment; filename="hello.txt"')
    assert response.headers["content-length"] == "5"
    assert response.headers["x-content-type-options"] == "nosniff"

    again = client.get(grant["download_url"])
    assert again.status_code == 404
    assert "error" in again.json()

    # The single download used up the file
    assert client.get(f"{API}/download/{code}").status_code == 404


def test_password_flow(client):
    code = upload_file(client, password="pw")

    missing = client.post(f"{API}/download/{code}", json={})
    assert missing.status_code == 401
    assert missing.json() == {"error": "Password required", "requires_password": True}

    assert client.post(f"{API}/download/{code}", json={"password": "bad"}).status_code == 403
    assert client.post(f"{API}/download/{code}", json={"password": "pw"}).status_code == 200


def test_complete_twice(client):
    code = upload_file(client)
    response = client.post(f"{API}/upload/complete", json={"code": code})
    assert response.status_code == 409
    assert response.json() == {"error": "Upload already finalized"}


def test_validation_errors_are_400(client):
    response = client.post(f"{API}/upload", json={"filename": "", "size": 1})
    assert response.status_code == 400
    assert response.json()["field"] == "filename"

    response = client.post(f"{API}/upload", json=[1, 2])
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}

    assert client.get(f"{API}/download/not-a-code").status_code == 400
    assert client.get(f"{API}/download/12345678/stream").status_code == 400


def test_storage_not_configured(client, storage):
    storage.configured = False
    response = client.post(f"{API}/upload", json={"filename": "a.txt", "size": 1})
    assert response.status_code == 503
    assert response.json() == {"error": "Storage not configured"}


def test_share_flow(client):
    response = client.post(
        f"{API}/share",
        json={"type": "note", "content": "meet at noon", "password": "pw", "burn_after_reading": True},
    )
    assert response.status_code == 200, response.text
    code = response.json()["code"]
    assert response.json()["url"].endswith(f"/s/{code}")

    info = client.get(f"{API}/share/{code}/info").json()
    assert info["requires_password"] is True
    assert info["burn_after_reading"] is True

    locked = client.get(f"{API}/share/{code}")
    assert locked.status_code == 401
    assert locked.json()["requires_password"] is True

    view = client.get(f"{API}/share/{code}", params={"password": "pw"})
    assert view.status_code == 200
    assert view.json()["content"] == "meet at noon"
    assert view.json()["burned"] is True

    gone = client.get(f"{API}/share/{code}", params={"password": "pw"})
    assert gone.status_code == 410
    assert gone.json() == {"error": "This share has been destroyed"}


def test_rate_limit(client):
    strict = RateLimiter(InMemoryCounterStore(), limit=2, window_ms=60_000)
    app.dependency_overrides[deps.get_rate_limiter] = lambda: strict

    first = client.get(f"{API}/download/12345678")
    assert first.headers["x-ratelimit-limit"] == "2"
    assert first.headers["x-ratelimit-remaining"] == "1"
    client.get(f"{API}/download/12345678")

    limited = client.get(f"{API}/download/12345678")
    assert limited.status_code == 429
    assert int(limited.headers["retry-after"]) >= 1
    assert limited.json()["error"]

    # Other clients and non API routes are unaffected
    other = client.get(f"{API}/download/12345678", headers={"X-Forwarded-For": "10.1.1.1"})
    assert other.status_code == 404
    assert client.get("/health").status_code == 200


def test_cron_requires_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    assert client.get(f"{API}/cron/cleanup").status_code == 401
    bad = client.get(f"{API}/cron/cleanup", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Unauthorized"}

    ok = client.get(f"{API}/cron/cleanup", headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200
    assert ok.json()["storage_failed"] == 0


def test_cron_sweeps_expired_files(client, clock, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    code = upload_file(client, expiry_minutes=1, max_downloads=-1)
    clock.advance(minutes=2)

    stats = client.get(f"{API}/cron/cleanup").json()

    assert stats["files"] == 1
    assert client.get(f"{API}/download/{code}").status_code == 404


def test_oversized_upload_body_is_rejected_before_storing(client, monkeypatch):
    ticket = client.post(f"{API}/upload", json={"filename": "a.txt", "size": 1}).json()
    stored = []
    monkeypatch.setattr(UploadController, "store_content", lambda self, code, data: stored.append(len(data)))

    response = client.put(ticket["upload_url"], content=b"x" * (2 * 1024 * 1024))

    assert response.status_code == 400
    assert response.json() == {"error": "Upload exceeds the declared size", "field": "size"}
    assert stored == []


def test_body_reader_stops_at_the_limit():
    pulled = []

    async def chunks():
        for _ in range(100):
            pulled.append(1)
            yield b"x" * 1024

    with pytest.raises(ValidationError):
        asyncio.run(read_limited(chunks(), 4096))
    assert len(pulled) == 5

    async def small():
        yield b"ab"
        yield b"c"

    assert asyncio.run(read_limited(small(), 3)) == b"abc"


def test_upload_body_to_unknown_session(client):
    response = client.put(f"{API}/upload/12345678/content", content=b"x")
    assert response.status_code == 404


def test_rate_limit_check_runs_off_the_event_loop(client, limiter, monkeypatch):
    loop_running = []
    original_check = limiter.check

    def recording_check(key):
        try:
            asyncio.get_running_loop()
            loop_running.append(True)
        except RuntimeError:
            loop_running.append(False)
        return original_check(key)

    monkeypatch.setattr(limiter, "check", recording_check)
    client.get("/api/v1/download/12345678")

    assert loop_running == [False]


def test_rate_limited_response_carries_cors_headers(client):
    strict = RateLimiter(InMemoryCounterStore(), limit=1, window_ms=60_000)
    app.dependency_overrides[deps.get_rate_limiter] = lambda: strict
    origin = {"Origin": "https://drop.example"}

    client.get(f"{API}/download/12345678", headers=origin)
    limited = client.get(f"{API}/download/12345678", headers=origin)

    assert limited.status_code == 429
    assert limited.headers["access-control-allow-origin"] == "*"
    assert "Retry-After" in limited.headers["access-control-expose-headers"]
