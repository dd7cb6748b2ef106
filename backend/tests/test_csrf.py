import time

from app.core.csrf import generate_csrf_token, verify_csrf_token


def test_token_roundtrip_and_expiry():
    now = int(time.time() * 1000)
    token = generate_csrf_token(now_ms=now)
    assert verify_csrf_token(token, now_ms=now + 1000)

    day_ms = 24 * 60 * 60 * 1000
    assert not verify_csrf_token(token, now_ms=now + day_ms + 1)


def test_tampered_token_rejected():
    token = generate_csrf_token()
    ts, sig = token.split(".")
    assert not verify_csrf_token(f"{ts}.{'0' * len(sig)}")
    assert not verify_csrf_token(f"{int(ts) + 1}.{sig}")
    assert not verify_csrf_token("garbage")


def test_mutation_without_header_is_rejected(anon_client):
    r = anon_client.post("/api/auth/logout")
    assert r.status_code == 403
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "CSRF_INVALID"


def test_invalid_header_is_rejected(anon_client):
    r = anon_client.post("/api/auth/logout", headers={"x-csrf-token": "123.abc"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "CSRF_INVALID"


def test_expired_header_is_rejected(client):
    r = client.post("/api/auth/logout", headers={"x-csrf-token": generate_csrf_token(now_ms=1_000)})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "CSRF_INVALID"


def test_header_must_match_cookie(anon_client):
    now = int(time.time() * 1000)
    anon_client.cookies.set("csrf_token", generate_csrf_token(now_ms=now - 5))
    r = anon_client.post("/api/auth/logout", headers={"x-csrf-token": generate_csrf_token(now_ms=now)})
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "CSRF token mismatch"


def test_valid_header_passes(client):
    r = client.post("/api/auth/logout")
    assert r.status_code == 200


def test_exempt_paths_skip_check(anon_client):
    r = anon_client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "whatever1"})
    assert r.status_code == 401

    r = anon_client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200


def test_safe_methods_skip_check(anon_client):
    assert anon_client.get("/api/topics").status_code == 200
