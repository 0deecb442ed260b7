"""Integration tests for the beacon endpoint."""

from __future__ import annotations

from fastapi.testclient import TestClient

BEACON_PATH = "/traffic/beacon"


def _form(**overrides) -> dict[str, str]:
    form = {
        "nonce": "page-nonce-1",
        "request_url": "https://example.com/blog/hello-world",
        "ip_address": "203.0.113.7",
    }
    form.update(overrides)
    return form


def test_beacon_is_logged(client: TestClient, fake_sink) -> None:
    response = client.post(BEACON_PATH, data=_form(), headers={"Referer": "https://example.com/"})

    assert response.status_code == 200
    assert response.json() == {
        "status": "logged",
        "message": "Request logged successfully.",
        "reason": None,
    }
    record = fake_sink.records[0]
    assert record.origin_kind.value == "beacon"
    assert record.target_path == "/blog/hello-world"
    assert record.client_ip == "203.0.113.7"
    assert record.referrer == "https://example.com/"
    assert record.status_code is None


def test_beacon_without_nonce_is_rejected(client: TestClient, fake_sink) -> None:
    form = _form()
    del form["nonce"]

    response = client.post(BEACON_PATH, data=form)

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "rejected"
    assert body["reason"] == "missing_token"
    assert fake_sink.records == []


def test_repeated_beacon_is_duplicate(client: TestClient, fake_sink) -> None:
    client.post(BEACON_PATH, data=_form())
    response = client.post(BEACON_PATH, data=_form())

    assert response.status_code == 200
    assert response.json()["status"] == "duplicate"
    assert len(fake_sink.records) == 1


def test_localhost_beacon_is_ignored(client: TestClient, fake_sink) -> None:
    response = client.post(BEACON_PATH, data=_form(request_url="http://localhost:8000/blog"))

    assert response.status_code == 200
    assert response.json()["reason"] == "localhost"
    assert fake_sink.records == []


def test_beacon_records_signed_in_role(client: TestClient, fake_sink, admin_cookie) -> None:
    client.cookies.update(admin_cookie)

    client.post(BEACON_PATH, data=_form())

    assert fake_sink.records[0].actor_role == "admin"


def test_beacon_rejects_get(client: TestClient, fake_sink) -> None:
    response = client.get(BEACON_PATH)

    assert response.status_code == 405
    assert fake_sink.records == []
