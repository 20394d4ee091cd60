import json

import pytest
import requests

import maintenance
from maintenance import MaintenanceGate, is_admin_path, should_block


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


@pytest.fixture
def gate(tmp_path):
    return MaintenanceGate("https://api.goodluckfashion.in/api/", str(tmp_path / "store-settings.json"))


def serve(monkeypatch, response=None, error=None):
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        if error:
            raise error
        return response

    monkeypatch.setattr(maintenance.requests, "get", fake_get)
    return calls


def test_admin_paths():
    assert is_admin_path("/admin")
    assert is_admin_path("/admin/orders")
    assert not is_admin_path("/administrator")
    assert not is_admin_path("/products/admin")


def test_should_block():
    assert should_block("/", True)
    assert should_block("/cart", True)
    assert not should_block("/admin/settings", True)
    assert not should_block("/cart", False)


def test_flag_on_blocks_everything_but_admin(gate, monkeypatch):
    calls = serve(monkeypatch, FakeResponse(payload={"success": True, "maintenanceMode": True}))
    assert gate.is_blocked("/products")
    assert gate.is_blocked("/checkout")
    assert not gate.is_blocked("/admin/products")
    assert calls == ["https://api.goodluckfashion.in/api/settings/maintenance"] * 2


def test_flag_off_allows_and_is_cached(gate, monkeypatch):
    serve(monkeypatch, FakeResponse(payload={"maintenanceMode": False}))
    assert not gate.is_blocked("/")
    with open(gate.cache_path) as f:
        assert json.load(f) == {"maintenanceMode": False}


def test_unreachable_api_uses_last_known_value(gate, monkeypatch):
    serve(monkeypatch, FakeResponse(payload={"maintenanceMode": False}))
    gate.is_blocked("/")
    serve(monkeypatch, error=requests.ConnectionError("down"))
    assert not gate.is_blocked("/")


def test_unreachable_api_without_cache_fails_closed(gate, monkeypatch):
    serve(monkeypatch, error=requests.ConnectionError("down"))
    assert gate.is_blocked("/")


def test_error_status_falls_back(gate, monkeypatch):
    serve(monkeypatch, FakeResponse(status_code=503))
    assert gate.is_blocked("/")


def test_corrupt_cache_fails_closed(gate, monkeypatch):
    with open(gate.cache_path, "w") as f:
        f.write("{not json")
    serve(monkeypatch, error=requests.Timeout("slow"))
    assert gate.is_blocked("/")


def test_gate_against_the_api(client, admin_headers, tmp_path, monkeypatch):
    def via_test_client(url, timeout):
        return client.get(url.replace("http://testserver", ""))

    monkeypatch.setattr(maintenance.requests, "get", via_test_client)
    gate = MaintenanceGate("http://testserver/api", str(tmp_path / "cache.json"))
    assert not gate.is_blocked("/products")

    client.put("/api/settings", headers=admin_headers, json={"maintenanceMode": True})
    assert gate.is_blocked("/products")
    assert not gate.is_blocked("/admin")
