import json
import threading
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from channel_pricing import domain, events, main
from channel_pricing.main import app


def _auth_headers(company_id: str, role: str = "revenue_manager") -> dict[str, str]:
    token = jwt.encode({"role": role}, "dev-secret-change-me", algorithm="HS256")
    return {"Authorization": f"Bearer {token}", "X-Company-Id": company_id}


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def headers() -> dict[str, str]:
    # Fresh company per test so workspaces never leak between tests.
    return _auth_headers(f"hotel-{uuid4()}")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_writes_require_pricing_role(client, headers):
    company = headers["X-Company-Id"]
    r = client.post("/stay-types", json={"name": "Standard", "base_price": 1000}, headers={"X-Company-Id": company})
    assert r.status_code == 401

    r = client.post("/stay-types", json={"name": "Standard", "base_price": 1000}, headers=_auth_headers(company, role="guest"))
    assert r.status_code == 403


def test_company_scoped_token_cannot_cross_companies(client):
    token = jwt.encode({"role": "admin", "company_id": "hotel-a"}, "dev-secret-change-me", algorithm="HS256")
    r = client.get("/tabs", headers={"Authorization": f"Bearer {token}", "X-Company-Id": "hotel-b"})
    assert r.status_code == 403


def test_grid_end_to_end(client, headers):
    r = client.post("/meal-plans", json={"code": "BB", "name": "Bed & Breakfast", "per_room_rate": 100}, headers=headers)
    assert r.status_code == 200, r.text
    r = client.post("/stay-types", json={"name": "Standard", "base_price": 1000}, headers=headers)
    assert r.status_code == 200, r.text

    r = client.post("/channels", json={"name": "Booking.com", "tab_key": "OTA"}, headers=headers)
    assert r.status_code == 200, r.text
    channel = r.json()
    assert channel["type"] == "OTA"

    r = client.post(
        "/batch-adjustments",
        json={"scope": "single-subchannel", "channel_id": channel["id"], "operation": "increase", "value": 20},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["updated_channels"][0]["price_modifier_percent"] == pytest.approx(20.0)

    r = client.put("/selection", json={"tab_key": "OTA", "currency": "USD"}, headers=headers)
    assert r.status_code == 200, r.text
    r = client.put("/session", json={"custom_percent": "10", "fixed_amount": "50", "adjustment_kind": "Amount"}, headers=headers)
    assert r.status_code == 200, r.text

    r = client.get("/grid", headers=headers)
    assert r.status_code == 200, r.text
    grid = r.json()
    assert grid["channel"]["id"] == channel["id"]
    assert grid["currency"] == "USD"
    assert len(grid["rows"]) == 2  # 1 stay type x 1 meal plan x 2 guest types
    first = grid["rows"][0]["cells"][0]
    assert first["base_price"] == pytest.approx(1020.0)
    assert first["final_price"] == pytest.approx(((1020 + 100) * 1.10 + 50) * 1.20)
    assert first["final_display"].startswith("$")


def test_session_apply_and_cancel(client, headers):
    client.post("/stay-types", json={"name": "Standard", "base_price": 1000}, headers=headers)

    r = client.post("/session/apply", headers=headers)
    assert r.status_code == 400
    assert r.json() == {
        "kind": "error",
        "code": "NoAdjustmentSelected",
        "message": "Please select at least one pricing adjustment to apply.",
    }

    r = client.put("/session", json={"custom_percent": "150"}, headers=headers)
    assert r.status_code == 200
    r = client.post("/session/apply", headers=headers)
    assert r.json()["code"] == "OutOfRange"

    client.post("/session/cancel", headers=headers)
    client.post("/session/presets/increase_10", headers=headers)
    client.put("/session", json={"target_column": 3}, headers=headers)
    r = client.post("/session/apply", headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    # 1 stay type x 4 default meal plans x 2 guest types, one column
    assert body["impact"] == {"affected_combinations": 8, "affected_columns": 1, "total_cells": 8}
    assert body["message"] == "Applied to 8 price cells across 8 combinations for DIRECT channel."

    r = client.post("/session/cancel", headers=headers)
    assert r.json()["preset_percent"] is None
    assert r.json()["target_column"] is None


def test_target_column_out_of_grid_is_rejected(client, headers):
    r = client.put("/session", json={"target_column": 9}, headers=headers)
    assert r.status_code == 400


def test_batch_scopes_and_errors(client, headers):
    ids = []
    for name in ("Booking.com", "Expedia"):
        r = client.post("/channels", json={"name": name, "tab_key": "OTA"}, headers=headers)
        ids.append(r.json()["id"])

    r = client.post("/batch-adjustments", json={"scope": "selected-subchannels", "value": 5}, headers=headers)
    assert r.json()["code"] == "EmptySelection"

    r = client.post("/batch-adjustments", json={"scope": "all-channels", "value": 0}, headers=headers)
    assert r.json()["code"] == "InvalidPercentage"

    r = client.post("/batch-adjustments", json={"scope": "all-channels", "kind": "fixed", "value": "x"}, headers=headers)
    assert r.json()["code"] == "InvalidAmount"

    client.put("/selection", json={"tab_key": "OTA"}, headers=headers)
    r = client.post("/selection/select-all", headers=headers)
    assert sorted(r.json()["selected_channel_ids"]) == sorted(ids)

    r = client.post("/batch-adjustments", json={"scope": "selected-subchannels", "value": 10}, headers=headers)
    assert r.status_code == 200, r.text
    assert "2 selected sub-channels" in r.json()["message"]
    assert client.get("/selection", headers=headers).json()["selected_channel_ids"] == []

    r = client.post("/batch-adjustments", json={"scope": "all-subchannels", "operation": "decrease", "value": 4}, headers=headers)
    assert r.status_code == 200, r.text
    mods = {c["id"]: c["price_modifier_percent"] for c in client.get("/channels?tab=OTA", headers=headers).json()}
    assert all(m == pytest.approx(6.0) for m in mods.values())

    client.put("/lock", json={"locked": True}, headers=headers)
    r = client.post("/batch-adjustments", json={"scope": "all-channels", "operation": "reset"}, headers=headers)
    assert r.json()["code"] == "GridLocked"


def test_tabs_and_orphans(client, headers):
    r = client.post("/tabs", json={"label": "corporate rate"}, headers=headers)
    assert r.json()["key"] == "CORPORATE_RATE"
    r = client.post("/tabs", json={"label": "Corporate  Rate"}, headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == "DuplicateTab"

    r = client.post("/channels", json={"name": "ACME Corp", "tab_key": "CORPORATE_RATE"}, headers=headers)
    channel_id = r.json()["id"]
    assert r.json()["type"] == ""

    r = client.delete("/tabs/CORPORATE_RATE", headers=headers)
    assert r.status_code == 200
    orphans = client.get("/channels/orphaned", headers=headers).json()
    assert [c["id"] for c in orphans] == [channel_id]

    r = client.delete("/tabs/OTA", headers=headers)
    assert r.json()["code"] == "BuiltInTab"

    r = client.patch(f"/channels/{channel_id}", json={"tab_key": "TA", "name": "ACME Travel"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["tab_key"] == "TA"
    assert r.json()["name"] == "ACME Travel"
    assert client.get("/channels/orphaned", headers=headers).json() == []


def test_delete_channel_clears_selection(client, headers):
    r = client.post("/channels", json={"name": "Walk-in desk", "tab_key": "DIRECT"}, headers=headers)
    channel_id = r.json()["id"]
    client.post(f"/selection/channels/{channel_id}/toggle", headers=headers)
    client.put("/selection", json={"channel_id": channel_id}, headers=headers)

    r = client.delete(f"/channels/{channel_id}", headers=headers)
    assert r.status_code == 200
    sel = client.get("/selection", headers=headers).json()
    assert sel["selected_channel_id"] is None
    assert sel["selected_channel_ids"] == []

    r = client.delete(f"/channels/{channel_id}", headers=headers)
    assert r.status_code == 404


def test_stay_type_delete_removes_rows(client, headers):
    a = client.post("/stay-types", json={"name": "Standard", "base_price": 1000}, headers=headers).json()
    client.post("/stay-types", json={"name": "Deluxe", "base_price": 2000}, headers=headers)
    assert len(client.get("/grid", headers=headers).json()["rows"]) == 16

    r = client.delete(f"/stay-types/{a['id']}", headers=headers)
    assert r.status_code == 200
    rows = client.get("/grid", headers=headers).json()["rows"]
    assert len(rows) == 8
    assert {row["stay_type_name"] for row in rows} == {"Deluxe"}


@pytest.mark.anyio
async def test_event_publish_is_best_effort(monkeypatch):
    monkeypatch.setattr(events, "EVENTS_ENABLED", True)
    monkeypatch.setattr(events, "EVENTS_STRICT", False)

    async def _boom(*args, **kwargs):
        raise RuntimeError("rabbitmq down")

    monkeypatch.setattr(events.aio_pika, "connect_robust", _boom)

    await events.publish("pricing.channel.updated", {"id": "x"})

    monkeypatch.setattr(events, "EVENTS_STRICT", True)
    with pytest.raises(RuntimeError):
        await events.publish("pricing.channel.updated", {"id": "x"})


def test_infinite_batch_value_is_rejected(client, headers):
    r = client.post("/channels", json={"name": "Booking.com", "tab_key": "OTA"}, headers=headers)
    channel_id = r.json()["id"]

    r = client.post(
        "/batch-adjustments",
        json={"scope": "single-subchannel", "channel_id": channel_id, "value": "Infinity"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["code"] == "InvalidPercentage"
    assert client.get("/channels", headers=headers).json()[0]["price_modifier_percent"] == 0


def test_duplicate_meal_plan_uses_error_body(client, headers):
    client.post("/meal-plans", json={"code": "HB", "name": "Half Board"}, headers=headers)
    r = client.post("/meal-plans", json={"code": "hb", "name": "Half Board again"}, headers=headers)
    assert r.status_code == 400
    assert r.json() == {"kind": "error", "code": "DuplicateMealPlan", "message": "Meal plan HB already exists."}


def test_channel_patch_with_unknown_tab_changes_nothing(client, headers):
    r = client.post("/channels", json={"name": "Agoda", "tab_key": "OTA"}, headers=headers)
    channel_id = r.json()["id"]

    r = client.patch(f"/channels/{channel_id}", json={"name": "Agoda Asia", "tab_key": "NOPE"}, headers=headers)
    assert r.status_code == 404
    assert r.json()["code"] == "TabNotFound"
    ch = client.get("/channels", headers=headers).json()[0]
    assert (ch["name"], ch["tab_key"]) == ("Agoda", "OTA")


def test_first_requests_share_one_workspace():
    company_id = f"hotel-{uuid4()}"
    barrier = threading.Barrier(6)
    seen = []

    def _open():
        barrier.wait()
        seen.append(main._workspace(company_id))

    threads = [threading.Thread(target=_open) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 6
    assert all(ws is seen[0] for ws in seen)
    assert [t.key for t in seen[0].registry.tabs()] == ["DIRECT", "WEB", "OTA", "TA"]


def test_batch_event_carries_scope_and_delta():
    ch = domain.Channel(id="c1", name="Agent X", type="Agent", tab_key="TA", price_modifier_percent=5.0)
    req = domain.BatchAdjustmentRequest(scope=domain.AllChannelsOfType("TA"), operation="increase", kind="fixed", value=500)
    result = domain.BatchResult(
        updated_channels=[ch], message="ok", scope_description="all TA sub-channels", delta_percent=5.0
    )

    payload = events.batch_payload(req, result)
    assert payload["scope"] == "AllChannelsOfType"
    assert payload["scope_description"] == "all TA sub-channels"
    assert payload["delta_percent"] == 5.0
    assert payload["channels"] == [{"id": "c1", "price_modifier_percent": 5.0}]

    body = json.loads(events.envelope(events.BATCH_APPLIED, payload, "hotel-1"))
    assert body["type"] == "pricing.batch.applied"
    assert body["company_id"] == "hotel-1"
    assert body["data"] == payload
