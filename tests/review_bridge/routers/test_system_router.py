"""Tests for the system API."""


def test_health(client):
    resp = client.get("/system/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["store_backend"] == "inmemory"
    assert data["reaper_running"] is False


def test_stats(client):
    client.put("/rooms/!R:domain/mapping", json={"app_id": "app.example"})
    client.post(
        "/events/reviews",
        json={"review_id": "r1", "app_id": "app.example", "rating": 4},
    )
    data = client.get("/system/stats").json()
    assert data["identities"] == {"total_identities": 1, "total_mappings": 1}
    assert data["rooms"]["total_room_mappings"] == 1
    assert data["messages"]["by_kind"]["review"] == 1
    assert data["threads"]["active_threads"] == 1
