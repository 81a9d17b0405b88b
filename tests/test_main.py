def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "AI Chat Portal API is running"
    assert body["timestamp"]


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["success"] is True
    assert body["endpoints"] == {
        "auth": "/api/auth",
        "chat": "/api/chat",
        "analysis": "/api/analysis",
    }


def test_unknown_route(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Route not found"}
