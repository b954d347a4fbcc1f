from reviewer.api import app


def test_index(client):
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Code Review API"
    assert "POST /review" in body["endpoints"]
    assert "GET /health" in body["endpoints"]
    assert body["config"] == {
        "provider": "fake",
        "url": "http://fake.test",
        "model": "test-model",
        "timeout": "120s",
    }


def test_cors_headers(client):
    # Simple check if CORS middleware is active
    response = client.options(
        "/review",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        }
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_module_app_routes():
    paths = {route.path for route in app.routes}
    assert {"/", "/review", "/health"} <= paths
