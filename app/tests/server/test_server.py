from fastapi.testclient import TestClient

from server import server

app = server.handler
client = TestClient(app)


def test_api_routes_loaded():
    paths = {route.path for route in app.routes}

    assert "/health" in paths
    assert "/version" in paths
    assert "/api/v1/deliveries" in paths
    assert "/api/v1/deliveries/{record_id}/retry" in paths


def test_server_cors_configuration():
    middleware_classes = [m.cls.__name__ for m in app.user_middleware]
    assert "CORSMiddleware" in middleware_classes


def test_limiter_attached_to_app():
    assert app.state.limiter is server.limiter


def test_server_404_for_unmapped_routes():
    response = client.get("/some/unmapped/path")

    assert response.status_code == 404
    assert response.headers[server.CORRELATION_HEADER]
