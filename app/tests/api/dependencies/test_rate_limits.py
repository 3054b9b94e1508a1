from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from slowapi.errors import RateLimitExceeded

from api.dependencies import rate_limits
from api.routes.system import router as system_router


@pytest.mark.asyncio
async def test_rate_limit_handler():
    mock_request = Mock(spec=Request)
    mock_exception = Mock(spec=RateLimitExceeded)

    response = await rate_limits.rate_limit_handler(mock_request, mock_exception)

    assert isinstance(response, JSONResponse)
    assert response.status_code == 429
    assert response.body.decode("utf-8") == '{"message":"Rate limit exceeded"}'


@patch("api.dependencies.rate_limits.get_settings")
def test_manual_trigger_limit_reads_settings(mock_get_settings):
    mock_get_settings.return_value = MagicMock(
        server=MagicMock(MANUAL_TRIGGER_RATE_LIMIT="2/minute")
    )

    assert rate_limits.manual_trigger_limit() == "2/minute"


def test_setup_rate_limiter_registers_limiter():
    app = FastAPI()

    rate_limits.setup_rate_limiter(app)

    assert app.state.limiter is rate_limits.get_limiter()
    assert RateLimitExceeded in app.exception_handlers


def test_system_endpoint_rate_limiting():
    """The /health route rejects the 51st call within a minute."""
    rate_limits.get_limiter().reset()
    app = FastAPI()
    rate_limits.setup_rate_limiter(app)
    app.include_router(system_router)
    client = TestClient(app)

    for _ in range(50):
        assert client.get("/health").status_code == 200

    response = client.get("/health")

    assert response.status_code == 429
    assert response.json() == {"message": "Rate limit exceeded"}
    rate_limits.get_limiter().reset()
