"""
tests/test_rate_limit.py
Tests for the per-IP limit on unauthenticated traffic.
"""

import pytest
from httpx import AsyncClient

import config.redis_client
from config.settings import settings
from shared.models.models import User
from tests.conftest import auth_headers


@pytest.fixture
def limited(monkeypatch, redis):
    """Point the middleware at the fake Redis with a limit of two per minute."""
    monkeypatch.setattr(config.redis_client, "redis_client", redis)
    monkeypatch.setattr(settings, "RATE_LIMIT_UNAUTH_PER_MINUTE", 2)
    return redis


@pytest.mark.asyncio
async def test_unauthenticated_requests_over_limit_get_429(client: AsyncClient, limited):
    assert (await client.get("/")).status_code == 200
    assert (await client.get("/")).status_code == 200

    response = await client.get("/")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"

    # The window is counted per client address
    keys = await limited.keys("rate:unauth:*")
    assert len(keys) == 1
    assert int(await limited.get(keys[0])) == 3


@pytest.mark.asyncio
async def test_authenticated_requests_bypass_limit(
    client: AsyncClient, limited, customer: User
):
    for _ in range(2):
        await client.get("/")
    assert (await client.get("/")).status_code == 429

    headers = auth_headers(customer)
    for _ in range(3):
        response = await client.get("/users/me", headers=headers)
        assert response.status_code == 200

    keys = await limited.keys("rate:unauth:*")
    assert int(await limited.get(keys[0])) == 3


@pytest.mark.asyncio
async def test_metrics_endpoint_is_never_limited(client: AsyncClient, limited):
    for _ in range(3):
        await client.get("/")

    response = await client.get("/metrics")
    assert response.status_code == 200
