"""Tests for the Lambda entry point and service lifetime across invocations."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from bmo_server import main
from bmo_server.api import dependencies
from bmo_server.lambda_handler import handler
from bmo_server.services.container import CacheServices
from tests.conftest import FakeUpstream, make_settings


def _function_url_event(body: dict) -> dict:
    return {
        "version": "2.0",
        "routeKey": "$default",
        "rawPath": "/api/chat",
        "rawQueryString": "",
        "headers": {
            "content-type": "application/json",
            "host": "bmo.lambda-url.us-west-2.on.aws",
        },
        "requestContext": {
            "accountId": "123456789012",
            "apiId": "bmo",
            "domainName": "bmo.lambda-url.us-west-2.on.aws",
            "http": {
                "method": "POST",
                "path": "/api/chat",
                "protocol": "HTTP/1.1",
                "sourceIp": "127.0.0.1",
                "userAgent": "pytest",
            },
            "requestId": "req-1",
            "routeKey": "$default",
            "stage": "$default",
            "time": "19/Oct/2026:12:00:00 +0000",
            "timeEpoch": 1792411200000,
        },
        "body": json.dumps(body),
        "isBase64Encoded": False,
    }


@pytest.fixture
def loop():
    """Mangum drives the app on the current event loop; give it a fresh one."""
    new_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(new_loop)
    yield new_loop
    asyncio.set_event_loop(None)
    new_loop.close()


@pytest.fixture
def lazy_services(monkeypatch):
    """Let get_services build real CacheServices against a fake upstream."""
    upstream = FakeUpstream()
    built: list[CacheServices] = []
    create = CacheServices.create

    def create_with_fake_upstream(cls, settings, http_client=None):
        services = create(settings, httpx.AsyncClient(transport=upstream.transport))
        built.append(services)
        return services

    monkeypatch.setattr(dependencies, "settings", make_settings(deployment_mode="lambda"))
    monkeypatch.setattr(CacheServices, "create", classmethod(create_with_fake_upstream))
    yield upstream, built
    if hasattr(main.app.state, "services"):
        del main.app.state.services


def test_warm_invocations_reuse_open_services(loop, lazy_services):
    upstream, built = lazy_services

    first = handler(_function_url_event({"messages": [{"role": "user", "content": "What is your name?"}]}), {})
    second = handler(_function_url_event({"messages": [{"role": "user", "content": "Do you like games?"}]}), {})

    assert first["statusCode"] == 200
    assert json.loads(first["body"])["content"][0]["text"] == "BMO heard: What is your name?"
    assert second["statusCode"] == 200, second["body"]
    assert json.loads(second["body"])["content"][0]["text"] == "BMO heard: Do you like games?"
    assert len(upstream.chat_requests) == 2
    assert len(built) == 1

    loop.run_until_complete(built[0].aclose())


def test_warm_invocation_serves_cached_reply(loop, lazy_services):
    upstream, built = lazy_services
    event = _function_url_event({"messages": [{"role": "user", "content": "What is your name?"}]})

    handler(event, {})
    again = handler(event, {})

    assert again["statusCode"] == 200
    assert again["headers"]["x-cache"] == "HIT"
    assert len(upstream.chat_requests) == 1

    loop.run_until_complete(built[0].aclose())


@pytest.mark.asyncio
async def test_restarted_lifespan_builds_fresh_services(monkeypatch):
    monkeypatch.setattr(main, "settings", make_settings())

    async with main.lifespan(main.app):
        first = main.app.state.services
    assert not hasattr(main.app.state, "services")

    async with main.lifespan(main.app):
        second = main.app.state.services
    assert second is not first
    assert not hasattr(main.app.state, "services")


@pytest.mark.asyncio
async def test_lifespan_leaves_injected_services_open(services):
    main.app.state.services = services
    try:
        async with main.lifespan(main.app):
            assert main.app.state.services is services
        assert main.app.state.services is services
        assert not services.gateway.is_closed
    finally:
        del main.app.state.services
