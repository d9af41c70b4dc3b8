from __future__ import annotations

import asyncio

import httpx

from microbridge.core.config import WorkerSettings
from microbridge.worker.main import next_backoff, run_sweep_cycle
from microbridge.worker.sweep_client import SweepClient


def test_sweep_client_sends_module_credentials() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"jobs_scanned": 3, "reviews_revealed": 2, "jobs_completed": 3, "jobs_failed": 0},
        )

    client = SweepClient(
        "http://api.test/",
        module_id="review-sweeper",
        api_key="sweeper-key",
        transport=httpx.MockTransport(handler),
    )

    result = asyncio.run(client.process_expired_reviews(limit=25))

    assert result == {"jobs_scanned": 3, "reviews_revealed": 2, "jobs_completed": 3, "jobs_failed": 0}
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/reviews/process-expired"
    assert request.url.params["limit"] == "25"
    assert request.headers["X-Module-Id"] == "review-sweeper"
    assert request.headers["X-API-Key"] == "sweeper-key"


def test_sweep_cycle_uses_configured_batch_size() -> None:
    limits: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        limits.append(request.url.params["limit"])
        return httpx.Response(200, json={"jobs_scanned": 0})

    settings = WorkerSettings(sweep_batch_size=40, otel_enabled=False)
    client = SweepClient(
        settings.api_base_url,
        module_id=settings.module_id,
        api_key=settings.api_key,
        transport=httpx.MockTransport(handler),
    )

    result = asyncio.run(run_sweep_cycle(client, settings))

    assert limits == ["40"]
    assert result["reviews_revealed"] == 0


def test_backoff_is_capped() -> None:
    settings = WorkerSettings(max_backoff_seconds=90.0, otel_enabled=False)

    assert next_backoff(60.0, settings) == 90.0
    assert 20.0 <= next_backoff(10.0, settings) <= 25.0
