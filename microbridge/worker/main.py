from __future__ import annotations

import asyncio
import logging
import random

from opentelemetry import trace

from microbridge.core.config import WorkerSettings, get_worker_settings
from microbridge.core.telemetry import (
    configure_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from microbridge.worker.sweep_client import SweepClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def next_backoff(current: float, settings: WorkerSettings) -> float:
    jitter = random.uniform(0.0, 0.5)
    return min(current * (2.0 + jitter), settings.max_backoff_seconds)


async def run_sweep_cycle(client: SweepClient, settings: WorkerSettings) -> dict[str, int]:
    with tracer.start_as_current_span("worker.sweep_cycle") as span:
        result = await client.process_expired_reviews(limit=settings.sweep_batch_size)
        span.set_attribute("sweep.jobs_scanned", result["jobs_scanned"])
        span.set_attribute("sweep.reviews_revealed", result["reviews_revealed"])

    if result["reviews_revealed"] or result["jobs_completed"]:
        logger.info(
            "sweep revealed reviews=%s completed jobs=%s",
            result["reviews_revealed"],
            result["jobs_completed"],
        )
    if result["jobs_failed"]:
        logger.warning("sweep failed for %s jobs", result["jobs_failed"])
    return result


async def run_worker() -> None:
    settings = get_worker_settings()
    configure_logging()
    telemetry_runtime = setup_worker_telemetry(settings)
    client = SweepClient(
        base_url=settings.api_base_url,
        module_id=settings.module_id,
        api_key=settings.api_key,
    )

    backoff = settings.sweep_interval_seconds

    try:
        while True:
            try:
                await run_sweep_cycle(client, settings)
                backoff = settings.sweep_interval_seconds
                await asyncio.sleep(settings.sweep_interval_seconds)
            except Exception as exc:  # pragma: no cover - keep the sweeper alive across API outages
                sleep_for = next_backoff(backoff, settings)
                logger.exception("sweep iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
