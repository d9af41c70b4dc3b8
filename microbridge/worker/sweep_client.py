from __future__ import annotations

from typing import Any

import httpx


class SweepClient:
    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "X-Module-Id": module_id,
            "X-API-Key": api_key,
        }
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def process_expired_reviews(self, limit: int = 100) -> dict[str, int]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/reviews/process-expired",
                params={"limit": limit},
                headers=self.headers,
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json()
            return {
                "jobs_scanned": int(payload.get("jobs_scanned", 0)),
                "reviews_revealed": int(payload.get("reviews_revealed", 0)),
                "jobs_completed": int(payload.get("jobs_completed", 0)),
                "jobs_failed": int(payload.get("jobs_failed", 0)),
            }
