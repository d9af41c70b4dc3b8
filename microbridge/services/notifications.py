from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from microbridge.services.repository import ReviewRecord

logger = logging.getLogger(__name__)

REVIEW_VISIBLE_EVENT = "review.visible"


class NotificationDispatcher(Protocol):
    def review_visible(self, review: ReviewRecord) -> None: ...


def review_visible_payload(review: ReviewRecord) -> dict[str, Any]:
    return {
        "event": REVIEW_VISIBLE_EVENT,
        "review_id": review.id,
        "job_id": review.job_id,
        "reviewee_id": review.reviewee_id,
        "reviewer_id": None if review.anonymous else review.reviewer_id,
        "rating": review.rating,
        "visible_at": review.visible_at.isoformat() if review.visible_at else None,
    }


class LoggingNotificationDispatcher:
    def review_visible(self, review: ReviewRecord) -> None:
        logger.info(
            "notification event=%s review_id=%s reviewee_id=%s",
            REVIEW_VISIBLE_EVENT,
            review.id,
            review.reviewee_id,
        )


class WebhookNotificationDispatcher:
    """Posts review events to a webhook without blocking the caller.

    Each delivery runs as its own task on the running loop. Failures are
    logged; they never propagate back into the review workflow.
    """

    def __init__(self, url: str, *, timeout_seconds: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._tasks: set[asyncio.Task[None]] = set()

    def review_visible(self, review: ReviewRecord) -> None:
        payload = review_visible_payload(review)
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(payload))
        except RuntimeError:
            logger.warning("no running event loop; dropping notification review_id=%s", review.id)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _deliver(self, payload: dict[str, Any]) -> None:
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "notification delivery failed event=%s review_id=%s error=%s",
                payload["event"],
                payload["review_id"],
                exc,
            )
