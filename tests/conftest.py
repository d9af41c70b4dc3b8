from __future__ import annotations

import pytest

from microbridge.services.review_service import ReviewService
from microbridge.services.store import InMemoryRepository
from support import FakeClock, RecordingNotifier, make_job


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository([make_job()])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(repository: InMemoryRepository, clock: FakeClock, notifier: RecordingNotifier) -> ReviewService:
    return ReviewService(repository, notifier=notifier, clock=clock)
