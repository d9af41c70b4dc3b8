import pytest
from pydantic import ValidationError

from microbridge.core.config import Settings, WorkerSettings


@pytest.mark.parametrize(
    "overrides",
    [
        {"review_window_days": 0},
        {"edit_window_hours": -1},
        {"comment_min_length": 0},
        {"comment_min_length": 50, "comment_max_length": 20},
        {"sweep_batch_size": 0},
        {"sweep_batch_size": 5000},
    ],
)
def test_settings_reject_invalid_review_configuration(overrides: dict[str, int]) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_settings_read_review_window_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MB_REVIEW_WINDOW_DAYS", "7")

    assert Settings().review_window_days == 7


def test_settings_reject_zero_review_window_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MB_REVIEW_WINDOW_DAYS", "0")

    with pytest.raises(ValidationError):
        Settings()


def test_worker_settings_reject_non_positive_interval() -> None:
    with pytest.raises(ValidationError):
        WorkerSettings(sweep_interval_seconds=0)
