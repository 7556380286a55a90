"""Shared fixtures: configs, a temporary database, and listing factories."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from blocket_notifier.config import (
    AppConfig,
    CrawlerConfig,
    LeadsConfig,
    NotifyConfig,
    TelegramConfig,
)
from blocket_notifier.database.db import Database
from blocket_notifier.database.models import Classification, Listing

BASE_URL = "https://www.blocket.se"
INDEX_URL = f"{BASE_URL}/annonser/stockholm/bostad"

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Returns a fixed time that tests advance by hand."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def crawler_config() -> CrawlerConfig:
    return CrawlerConfig(
        base_url=BASE_URL,
        index_url=INDEX_URL,
        index_params={"cg": "3020", "mre": "8000"},
        user_agents=["pytest-agent/1.0"],
        timeout_seconds=5.0,
        scan_interval_minutes=15,
        max_pages=None,
        index_wave_size=2,
        detail_wave_size=50,
    )


@pytest.fixture
def app_config(crawler_config: CrawlerConfig, tmp_path) -> AppConfig:
    return AppConfig(
        crawler=crawler_config,
        notify=NotifyConfig(wave_size=50),
        leads=LeadsConfig(api_url="https://leads.example/v1/leads"),
        telegram=TelegramConfig(),
        database_path=str(tmp_path / "test.db"),
        log_level="DEBUG",
    )


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def make_listing():
    """Factory for classified, active listings with sensible defaults."""

    def _make(url: str = f"{BASE_URL}/annons/1", **overrides) -> Listing:
        fields = {
            "url": url,
            "title": "Ljus 2:a nära city",
            "rent": "7 500 kr/mån",
            "size": "2 rum, 45 m²",
            "location": "Stockholm, Södermalm",
            "listed_date": T0 - timedelta(days=1),
            "owner": "Anna",
            "body": "Fin lägenhet med balkong.",
            "images": ["https://img.example/1.jpg"],
            "classification": Classification(),
        }
        fields.update(overrides)
        return Listing(**fields)

    return _make
