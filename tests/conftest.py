"""
Shared fixtures: a specification catalog, a pre-filled calendar cache and a
fixed clock.
"""

import json
from datetime import datetime

import pytest
from venue_assistant.calendar_store import CALENDAR_CACHE_KEY, CalendarStore
from venue_assistant.document_indexer import DocumentIndexer
from venue_assistant.query_router import KnowledgeRouter
from venue_assistant.specification_registry import LocalSpecificationSource, SpecificationRegistry
from venue_assistant.storage import MemoryStore


BIBLE_PAGES = [
    "Doors open at 10pm.\n\nLast entry is 3am.",
    "Decibel limit is 105dB at the desk.",
]


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, when: datetime):
        self.now = when.timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_event(event_date: str, title: str = "AMNESIA LONDON") -> dict:
    return {
        "title": title,
        "date": event_date,
        "raw_date": event_date,
        "time": "12:00 - 23:00",
        "description": "Amnesia Ibiza comes to London.",
        "tickets_available": True,
        "url": "https://calendar338.com/events/amnesia",
        "is_fallback": False,
    }


def make_catalog(version: str = "1.0.0", last_updated: str = "2024-06-01T00:00:00Z") -> dict:
    return {
        "metadata": {"version": version, "lastUpdated": last_updated, "baseVersion": "1.0.0"},
        "categories": {
            "SOUND": {
                "DJ Equipment": [
                    {
                        "id": "cdj-3000",
                        "name": "Pioneer CDJ-3000",
                        "quantity": 6,
                        "cost": 150,
                        "currency": "GBP",
                        "lastUpdated": "2024-05-01T00:00:00Z",
                        "previousVersions": [
                            {"quantity": 4, "lastUpdated": "2023-01-10T00:00:00Z", "changeNote": "Initial stock"},
                            {"quantity": 5, "lastUpdated": "2023-09-01T00:00:00Z", "changeNote": "Added booth unit"},
                        ],
                    },
                    {
                        "id": "djm-v10",
                        "name": "Pioneer DJM-V10",
                        "quantity": 2,
                        "cost": 120,
                        "currency": "GBP",
                        "lastUpdated": "2024-02-01T00:00:00Z",
                    },
                ],
                "Speakers": [
                    {
                        "id": "f1-f221",
                        "name": "Funktion-One F221",
                        "quantity": 8,
                        "cost": 400,
                        "currency": "GBP",
                        "lastUpdated": "2023-11-20T00:00:00Z",
                    },
                ],
            },
            "LIGHTING": {
                "Moving Heads": [
                    {
                        "id": "robe-pointe",
                        "name": "Robe Pointe",
                        "quantity": 12,
                        "cost": 60,
                        "currency": "GBP",
                        "lastUpdated": "2024-03-15T00:00:00Z",
                    },
                ],
            },
        },
        "changeLog": [
            {
                "date": "2024-06-01T00:00:00Z",
                "version": "1.0.0",
                "author": "tech-team",
                "changes": [{"id": "cdj-3000", "field": "quantity", "from": 5, "to": 6}],
            },
            {
                "date": "2024-01-05T00:00:00Z",
                "version": "0.9.0",
                "author": "tech-team",
                "changes": [{"id": "djm-v10", "field": "cost", "from": 100, "to": 120}],
            },
            {
                "date": "2024-06-10T00:00:00Z",
                "version": "1.0.1",
                "author": "production",
                "changes": [{"id": "robe-pointe", "field": "cost", "from": 55, "to": 60}],
            },
        ],
    }


def write_catalog(path, catalog: dict) -> str:
    path.write_text(json.dumps(catalog), encoding="utf-8")
    return str(path)


@pytest.fixture
def clock():
    """Clock fixed at midday on Wednesday 2024-06-12."""
    return FakeClock(datetime(2024, 6, 12, 12, 0))


@pytest.fixture
def catalog_path(tmp_path):
    """Specification snapshot on disk."""
    return write_catalog(tmp_path / "specifications.json", make_catalog())


def cached_calendar(events, clock, ttl_seconds: int = 3600) -> CalendarStore:
    """Calendar store whose durable cache already holds ``events``."""
    cache = MemoryStore()
    cache.set(CALENDAR_CACHE_KEY, json.dumps({
        "events": events,
        "fetch_timestamp": clock(),
        "expiry_timestamp": clock() + ttl_seconds,
    }))
    return CalendarStore(cache=cache, ttl_seconds=ttl_seconds, retry_delay=0, clock=clock)


@pytest.fixture
def router(catalog_path, clock):
    """Router over a cached calendar, a small bible and the sample catalog, not yet initialized."""
    return KnowledgeRouter(
        indexer=DocumentIndexer(show_progress=False),
        calendar=cached_calendar([make_event("2024-06-15")], clock),
        registry=SpecificationRegistry(source=LocalSpecificationSource(catalog_path), cache=MemoryStore()),
    )


@pytest.fixture
def ready_router(router):
    """Initialized router."""
    router.initialize(document_pages=BIBLE_PAGES)
    return router
