"""
Pytest fixtures for History Guesser tests.
"""

import asyncio
from typing import List

import pytest

from history_guesser.config import Settings
from history_guesser.errors import PersistenceError, SubjectFetchError
from history_guesser.models.game import Coordinates, RoundResult, RoundSubject
from history_guesser.services.engine import GameEngine
from history_guesser.services.storage import MemoryKeyValueStore, SnapshotStore


def make_subject(id: str, lat: float, lng: float, year: int, label: str = "Somewhere") -> RoundSubject:
    return RoundSubject(
        id=id,
        true_coordinates=Coordinates(lat=lat, lng=lng),
        true_year=year,
        location_label=label,
        media_ref=f"images/{id}.jpg",
    )


SUBJECTS = [
    make_subject("paris", 48.8584, 2.2945, 1889, "Paris, France"),
    make_subject("berlin", 52.5163, 13.3777, 1961, "Berlin, Germany"),
    make_subject("cairo", 30.0444, 31.2357, 1925, "Cairo, Egypt"),
    make_subject("lima", -12.0464, -77.0428, 1950, "Lima, Peru"),
    make_subject("kyoto", 35.0116, 135.7681, 1905, "Kyoto, Japan"),
]


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ListSubjectSource:
    """Returns a fixed list of subjects and records requested counts."""

    def __init__(self, subjects: List[RoundSubject]):
        self.subjects = list(subjects)
        self.calls: List[int] = []

    async def fetch_round_subjects(self, count: int) -> List[RoundSubject]:
        self.calls.append(count)
        return self.subjects[:count]


class FailingSubjectSource:
    async def fetch_round_subjects(self, count: int) -> List[RoundSubject]:
        raise SubjectFetchError("Photo library unavailable")


class RecordingSink:
    def __init__(self):
        self.results = []

    async def persist_round_result(self, session_id: str, result: RoundResult) -> None:
        self.results.append((session_id, result))


class FailingSink:
    async def persist_round_result(self, session_id: str, result: RoundResult) -> None:
        raise PersistenceError("Database unavailable")


class BlockingSink:
    """Holds every write until ``release`` is set."""

    def __init__(self):
        self.release = asyncio.Event()
        self.results = []

    async def persist_round_result(self, session_id: str, result: RoundResult) -> None:
        await self.release.wait()
        self.results.append((session_id, result))


class BrokenKeyValueStore(MemoryKeyValueStore):
    def set(self, key: str, value: str) -> None:
        raise OSError("disk full")


@pytest.fixture
def settings() -> Settings:
    return Settings(DEFAULT_TIMER_SECONDS=60, DEFAULT_HINTS_PER_GAME=10, ROUNDS_PER_GAME=5)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def snapshot_store(kv_store, clock) -> SnapshotStore:
    return SnapshotStore(kv_store, clock=clock)


@pytest.fixture
def subject_source() -> ListSubjectSource:
    return ListSubjectSource(SUBJECTS)


@pytest.fixture
def engine(subject_source, snapshot_store, settings, clock) -> GameEngine:
    return GameEngine(
        subject_source=subject_source,
        snapshot_store=snapshot_store,
        settings=settings,
        clock=clock,
        tick_interval=None,
    )
