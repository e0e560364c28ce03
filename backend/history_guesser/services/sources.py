import logging
import random
from typing import List, Optional, Protocol, Sequence

from ..errors import SubjectFetchError
from ..models.game import Coordinates, RoundResult, RoundSubject

logger = logging.getLogger(__name__)


class SubjectSource(Protocol):
    async def fetch_round_subjects(self, count: int) -> List[RoundSubject]: ...


class ResultSink(Protocol):
    async def persist_round_result(self, session_id: str, result: RoundResult) -> None: ...


def _subject(id: str, lat: float, lng: float, year: int, label: str) -> RoundSubject:
    return RoundSubject(
        id=id,
        true_coordinates=Coordinates(lat=lat, lng=lng),
        true_year=year,
        location_label=label,
        media_ref=f"catalogue/{id}.jpg",
    )


# Built-in catalogue used when no photo library is configured
DEFAULT_CATALOGUE = (
    _subject("berlin-wall-fall", 52.5163, 13.3777, 1989, "Brandenburg Gate, Berlin, Germany"),
    _subject("eiffel-tower-construction", 48.8584, 2.2945, 1888, "Champ de Mars, Paris, France"),
    _subject("london-blitz", 51.5138, -0.0984, 1940, "St Paul's Cathedral, London, United Kingdom"),
    _subject("times-square-vj-day", 40.7580, -73.9855, 1945, "Times Square, New York, United States"),
    _subject("tokyo-olympics", 35.6785, 139.7195, 1964, "National Stadium, Tokyo, Japan"),
    _subject("sydney-harbour-bridge", -33.8523, 151.2108, 1932, "Sydney Harbour Bridge, Sydney, Australia"),
    _subject("golden-gate-opening", 37.8199, -122.4783, 1937, "Golden Gate Bridge, San Francisco, United States"),
    _subject("suez-canal-opening", 30.5852, 32.2654, 1869, "Ismailia, Suez Canal, Egypt"),
    _subject("moscow-red-square-parade", 55.7539, 37.6208, 1941, "Red Square, Moscow, Russia"),
    _subject("rio-christ-redeemer", -22.9519, -43.2105, 1931, "Corcovado, Rio de Janeiro, Brazil"),
    _subject("delhi-independence", 28.6562, 77.2410, 1947, "Red Fort, Delhi, India"),
    _subject("rome-olympics", 41.9339, 12.4547, 1960, "Stadio Olimpico, Rome, Italy"),
)


class StaticSubjectSource:
    """Random sample from an in-memory catalogue of subjects."""

    def __init__(self, subjects: Sequence[RoundSubject] = DEFAULT_CATALOGUE, rng: Optional[random.Random] = None):
        self.subjects = tuple(subjects)
        self.rng = rng or random.Random()

    async def fetch_round_subjects(self, count: int) -> List[RoundSubject]:
        if count > len(self.subjects):
            raise SubjectFetchError(
                f"Not enough subjects in catalogue. Found {len(self.subjects)}, need {count}."
            )
        subjects = self.rng.sample(self.subjects, count)
        logger.debug("Picked %d subjects from a catalogue of %d", count, len(self.subjects))
        return subjects
