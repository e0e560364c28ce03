from math import radians, sin, cos, sqrt, atan2, floor
from typing import NamedTuple, Optional, Sequence

from ..constants import (
    EARTH_RADIUS_KM,
    HINT_ACC_PENALTY,
    HINT_XP_PENALTY,
    MAX_DISTANCE_KM,
    TIME_ACCURACY_SCALE_YEARS,
)
from ..models.game import (
    Coordinates,
    RoundResult,
    RoundSubject,
    SENTINEL_COORDINATES,
)


class RoundScore(NamedTuple):
    xp: int
    accuracy: int


class FinalScore(NamedTuple):
    final_xp: int
    final_percent: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(floor(value + 0.5))


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1, lon1: Coordinates of the first point (degrees)
        lat2, lon2: Coordinates of the second point (degrees)

    Returns:
        Distance in kilometers
    """
    # Convert coordinates to radians
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    # Haversine formula
    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = sin(dlat / 2)**2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon / 2)**2
    # Guard against rounding pushing a just past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def location_accuracy(distance_km: float, max_distance_km: float = MAX_DISTANCE_KM) -> float:
    """
    Linear location accuracy: 100% on the spot, 0% at max_distance_km or beyond.

    Returns:
        Accuracy percent in [0, 100], rounded to 2 decimals
    """
    accuracy = 100 - (distance_km / max_distance_km) * 100
    accuracy = min(100.0, max(0.0, accuracy))
    return round(accuracy, 2)


def time_accuracy(guess_year: int, true_year: int) -> float:
    """
    Time accuracy from the year difference.

    100% for the exact year, halved every TIME_ACCURACY_SCALE_YEARS of
    difference and approaching 0 without ever reaching a cut-off.
    """
    difference = abs(guess_year - true_year)
    accuracy = 100 * TIME_ACCURACY_SCALE_YEARS / (TIME_ACCURACY_SCALE_YEARS + difference)
    return round(min(100.0, max(0.0, accuracy)), 2)


def xp_for_accuracy(accuracy: float) -> int:
    """
    XP for an accuracy percentage, with bonus tiers for high accuracy.

    - > 90%: x1.5
    - > 75%: x1.25
    - otherwise: x1
    """
    xp = accuracy
    if accuracy > 90:
        xp *= 1.5
    elif accuracy > 75:
        xp *= 1.25
    return round_half_up(xp)


def round_score(location_xp: float, time_xp: float, hints_used: int) -> RoundScore:
    """
    Combine the location and time components of a round, net of hint penalties.

    Args:
        location_xp: Location component (0-100)
        time_xp: Time component (0-100)
        hints_used: Hints bought this round

    Returns:
        RoundScore with xp and accuracy, both floored at 0
    """
    xp = max(0, location_xp + time_xp - hints_used * HINT_XP_PENALTY)
    penalty = hints_used * HINT_ACC_PENALTY
    accuracy = round_half_up(((location_xp - penalty) + (time_xp - penalty)) / 2)
    return RoundScore(xp=round_half_up(xp), accuracy=max(0, accuracy))


def final_session_score(results: Sequence[RoundResult]) -> FinalScore:
    """Sum XP and average accuracy over finished rounds."""
    if not results:
        return FinalScore(final_xp=0, final_percent=0.0)
    final_xp = sum(r.xp_earned for r in results)
    final_percent = sum(r.accuracy_percent for r in results) / len(results)
    return FinalScore(final_xp=final_xp, final_percent=final_percent)


def score_round(
    subject: RoundSubject,
    round_index: int,
    guess: Optional[Coordinates],
    guess_year: int,
    hints_used: int,
    time_taken_seconds: float,
    timed_out: bool = False,
) -> RoundResult:
    """
    Build the result of a round from the player's guess.

    A missing guess is scored as the (0, 0) sentinel but recorded as None.
    Round XP applies the accuracy bonus tier to the mean of the two
    components, then the hint penalty.
    """
    scored_guess = guess if guess is not None else SENTINEL_COORDINATES
    distance = haversine_distance(
        scored_guess.lat, scored_guess.lng,
        subject.true_coordinates.lat, subject.true_coordinates.lng
    )
    location = location_accuracy(distance)
    when = time_accuracy(guess_year, subject.true_year)

    combined = round_score(location, when, hints_used)
    base_xp = xp_for_accuracy(round_half_up((location + when) / 2))
    xp = max(0, base_xp - hints_used * HINT_XP_PENALTY)

    return RoundResult(
        round_index=round_index,
        subject_id=subject.id,
        guess_coordinates=guess,
        guess_year=guess_year,
        distance_km=distance,
        location_score=location,
        time_score=when,
        hints_used_this_round=hints_used,
        time_taken_seconds=max(0.0, time_taken_seconds),
        accuracy_percent=combined.accuracy,
        xp_earned=xp,
        timed_out=timed_out,
    )
