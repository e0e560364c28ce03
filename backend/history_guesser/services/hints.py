"""
Hint economy.

Each round a player may buy up to HINTS_PER_ROUND hints, and at most
HINTS_PER_GAME (or the session's lower allowance) over the whole game.
Every hint type can be bought once per round. Hint text is derived from the
round subject and cached per subject id.

All functions take and return an immutable HintState; refused selections
return the state unchanged.
"""

import logging
from typing import Optional

from ..constants import HINTS_PER_GAME, HINTS_PER_ROUND
from ..models.game import HintContent, HintState, HintType, RoundSubject

logger = logging.getLogger(__name__)


# Label keywords checked before falling back to coordinate boxes
_CITY_REGIONS = (
    ("berlin", "Central Europe"),
    ("paris", "Western Europe"),
    ("london", "United Kingdom"),
    ("new york", "Eastern United States"),
    ("tokyo", "East Asia"),
    ("sydney", "Australia"),
)


def _region_for(subject: RoundSubject) -> str:
    label = subject.location_label.lower()
    for keyword, region in _CITY_REGIONS:
        if keyword in label:
            return region

    lat = subject.true_coordinates.lat
    lng = subject.true_coordinates.lng

    if lat > 45 and 0 < lng < 30:
        return "Central Europe"
    if lat > 45 and 30 <= lng < 60:
        return "Eastern Europe"
    if 35 < lat <= 45 and -20 < lng < 30:
        return "Southern Europe"
    if lat > 45 and -20 < lng <= 0:
        return "Western Europe"
    if 15 < lat < 75 and -170 < lng < -50:
        return "North America"
    if lat <= 15 and -120 < lng < -30:
        return "Latin America"
    if -35 < lat <= 35 and -20 < lng < 55:
        return "Africa"
    if 0 < lat < 60 and 60 <= lng < 150:
        return "Asia"
    if lat < 0:
        return "Southern Hemisphere"
    return "Unknown Region"


def _decade_for(subject: RoundSubject) -> str:
    decade = (subject.true_year // 10) * 10
    return f"{decade}s"


def generate_hint_content(subject: RoundSubject) -> HintContent:
    """Derive the 'where' (coarse region) and 'when' (decade) hints for a subject."""
    return HintContent(where=_region_for(subject), when=_decade_for(subject))


def hints_cap(hints_allowed_per_game: int) -> int:
    return max(0, min(hints_allowed_per_game, HINTS_PER_GAME))


def can_select_hint(state: HintState, hints_allowed_per_game: int = HINTS_PER_GAME) -> bool:
    """True while both the per-round and the per-game allowance have room."""
    return (
        state.hints_used_this_round < HINTS_PER_ROUND
        and state.hints_used_total < hints_cap(hints_allowed_per_game)
    )


def with_content(state: HintState, subject: RoundSubject) -> HintState:
    """Return a state whose cache holds the content for subject."""
    if subject.id in state.hint_content_cache:
        return state
    cache = dict(state.hint_content_cache)
    cache[subject.id] = generate_hint_content(subject)
    return state.model_copy(update={"hint_content_cache": cache})


def hint_content(state: HintState, subject: RoundSubject, hint_type: HintType) -> Optional[str]:
    content = state.hint_content_cache.get(subject.id)
    if content is None:
        content = generate_hint_content(subject)
    return content.get(hint_type)


def select_hint(
    state: HintState,
    hint_type: HintType,
    subject: RoundSubject,
    hints_allowed_per_game: int = HINTS_PER_GAME,
) -> HintState:
    """
    Buy a hint for the current round.

    Refusals are logged and leave the state untouched:
    - a per-round or per-game cap has been reached
    - the hint type was already bought this round
    - no content is available for the hint type
    """
    try:
        hint_type = HintType(hint_type)
    except ValueError:
        logger.warning("Cannot select hint: unknown hint type %r", hint_type)
        return state

    if not can_select_hint(state, hints_allowed_per_game):
        logger.warning(
            "Cannot select hint: limit reached (%d this round, %d this game)",
            state.hints_used_this_round, state.hints_used_total
        )
        return state

    if hint_type in state.selected_hint_types:
        logger.warning("Cannot select hint: %s already selected this round", hint_type.value)
        return state

    updated = with_content(state, subject)
    if not updated.hint_content_cache[subject.id].get(hint_type):
        logger.error("Cannot select hint: no %s content for subject %s", hint_type.value, subject.id)
        return state

    logger.info("Hint %s selected for subject %s", hint_type.value, subject.id)
    return updated.model_copy(update={
        "selected_hint_types": updated.selected_hint_types + (hint_type,),
        "hints_used_this_round": updated.hints_used_this_round + 1,
        "hints_used_total": updated.hints_used_total + 1,
    })


def reset_for_new_round(state: HintState, finished_subject_id: Optional[str] = None) -> HintState:
    """Clear the round's selection, keeping the game total and other subjects' content."""
    cache = dict(state.hint_content_cache)
    if finished_subject_id is not None:
        cache.pop(finished_subject_id, None)
    return state.model_copy(update={
        "selected_hint_types": (),
        "hints_used_this_round": 0,
        "hint_content_cache": cache,
    })


def reset_for_new_session() -> HintState:
    return HintState()
