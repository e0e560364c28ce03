"""
Tests for the hint economy.
"""

import itertools

from history_guesser.constants import HINTS_PER_GAME, HINTS_PER_ROUND
from history_guesser.models.game import HintState, HintType
from history_guesser.services import hints

from .conftest import SUBJECTS, make_subject


class TestHintContent:
    def test_known_city_label(self):
        content = hints.generate_hint_content(SUBJECTS[1])
        assert content.where == "Central Europe"
        assert content.when == "1960s"

    def test_region_from_coordinates(self):
        subject = make_subject("x", -37.81, 144.96, 1952, "Melbourne")
        content = hints.generate_hint_content(subject)
        assert content.where == "Southern Hemisphere"
        assert content.when == "1950s"

    def test_north_america_box(self):
        subject = make_subject("x", 41.88, -87.63, 1893, "Chicago")
        assert hints.generate_hint_content(subject).where == "North America"

    def test_content_is_cached_per_subject(self):
        state = hints.with_content(HintState(), SUBJECTS[0])
        assert state.hint_content_cache[SUBJECTS[0].id].when == "1880s"
        assert hints.with_content(state, SUBJECTS[0]) is state


class TestSelectHint:
    def test_select_increments_both_counters(self):
        state = hints.select_hint(HintState(), HintType.WHERE, SUBJECTS[0])

        assert state.selected_hint_types == (HintType.WHERE,)
        assert state.hints_used_this_round == 1
        assert state.hints_used_total == 1

    def test_same_type_only_once_per_round(self):
        state = hints.select_hint(HintState(), HintType.WHEN, SUBJECTS[0])
        again = hints.select_hint(state, HintType.WHEN, SUBJECTS[0])

        assert again == state

    def test_per_round_cap(self):
        state = HintState()
        state = hints.select_hint(state, HintType.WHERE, SUBJECTS[0])
        state = hints.select_hint(state, HintType.WHEN, SUBJECTS[0])

        assert state.hints_used_this_round == HINTS_PER_ROUND
        assert not hints.can_select_hint(state)

    def test_per_game_cap(self):
        state = HintState(hints_used_total=HINTS_PER_GAME)
        assert not hints.can_select_hint(state)
        assert hints.select_hint(state, HintType.WHERE, SUBJECTS[0]) == state

    def test_session_allowance_below_game_cap(self):
        state = HintState(hints_used_total=3)
        assert not hints.can_select_hint(state, hints_allowed_per_game=3)
        assert hints.can_select_hint(state, hints_allowed_per_game=4)

    def test_unknown_type_is_refused(self):
        state = HintState()
        assert hints.select_hint(state, "who", SUBJECTS[0]) == state

    def test_caps_hold_for_any_call_order(self):
        """Repeated and invalid selections never push counters past the caps."""
        state = HintState()
        calls = itertools.islice(itertools.cycle([HintType.WHERE, HintType.WHEN, "bogus", HintType.WHERE]), 200)
        for i, hint_type in enumerate(calls):
            state = hints.select_hint(state, hint_type, SUBJECTS[i % len(SUBJECTS)])
            assert state.hints_used_this_round <= HINTS_PER_ROUND
            assert state.hints_used_total <= HINTS_PER_GAME
            if i % 7 == 6:
                state = hints.reset_for_new_round(state)

        assert state.hints_used_total == HINTS_PER_GAME


class TestResets:
    def test_round_reset_keeps_total(self):
        state = hints.select_hint(HintState(), HintType.WHERE, SUBJECTS[0])
        state = hints.with_content(state, SUBJECTS[1])

        state = hints.reset_for_new_round(state, SUBJECTS[0].id)

        assert state.selected_hint_types == ()
        assert state.hints_used_this_round == 0
        assert state.hints_used_total == 1
        assert SUBJECTS[0].id not in state.hint_content_cache
        assert SUBJECTS[1].id in state.hint_content_cache

    def test_session_reset_clears_everything(self):
        assert hints.reset_for_new_session() == HintState()
