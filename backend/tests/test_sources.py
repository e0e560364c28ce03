"""
Tests for the built-in subject catalogue.
"""

import random

import pytest

from history_guesser.errors import SubjectFetchError
from history_guesser.services.sources import DEFAULT_CATALOGUE, StaticSubjectSource

from .conftest import SUBJECTS


class TestStaticSubjectSource:
    async def test_samples_distinct_subjects(self):
        source = StaticSubjectSource(rng=random.Random(7))

        subjects = await source.fetch_round_subjects(5)

        assert len(subjects) == 5
        assert len({s.id for s in subjects}) == 5
        assert all(s in DEFAULT_CATALOGUE for s in subjects)

    async def test_seeded_sampling_is_repeatable(self):
        first = await StaticSubjectSource(rng=random.Random(3)).fetch_round_subjects(4)
        second = await StaticSubjectSource(rng=random.Random(3)).fetch_round_subjects(4)
        assert first == second

    async def test_too_few_subjects(self):
        source = StaticSubjectSource(SUBJECTS[:2])

        with pytest.raises(SubjectFetchError, match="Found 2, need 5"):
            await source.fetch_round_subjects(5)

    def test_catalogue_ids_are_unique(self):
        assert len({s.id for s in DEFAULT_CATALOGUE}) == len(DEFAULT_CATALOGUE)
