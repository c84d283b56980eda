"""Tests for test (assessment) writes and reads."""
import uuid

import pytest
from sqlalchemy import func, select

from catalogue_api import assessments
from catalogue_api.assessments import (
    create_test,
    get_test_with_metadata,
    get_tests_with_metadata,
    update_test_admin_fields,
)
from catalogue_api.errors import InvalidLabel, NotFound, UnresolvedLabel
from catalogue_api.kinds import POPULATION
from catalogue_api.models import Domain, Tag, Test, TestTranslation, ValidationStatus
from catalogue_api.schemas import TestUpdateInput
from catalogue_api.taxonomy import upsert_term

from conftest import make_test_input


async def _count(session, model):
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar()


class TestCreateTest:
    """Tests for create_test."""

    async def test_full_form_round_trip(self, session):
        """Test that every submitted field and relation is read back."""
        await upsert_term(session, POPULATION, "Enfants", "fr")
        test_id = await create_test(
            session,
            make_test_input(
                "EVALO 2-6",
                short_description="Bilan du langage oral",
                objective="Dépister",
                age_min_months=24,
                age_max_months=72,
                population="Enfants",
                duration_minutes=45,
                is_standardized=True,
                publisher="Ortho Édition",
                bibliography=[{"label": "Manuel", "url": "https://example.org/manuel"}],
                domains=["Langage oral", "Attention"],
                tags=["Standardisé"],
                themes=["Phonologie"],
                clinical_profiles=["TDL"],
            ),
        )

        test = await get_test_with_metadata(session, test_id, "fr")

        assert test.name == "EVALO 2-6"
        assert test.slug == "evalo-2-6"
        assert test.short_description == "Bilan du langage oral"
        assert test.population == "Enfants"
        assert test.age_min_months == 24
        assert test.is_standardized is True
        assert test.status == ValidationStatus.draft
        assert test.bibliography[0].url == "https://example.org/manuel"
        assert test.domains == ["Attention", "Langage oral"]
        assert test.tags == ["Standardisé"]
        assert test.themes == ["Phonologie"]
        assert test.clinical_profiles == ["TDL"]

    async def test_missing_taxonomy_is_created(self, session):
        await create_test(session, make_test_input(domains=["Mémoire", "Mémoire "], tags=["Urgent"]))
        assert await _count(session, Domain) == 1
        assert await _count(session, Tag) == 1

    async def test_same_name_gets_distinct_slugs(self, session):
        first = await create_test(session, make_test_input("WISC-V"))
        second = await create_test(session, make_test_input("WISC V"))

        assert (await get_test_with_metadata(session, first, "fr")).slug == "wisc-v"
        assert (await get_test_with_metadata(session, second, "fr")).slug == "wisc-v-2"

    async def test_unknown_population_is_rejected(self, session):
        with pytest.raises(UnresolvedLabel):
            await create_test(session, make_test_input(population="Inconnue"))
        assert await _count(session, Test) == 0

    async def test_blank_name_is_rejected(self, session):
        with pytest.raises(InvalidLabel):
            await create_test(session, make_test_input("   "))

    async def test_failure_rolls_back_every_write(self, database, monkeypatch):
        """Test that a failing relation write leaves no test, translation or taxonomy behind."""
        calls = []

        async def failing_replace(session, relation, subject_id, object_ids):
            calls.append(relation)
            if len(calls) == 2:
                raise RuntimeError("relation write failed")

        monkeypatch.setattr(assessments, "replace_relations", failing_replace)

        with pytest.raises(RuntimeError):
            async with database.transaction() as session:
                await create_test(session, make_test_input(domains=["Mémoire"], tags=["Urgent"]))

        async with database.session() as session:
            assert await _count(session, Test) == 0
            assert await _count(session, TestTranslation) == 0
            assert await _count(session, Domain) == 0
            assert await _count(session, Tag) == 0


class TestUpdateTest:
    """Tests for update_test_admin_fields."""

    async def test_relations_are_replaced(self, session):
        test_id = await create_test(session, make_test_input(domains=["Mémoire"], tags=["Urgent"]))

        await update_test_admin_fields(
            session,
            TestUpdateInput(id=test_id, locale="fr", name="WISC-V", domains=["Attention"]),
        )

        test = await get_test_with_metadata(session, test_id, "fr")
        assert test.domains == ["Attention"]
        assert test.tags == []

    async def test_slug_is_kept_when_name_is_unchanged(self, session):
        test_id = await create_test(session, make_test_input("WISC-V"))
        await update_test_admin_fields(session, TestUpdateInput(id=test_id, locale="fr", name="WISC-V", notes="x"))

        test = await get_test_with_metadata(session, test_id, "fr")
        assert test.slug == "wisc-v"
        assert test.notes == "x"

    async def test_second_locale(self, session):
        """Test that updating in English adds a translation and keeps the French one."""
        test_id = await create_test(session, make_test_input("Échelle de vocabulaire"))
        await update_test_admin_fields(
            session, TestUpdateInput(id=test_id, locale="en", name="Vocabulary scale")
        )

        assert (await get_test_with_metadata(session, test_id, "en")).name == "Vocabulary scale"
        assert (await get_test_with_metadata(session, test_id, "fr")).name == "Échelle de vocabulaire"

    async def test_unknown_test(self, session):
        with pytest.raises(NotFound):
            await update_test_admin_fields(session, TestUpdateInput(id=uuid.uuid4(), locale="fr", name="X"))

    async def test_failed_update_leaves_previous_state(self, database, monkeypatch):
        """Test that a failing relation write during an update restores the state before the call."""
        async with database.transaction() as session:
            test_id = await create_test(session, make_test_input("WISC-V", domains=["Mémoire"]))
        async with database.session() as session:
            before = await get_test_with_metadata(session, test_id, "fr")

        async def failing_replace(session, relation, subject_id, object_ids):
            raise RuntimeError("relation write failed")

        monkeypatch.setattr(assessments, "replace_relations", failing_replace)

        with pytest.raises(RuntimeError):
            async with database.transaction() as session:
                await update_test_admin_fields(
                    session,
                    TestUpdateInput(id=test_id, locale="fr", name="WISC-VI", domains=["Attention"]),
                )

        async with database.session() as session:
            after = await get_test_with_metadata(session, test_id, "fr")
            assert after == before
            assert await _count(session, Domain) == 1


class TestReadTests:
    """Tests for the localized read model."""

    async def test_falls_back_to_default_locale(self, session):
        test_id = await create_test(session, make_test_input("Échelle de vocabulaire"))
        test = await get_test_with_metadata(session, test_id, "en", default_locale="fr")
        assert test.name == "Échelle de vocabulaire"

    async def test_list_is_sorted_and_filterable(self, session):
        await create_test(session, make_test_input("zoo", status=ValidationStatus.published))
        await create_test(session, make_test_input("Alpha"))
        await create_test(session, make_test_input("Beta", status=ValidationStatus.published))

        tests = await get_tests_with_metadata(session, "fr")
        assert [test.name for test in tests] == ["Alpha", "Beta", "zoo"]

        published = await get_tests_with_metadata(session, "fr", status=ValidationStatus.published)
        assert [test.name for test in published] == ["Beta", "zoo"]

    async def test_unknown_test(self, session):
        with pytest.raises(NotFound):
            await get_test_with_metadata(session, uuid.uuid4(), "fr")
