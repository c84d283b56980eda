"""Tests for bulk actions on tests."""
import uuid

import pytest
from sqlalchemy import func, select

from catalogue_api.assessments import create_test
from catalogue_api.bulk import ACTION_ARCHIVE, ACTION_STATUS, ACTION_TAGS_ADD, ACTION_TAGS_REMOVE, run_bulk
from catalogue_api.errors import CatalogueError, NotFound
from catalogue_api.kinds import TAG
from catalogue_api.models import PatientAssessmentTest, Test, TestTag, ValidationStatus
from catalogue_api.taxonomy import upsert_term

from conftest import make_test_input


async def _status(session, test_id):
    result = await session.execute(select(Test.status).where(Test.id == test_id))
    return result.scalar()


async def _exists(session, test_id):
    result = await session.execute(select(func.count()).select_from(Test).where(Test.id == test_id))
    return result.scalar() == 1


async def _tag_links(session, test_id):
    result = await session.execute(select(TestTag.tag_id).where(TestTag.test_id == test_id))
    return set(result.scalars())


@pytest.fixture
async def two_tests(session):
    first = await create_test(session, make_test_input("EVALO"))
    second = await create_test(session, make_test_input("BILO"))
    return first, second


class TestBulkDelete:
    """Tests for the default delete action."""

    async def test_referenced_tests_are_archived(self, session, two_tests):
        """Test that a test used in a patient assessment is archived instead of deleted."""
        used, unused = two_tests
        session.add(PatientAssessmentTest(test_id=used))
        await session.flush()

        result = await run_bulk(session, [used, unused])

        assert result.archived == [used]
        assert result.deleted == [unused]
        assert result.to_payload() == {"archived": [used], "deleted": [unused]}
        assert await _status(session, used) == ValidationStatus.archived
        assert not await _exists(session, unused)

    async def test_unknown_ids_are_ignored(self, session, two_tests):
        first, _ = two_tests
        result = await run_bulk(session, [uuid.uuid4(), first], "delete")
        assert result.deleted == [first]
        assert result.archived == []


class TestBulkStatusAndArchive:
    async def test_status_change(self, session, two_tests):
        result = await run_bulk(session, list(two_tests), ACTION_STATUS, status=ValidationStatus.published)

        assert result.to_payload() == {"updated": list(two_tests), "status": "published"}
        for test_id in two_tests:
            assert await _status(session, test_id) == ValidationStatus.published

    async def test_status_is_required(self, session, two_tests):
        with pytest.raises(CatalogueError):
            await run_bulk(session, list(two_tests), ACTION_STATUS)

    async def test_archive_even_when_unused(self, session, two_tests):
        result = await run_bulk(session, list(two_tests), ACTION_ARCHIVE)

        assert result.to_payload() == {"archived": list(two_tests)}
        for test_id in two_tests:
            assert await _exists(session, test_id)
            assert await _status(session, test_id) == ValidationStatus.archived

    async def test_unknown_action(self, session, two_tests):
        with pytest.raises(CatalogueError):
            await run_bulk(session, list(two_tests), "publish-all")


class TestBulkTags:
    """Tests for the tags:add and tags:remove actions."""

    async def test_add_is_idempotent(self, session, two_tests):
        tag = await upsert_term(session, TAG, "Prioritaire", "fr")

        await run_bulk(session, list(two_tests), ACTION_TAGS_ADD, tag_ids=[tag.id])
        result = await run_bulk(session, list(two_tests), ACTION_TAGS_ADD, tag_ids=[tag.id])

        assert result.to_payload() == {"updated": list(two_tests)}
        for test_id in two_tests:
            assert await _tag_links(session, test_id) == {tag.id}

    async def test_remove_only_given_tags(self, session):
        test_id = await create_test(session, make_test_input(tags=["Urgent", "Adulte"]))
        urgent = await upsert_term(session, TAG, "Urgent", "fr")
        adult = await upsert_term(session, TAG, "Adulte", "fr")

        await run_bulk(session, [test_id], ACTION_TAGS_REMOVE, tag_ids=[urgent.id])

        assert await _tag_links(session, test_id) == {adult.id}

    async def test_unknown_tag_is_not_found(self, session, two_tests):
        """Test that an unknown tag id is reported before any link is written."""
        tag = await upsert_term(session, TAG, "Prioritaire", "fr")

        with pytest.raises(NotFound):
            await run_bulk(session, list(two_tests), ACTION_TAGS_ADD, tag_ids=[tag.id, uuid.uuid4()])

        for test_id in two_tests:
            assert await _tag_links(session, test_id) == set()
