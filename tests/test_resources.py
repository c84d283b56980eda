"""Tests for resource writes and reads."""
import uuid

import pytest
from sqlalchemy import func, select

from catalogue_api.errors import NotFound, UnresolvedLabel
from catalogue_api.kinds import DOMAIN, RESOURCE_TYPE, TAG
from catalogue_api.models import Domain, Resource, ValidationStatus
from catalogue_api.resources import create_resource, get_resources_with_metadata, update_resource
from catalogue_api.schemas import ResourceInput, ResourceUpdateInput
from catalogue_api.taxonomy import upsert_term


@pytest.fixture
async def taxonomy(session):
    video = await upsert_term(session, RESOURCE_TYPE, "Vidéo", "fr")
    await upsert_term(session, RESOURCE_TYPE, "Video", "en", entity_id=video.id)
    await upsert_term(session, DOMAIN, "Langage oral", "fr")
    await upsert_term(session, TAG, "Parents", "fr")


class TestCreateResource:
    """Tests for create_resource."""

    async def test_create_and_read(self, session, taxonomy):
        resource_id = await create_resource(
            session,
            ResourceInput(
                locale="fr",
                title="Stimuler le langage",
                description="Conseils aux parents",
                url="https://example.org/video",
                resource_type="Vidéo",
                domains=["Langage oral"],
                tags=["Parents"],
            ),
        )

        [resource] = await get_resources_with_metadata(session, "fr", ids=[resource_id])
        assert resource.title == "Stimuler le langage"
        assert resource.resource_type == "Vidéo"
        assert resource.domains == ["Langage oral"]
        assert resource.tags == ["Parents"]
        assert resource.status == ValidationStatus.draft

    async def test_english_read_uses_translated_type(self, session, taxonomy):
        resource_id = await create_resource(
            session, ResourceInput(locale="fr", title="Stimuler le langage", resource_type="Vidéo")
        )

        [resource] = await get_resources_with_metadata(session, "en", default_locale="fr", ids=[resource_id])
        assert resource.title == "Stimuler le langage"
        assert resource.resource_type == "Video"

    async def test_unknown_labels_create_nothing(self, database):
        """Test that an unknown tag aborts the whole write, taxonomy included."""
        async with database.transaction() as session:
            await upsert_term(session, DOMAIN, "Langage oral", "fr")

        with pytest.raises(UnresolvedLabel) as exc_info:
            async with database.transaction() as session:
                await create_resource(
                    session,
                    ResourceInput(locale="fr", title="Fiche", domains=["Langage oral"], tags=["Inconnu"]),
                )
        assert exc_info.value.labels == ["Inconnu"]

        async with database.session() as session:
            result = await session.execute(select(func.count()).select_from(Resource))
            assert result.scalar() == 0
            result = await session.execute(select(func.count()).select_from(Domain))
            assert result.scalar() == 1

    async def test_unknown_resource_type(self, session):
        with pytest.raises(UnresolvedLabel):
            await create_resource(session, ResourceInput(locale="fr", title="Fiche", resource_type="Podcast"))


class TestUpdateResource:
    async def test_update_replaces_fields_and_relations(self, session, taxonomy):
        resource_id = await create_resource(
            session, ResourceInput(locale="fr", title="Fiche", tags=["Parents"])
        )
        await update_resource(
            session,
            ResourceUpdateInput(
                id=resource_id, locale="fr", title="Fiche révisée", status=ValidationStatus.published
            ),
        )

        [resource] = await get_resources_with_metadata(session, "fr", status=ValidationStatus.published)
        assert resource.id == resource_id
        assert resource.title == "Fiche révisée"
        assert resource.tags == []

    async def test_unknown_resource(self, session):
        with pytest.raises(NotFound):
            await update_resource(session, ResourceUpdateInput(id=uuid.uuid4(), locale="fr", title="X"))


class TestListResources:
    async def test_sorted_by_title(self, session):
        for title in ("b", "C", "a"):
            await create_resource(session, ResourceInput(locale="fr", title=title))

        resources = await get_resources_with_metadata(session, "fr")
        assert [resource.title for resource in resources] == ["a", "b", "C"]

    async def test_empty(self, session):
        assert await get_resources_with_metadata(session, "fr") == []
