"""Tests for localized lookups and metadata aggregation."""
import uuid

from catalogue_api.assessments import create_test
from catalogue_api.kinds import DOMAIN
from catalogue_api.metadata import attach_metadata, localized_labels
from catalogue_api.taxonomy import upsert_term

from conftest import make_test_input


class TestLocalizedLabels:
    async def test_prefers_locale_then_default(self, session):
        translated = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        await upsert_term(session, DOMAIN, "Memory", "en", entity_id=translated.id)
        untranslated = await upsert_term(session, DOMAIN, "Attention", "fr")

        labels = await localized_labels(session, DOMAIN, [translated.id, untranslated.id], "en", "fr")
        assert labels == {translated.id: "Memory", untranslated.id: "Attention"}

    async def test_no_ids(self, session):
        assert await localized_labels(session, DOMAIN, [], "fr") == {}

    async def test_entity_without_usable_locale_is_skipped(self, session):
        ref = await upsert_term(session, DOMAIN, "Gedächtnis", "de")
        assert await localized_labels(session, DOMAIN, [ref.id], "en", "fr") == {}


class TestAttachMetadata:
    """Tests for attach_metadata."""

    async def test_empty_records(self, session):
        assert await attach_metadata(session, "test", [], "fr") == []

    async def test_record_without_relations_gets_empty_lists(self, session):
        record_id = uuid.uuid4()
        [record] = await attach_metadata(session, "test", [{"id": record_id, "name": "X"}], "fr")

        assert record == {
            "id": record_id,
            "name": "X",
            "domains": [],
            "themes": [],
            "tags": [],
            "clinical_profiles": [],
        }

    async def test_resource_subject_has_no_clinical_profiles(self, session):
        [record] = await attach_metadata(session, "resource", [{"id": uuid.uuid4()}], "fr")
        assert "clinical_profiles" not in record
        assert record["domains"] == []

    async def test_labels_are_sorted_and_localized(self, session):
        """Test that related labels come back sorted, with default-locale fallback."""
        test_id = await create_test(
            session,
            make_test_input(domains=["Motricité", "Attention"], tags=["Urgent"], themes=["Praxies"]),
        )
        attention = await upsert_term(session, DOMAIN, "Attention", "fr")
        await upsert_term(session, DOMAIN, "Focus", "en", entity_id=attention.id)

        [record] = await attach_metadata(session, "test", [{"id": test_id}], "en", "fr")

        assert record["domains"] == ["Focus", "Motricité"]
        assert record["tags"] == ["Urgent"]
        assert record["themes"] == ["Praxies"]
        assert record["clinical_profiles"] == []

    async def test_input_records_are_not_mutated(self, session):
        original = {"id": uuid.uuid4()}
        await attach_metadata(session, "test", [original], "fr")
        assert original == {"id": original["id"]}
