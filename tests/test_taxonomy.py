"""Tests for taxonomy upsert, update, deletion and listing."""
import uuid

import pytest
from sqlalchemy import func, select

from catalogue_api.assessments import create_test
from catalogue_api.errors import DuplicateLabel, InvalidLabel, NotFound
from catalogue_api.kinds import CLINICAL_PROFILE, DOMAIN, TAG, THEME
from catalogue_api.metadata import localized_translations
from catalogue_api.models import Domain, DomainTranslation, TestDomain, Theme
from catalogue_api.taxonomy import delete_translation, list_taxonomy, update_term, upsert_term, upsert_terms

from conftest import make_test_input


async def _count(session, model, *conditions):
    result = await session.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar()


class TestUpsertTerm:
    """Tests for upsert_term."""

    async def test_creates_entity_and_translation(self, session):
        ref = await upsert_term(session, DOMAIN, "  Langage oral ", "fr")

        assert ref.label == "Langage oral"
        rows = await localized_translations(session, DOMAIN, "fr")
        assert rows[ref.id].label == "Langage oral"
        assert rows[ref.id].slug == "langage-oral"
        assert rows[ref.id].synonyms == []

    async def test_same_label_is_idempotent(self, session):
        """Test that re-submitting a label reuses the entity and its single translation."""
        first = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        second = await upsert_term(session, DOMAIN, "Mémoire", "fr")

        assert first.id == second.id
        assert await _count(session, Domain) == 1
        assert await _count(session, DomainTranslation) == 1

    async def test_label_matches_across_locales(self, session):
        """Test that a label known in another locale attaches to the same entity."""
        fr = await upsert_term(session, DOMAIN, "Attention", "fr")
        en = await upsert_term(session, DOMAIN, "Attention", "en")

        assert fr.id == en.id
        assert await _count(session, DomainTranslation, DomainTranslation.domain_id == fr.id) == 2

    async def test_entity_id_adds_a_locale(self, session):
        fr = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        en = await upsert_term(session, DOMAIN, "Memory", "en", entity_id=fr.id)

        assert en.id == fr.id
        rows = await localized_translations(session, DOMAIN, "en")
        assert rows[fr.id].label == "Memory"

    async def test_synonyms_survive_a_plain_resubmit(self, session):
        """Test that a later upsert without synonyms keeps the stored ones."""
        ref = await upsert_term(session, DOMAIN, "Mémoire", "fr", synonyms=["rappel", "souvenir"])
        await upsert_term(session, DOMAIN, "Mémoire", "fr")

        rows = await localized_translations(session, DOMAIN, "fr")
        assert rows[ref.id].synonyms == ["rappel", "souvenir"]

    async def test_blank_label_is_rejected(self, session):
        with pytest.raises(InvalidLabel):
            await upsert_term(session, DOMAIN, "   ", "fr")

    async def test_similar_labels_get_distinct_slugs(self, session):
        first = await upsert_term(session, DOMAIN, "Langage oral", "fr")
        second = await upsert_term(session, DOMAIN, "Langage-oral", "fr")

        rows = await localized_translations(session, DOMAIN, "fr")
        assert rows[first.id].slug == "langage-oral"
        assert rows[second.id].slug == "langage-oral-2"

    async def test_theme_gets_entity_slug_and_domains(self, session):
        domain = await upsert_term(session, DOMAIN, "Langage", "fr")
        theme = await upsert_term(
            session, THEME, "Phonologie", "fr", description="Sons de la langue", domain_ids=[domain.id]
        )

        result = await session.execute(select(Theme.slug).where(Theme.id == theme.id))
        assert result.scalar() == "phonologie"

        data = await list_taxonomy(session, "fr")
        [listed] = data["themes"]
        assert listed["description"] == "Sons de la langue"
        assert listed["domains"] == [{"id": domain.id, "label": "Langage"}]

    async def test_unknown_theme_domain_is_not_found(self, database):
        """Test that a theme pointing at a missing domain is rejected without writing anything."""
        with pytest.raises(NotFound):
            async with database.transaction() as session:
                await upsert_term(session, THEME, "Phonologie", "fr", domain_ids=[uuid.uuid4()])

        async with database.session() as session:
            assert await _count(session, Theme) == 0

    async def test_tag_color(self, session):
        await upsert_term(session, TAG, "Urgent", "fr", color="red")
        data = await list_taxonomy(session, "fr")
        assert data["tags"][0]["color"] == "red"

    async def test_tag_label_conflict_is_a_duplicate(self, database):
        """Test that the tag's own unique label surfaces as DuplicateLabel."""
        async with database.transaction() as session:
            ref = await upsert_term(session, TAG, "Urgent", "fr")
            await update_term(session, TAG, ref.id, "fr", "Prioritaire")

        with pytest.raises(DuplicateLabel):
            async with database.transaction() as session:
                await upsert_term(session, TAG, "Urgent", "fr")


class TestUpsertTerms:
    async def test_batch_is_deduplicated(self, session):
        refs = await upsert_terms(session, DOMAIN, ["Mémoire", " Mémoire", "", "Attention"], "fr")

        assert [ref.label for ref in refs] == ["Mémoire", "Attention"]
        assert await _count(session, Domain) == 2


class TestUpdateTerm:
    """Tests for update_term."""

    async def test_rename_regenerates_domain_slug(self, session):
        ref = await upsert_term(session, DOMAIN, "Langage", "fr")
        await update_term(session, DOMAIN, ref.id, "fr", "Langage écrit", synonyms=["lecture"])

        rows = await localized_translations(session, DOMAIN, "fr")
        assert rows[ref.id].label == "Langage écrit"
        assert rows[ref.id].slug == "langage-ecrit"
        assert rows[ref.id].synonyms == ["lecture"]

    async def test_own_slug_is_kept(self, session):
        """Test that an update keeping the label does not suffix its own slug."""
        ref = await upsert_term(session, DOMAIN, "Langage", "fr")
        await update_term(session, DOMAIN, ref.id, "fr", "Langage")

        rows = await localized_translations(session, DOMAIN, "fr")
        assert rows[ref.id].slug == "langage"

    async def test_missing_translation_is_not_found(self, session):
        ref = await upsert_term(session, DOMAIN, "Langage", "fr")
        with pytest.raises(NotFound):
            await update_term(session, DOMAIN, ref.id, "en", "Language")

    async def test_replaces_theme_domains(self, session):
        first = await upsert_term(session, DOMAIN, "Langage", "fr")
        second = await upsert_term(session, DOMAIN, "Motricité", "fr")
        theme = await upsert_term(session, THEME, "Praxies", "fr", domain_ids=[first.id])

        await update_term(session, THEME, theme.id, "fr", "Praxies", domain_ids=[second.id])

        data = await list_taxonomy(session, "fr")
        assert data["themes"][0]["domains"] == [{"id": second.id, "label": "Motricité"}]

    async def test_unknown_theme_domain_keeps_existing_links(self, session):
        domain = await upsert_term(session, DOMAIN, "Langage", "fr")
        theme = await upsert_term(session, THEME, "Praxies", "fr", domain_ids=[domain.id])

        with pytest.raises(NotFound):
            await update_term(session, THEME, theme.id, "fr", "Praxies", domain_ids=[domain.id, uuid.uuid4()])

        data = await list_taxonomy(session, "fr")
        assert data["themes"][0]["domains"] == [{"id": domain.id, "label": "Langage"}]


class TestDeleteTranslation:
    """Tests for delete_translation and orphan reaping."""

    async def test_entity_survives_while_a_locale_remains(self, session):
        ref = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        await upsert_term(session, DOMAIN, "Memory", "en", entity_id=ref.id)

        deleted = await delete_translation(session, DOMAIN, "en", entity_id=ref.id)

        assert deleted.label == "Memory"
        assert deleted.reaped is False
        assert await _count(session, Domain, Domain.id == ref.id) == 1

    async def test_last_translation_reaps_entity_and_relations(self, session):
        """Test that removing the last translation deletes the domain and its test links."""
        test_id = await create_test(session, make_test_input(domains=["Mémoire"]))
        [ref] = await upsert_terms(session, DOMAIN, ["Mémoire"], "fr")
        assert await _count(session, TestDomain, TestDomain.test_id == test_id) == 1

        deleted = await delete_translation(session, DOMAIN, "fr", entity_id=ref.id)

        assert deleted.reaped is True
        assert deleted.label == "Mémoire"
        assert await _count(session, Domain, Domain.id == ref.id) == 0
        assert await _count(session, TestDomain, TestDomain.test_id == test_id) == 0

    async def test_delete_by_label(self, session):
        await upsert_term(session, CLINICAL_PROFILE, "TDAH", "fr")
        deleted = await delete_translation(session, CLINICAL_PROFILE, "fr", label="TDAH")
        assert deleted.reaped is True

    async def test_missing_translation_is_not_found(self, session):
        ref = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        with pytest.raises(NotFound):
            await delete_translation(session, DOMAIN, "en", entity_id=ref.id)

    async def test_unknown_label_is_not_found(self, session):
        with pytest.raises(NotFound):
            await delete_translation(session, CLINICAL_PROFILE, "fr", label="Inconnu")


class TestListTaxonomy:
    """Tests for list_taxonomy."""

    async def test_sorted_by_label(self, session):
        for label in ("motricité", "Attention", "Langage"):
            await upsert_term(session, DOMAIN, label, "fr")

        data = await list_taxonomy(session, "fr")
        assert [item["label"] for item in data["domains"]] == ["Attention", "Langage", "motricité"]
        assert set(data) == {"domains", "tags", "themes", "resourceTypes"}

    async def test_falls_back_to_default_locale(self, session):
        """Test that an entity without an English row is listed with its French label."""
        translated = await upsert_term(session, DOMAIN, "Mémoire", "fr")
        await upsert_term(session, DOMAIN, "Memory", "en", entity_id=translated.id)
        await upsert_term(session, DOMAIN, "Attention", "fr")

        data = await list_taxonomy(session, "en", "fr")
        assert [item["label"] for item in data["domains"]] == ["Attention", "Memory"]

    async def test_empty_catalogue(self, session):
        data = await list_taxonomy(session, "fr")
        assert data == {"domains": [], "tags": [], "themes": [], "resourceTypes": []}
