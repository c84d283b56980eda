"""Tests for slug generation."""
from catalogue_api.kinds import DOMAIN
from catalogue_api.models import DomainTranslation
from catalogue_api.slug import FALLBACK_SLUG, generate_unique_slug, slugify
from catalogue_api.taxonomy import upsert_term


class TestSlugify:
    """Tests for slugify."""

    def test_strips_diacritics(self):
        assert slugify("Été") == "ete"

    def test_joins_words_with_dashes(self):
        assert slugify("Troubles du langage oral") == "troubles-du-langage-oral"

    def test_collapses_punctuation_and_edges(self):
        assert slugify("  --Motricité fine!! ") == "motricite-fine"

    def test_symbols_only_give_empty_slug(self):
        assert slugify("!!!") == ""


class TestGenerateUniqueSlug:
    """Tests for generate_unique_slug against the domain translations table."""

    async def _slug(self, session, name, locale="fr", **kwargs):
        return await generate_unique_slug(
            session,
            name,
            DomainTranslation.slug,
            locale_column=DomainTranslation.locale,
            locale=locale,
            **kwargs,
        )

    async def test_free_slug_is_used_as_is(self, session):
        assert await self._slug(session, "Langage oral") == "langage-oral"

    async def test_taken_slug_gets_numeric_suffix(self, session):
        """Test that a taken slug is suffixed starting at -2."""
        await upsert_term(session, DOMAIN, "Cat", "fr")
        assert await self._slug(session, "Cat") == "cat-2"

    async def test_prefix_matches_do_not_block_base_slug(self, session):
        """Test that 'category' existing does not make 'cat' unavailable."""
        await upsert_term(session, DOMAIN, "Category", "fr")
        assert await self._slug(session, "Cat") == "cat"

    async def test_scope_is_per_locale(self, session):
        await upsert_term(session, DOMAIN, "Cat", "fr")
        assert await self._slug(session, "Cat", locale="en") == "cat"

    async def test_reserved_slugs_are_skipped_and_extended(self, session):
        reserved = {"cat"}
        slug = await self._slug(session, "Cat", reserved=reserved)
        assert slug == "cat-2"
        assert reserved == {"cat", "cat-2"}

    async def test_empty_base_uses_fallback(self, session):
        assert await self._slug(session, "???") == FALLBACK_SLUG

    async def test_excluded_row_does_not_count(self, session):
        ref = await upsert_term(session, DOMAIN, "Cat", "fr")
        slug = await self._slug(session, "Cat", id_column=DomainTranslation.domain_id, exclude_id=ref.id)
        assert slug == "cat"

    async def test_names_with_same_base_in_one_batch(self, session):
        """Test that 'Été' and 'ete' never receive the same slug."""
        reserved = set()
        first = await self._slug(session, "Été", reserved=reserved)
        second = await self._slug(session, "ete", reserved=reserved)
        assert (first, second) == ("ete", "ete-2")
