"""
CaseVault Backend - Category Resolver Tests
=============================================

What:  Tests for CategoryResolver.resolve() and list_categories().
How:   Runs against the seeded SQLite database: Fire Claim (1) owns
       "Invoice" (10), Motor Claim (2) owns "Police Report" (20).

What we test:
    ✅ Explicit ids are honored only within the same case type
    ✅ Existing names resolve without creating rows
    ✅ New names are created once, with ids above every existing id
    ✅ Blank names fall back to "General Document"
    ✅ Missing, unknown and inactive case types raise MissingClassificationError
    ✅ A lost create race converges on the winner's id
    ✅ Store failures surface as CategoryResolutionError
    ✅ Listing drops inactive rows and duplicate names
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from casevault.exceptions import (
    CategoryResolutionError,
    MissingClassificationError,
    StoreError,
)
from casevault.models import DocumentCategory
from casevault.services.category_resolver import CategoryResolver

from conftest import FIRE_CLAIM_ID, MOTOR_CLAIM_ID, RETIRED_TYPE_ID


async def _count(session, case_type_id, name):
    return await session.scalar(
        select(func.count()).select_from(DocumentCategory).where(
            DocumentCategory.case_type_id == case_type_id,
            DocumentCategory.document_name == name,
        )
    )


class TestResolveExisting:
    def setup_method(self):
        self.resolver = CategoryResolver(default_name="General Document")

    @pytest.mark.asyncio
    async def test_explicit_id_of_same_case_type_is_used(self, seeded_db):
        async with seeded_db() as session:
            assert await self.resolver.resolve(session, FIRE_CLAIM_ID, category_id=10) == 10

    @pytest.mark.asyncio
    async def test_explicit_id_accepts_form_strings(self, seeded_db):
        async with seeded_db() as session:
            assert await self.resolver.resolve(session, FIRE_CLAIM_ID, category_id=" 10 ") == 10

    @pytest.mark.asyncio
    async def test_existing_name_is_reused(self, seeded_db):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(session, FIRE_CLAIM_ID, candidate_name="  Invoice ")
            assert resolved == 10
            assert await _count(session, FIRE_CLAIM_ID, "Invoice") == 1

    @pytest.mark.asyncio
    async def test_category_of_other_case_type_falls_back_to_name(self, seeded_db):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(
                session, FIRE_CLAIM_ID, candidate_name="Invoice", category_id=20,
            )
            assert resolved == 10


class TestResolveCreates:
    def setup_method(self):
        self.resolver = CategoryResolver(default_name="General Document")

    @pytest.mark.asyncio
    async def test_unknown_id_with_name_creates_category_above_max_id(self, seeded_db):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(
                session, FIRE_CLAIM_ID, candidate_name="Photos", category_id=7,
            )

            assert resolved == 21
            created = await session.get(DocumentCategory, resolved)
            assert created.case_type_id == FIRE_CLAIM_ID
            assert created.document_name == "Photos"
            assert created.is_active is True

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, seeded_db):
        async with seeded_db() as session:
            first = await self.resolver.resolve(session, FIRE_CLAIM_ID, candidate_name="Photos")
            second = await self.resolver.resolve(session, FIRE_CLAIM_ID, candidate_name="Photos")

            assert first == second
            assert await _count(session, FIRE_CLAIM_ID, "Photos") == 1

    @pytest.mark.asyncio
    async def test_same_name_in_other_case_type_is_a_new_category(self, seeded_db):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(session, MOTOR_CLAIM_ID, candidate_name="Invoice")
            assert resolved not in (10, 20)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", [None, "", "   "])
    async def test_blank_name_uses_default_category(self, seeded_db, name):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(session, FIRE_CLAIM_ID, candidate_name=name)

            created = await session.get(DocumentCategory, resolved)
            assert created.document_name == "General Document"

    @pytest.mark.asyncio
    async def test_non_numeric_id_is_ignored(self, seeded_db):
        async with seeded_db() as session:
            resolved = await self.resolver.resolve(
                session, FIRE_CLAIM_ID, candidate_name="Invoice", category_id="abc",
            )
            assert resolved == 10


class TestResolveFailures:
    def setup_method(self):
        self.resolver = CategoryResolver(default_name="General Document")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("case_type_id", [None, 99, RETIRED_TYPE_ID])
    async def test_missing_classification(self, seeded_db, case_type_id):
        async with seeded_db() as session:
            with pytest.raises(MissingClassificationError):
                await self.resolver.resolve(session, case_type_id, candidate_name="Invoice")

    @pytest.mark.asyncio
    async def test_counter_failure_is_wrapped(self, seeded_db):
        store = MagicMock()
        store.next_value = AsyncMock(side_effect=StoreError())
        resolver = CategoryResolver(store=store, default_name="General Document")

        async with seeded_db() as session:
            with pytest.raises(CategoryResolutionError) as exc_info:
                await resolver.resolve(session, FIRE_CLAIM_ID, candidate_name="Photos")

        assert exc_info.value.context["classification_id"] == FIRE_CLAIM_ID
        assert exc_info.value.context["error_type"] == "StoreError"


class _RacingResolver(CategoryResolver):
    """First name lookup misses, as if a concurrent caller inserted right after it."""

    def __init__(self):
        super().__init__(default_name="General Document")
        self.lookups = 0

    async def _find_by_name(self, db, case_type_id, name):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super()._find_by_name(db, case_type_id, name)


class TestResolveRace:
    @pytest.mark.asyncio
    async def test_losing_create_returns_existing_id(self, seeded_db):
        resolver = _RacingResolver()

        async with seeded_db() as session:
            resolved = await resolver.resolve(session, FIRE_CLAIM_ID, candidate_name="Invoice")

            assert resolved == 10
            assert resolver.lookups == 2
            assert await _count(session, FIRE_CLAIM_ID, "Invoice") == 1


class TestListCategories:
    def setup_method(self):
        self.resolver = CategoryResolver()

    @pytest.mark.asyncio
    async def test_dedupes_names_and_skips_inactive(self, seeded_db):
        async with seeded_db() as session:
            session.add_all([
                DocumentCategory(category_id=11, case_type_id=FIRE_CLAIM_ID, document_name="invoice "),
                DocumentCategory(category_id=12, case_type_id=FIRE_CLAIM_ID, document_name="Receipts"),
                DocumentCategory(
                    category_id=13, case_type_id=FIRE_CLAIM_ID, document_name="Old Form", is_active=False,
                ),
                DocumentCategory(category_id=14, case_type_id=FIRE_CLAIM_ID, document_name="  "),
            ])
            await session.flush()

            categories = await self.resolver.list_categories(session, FIRE_CLAIM_ID)

        assert [c.category_id for c in categories] == [10, 12]

    @pytest.mark.asyncio
    async def test_other_case_types_are_excluded(self, seeded_db):
        async with seeded_db() as session:
            categories = await self.resolver.list_categories(session, MOTOR_CLAIM_ID)

        assert [c.document_name for c in categories] == ["Police Report"]
