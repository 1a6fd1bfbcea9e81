"""Tests for run state bookkeeping."""

import pytest

from storeseed.application.run_state import RunState, SkipReason
from storeseed.domain.value_objects import ResourceType
from support import build_catalog


class TestRunState:
    """Tests for RunState."""

    @pytest.mark.asyncio
    async def test_record_created_maps_and_counts(self) -> None:
        """A new resource is mapped and counted as created."""
        state = RunState()
        await state.record_created(ResourceType.CATEGORIES, "hats", 12)

        assert state.category_ids == {"hats": 12}
        assert state.tallies[ResourceType.CATEGORIES].created == 1
        assert not state.resumed

    @pytest.mark.asyncio
    async def test_existing_resource_counts_as_skip(self) -> None:
        """A conflict-recovered resource is mapped and skipped as existing."""
        state = RunState()
        await state.record_created(ResourceType.SIMPLE_ITEMS, "S-1", 5, existed=True)

        assert state.item_ids == {"S-1": 5}
        tally = state.tallies[ResourceType.SIMPLE_ITEMS]
        assert tally.created == 0
        assert tally.skip_reasons == {"existing": 1}
        assert state.resumed

    @pytest.mark.asyncio
    async def test_attribute_taxonomy_id(self) -> None:
        """Recording the taxonomy stores its id."""
        state = RunState()
        await state.record_created(ResourceType.ATTRIBUTE_TAXONOMY, None, 7)
        assert state.attribute_taxonomy_id == 7

    @pytest.mark.asyncio
    async def test_skip_reasons_accumulate(self) -> None:
        """Skips of any reason are counted and mark the run resumed."""
        state = RunState()
        await state.record_skipped(ResourceType.VARIANTS, SkipReason.REJECTED, 2)
        await state.record_skipped(ResourceType.VARIANTS, SkipReason.UNRESOLVED)
        await state.record_skipped(ResourceType.VARIANTS, SkipReason.EXISTING, 0)

        tally = state.tallies[ResourceType.VARIANTS]
        assert tally.skipped == 3
        assert tally.skip_reasons == {"rejected": 2, "unresolved": 1}
        assert state.resumed

    def test_variant_gating(self) -> None:
        """Composites are satisfied once every variant is present."""
        state = RunState()
        item = next(i for i in build_catalog().items if i.key == "C-001")

        assert state.missing_variants(item) == 4
        state.variants_present["C-001"] = 3
        assert not state.variants_satisfied(item)
        state.variants_present["C-001"] = 4
        assert state.variants_satisfied(item)
