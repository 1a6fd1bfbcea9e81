"""Tests for domain value objects."""

import pytest

from storeseed.domain.value_objects import OwnershipTag, ResourceType


class TestOwnershipTag:
    """Tests for OwnershipTag."""

    @pytest.fixture
    def tag(self) -> OwnershipTag:
        """Create a tag."""
        return OwnershipTag("_generated_by", "storeseed")

    def test_as_meta(self, tag: OwnershipTag) -> None:
        """Tag renders as a meta_data entry."""
        assert tag.as_meta() == {"key": "_generated_by", "value": "storeseed"}

    def test_marked_resource(self, tag: OwnershipTag) -> None:
        """A resource carrying the entry is marked."""
        resource = {
            "id": 1,
            "meta_data": [
                {"id": 10, "key": "_other", "value": "x"},
                {"id": 11, "key": "_generated_by", "value": "storeseed"},
            ],
        }
        assert tag.is_marked(resource)

    def test_other_value_is_not_marked(self, tag: OwnershipTag) -> None:
        """Same key with another owner does not match."""
        resource = {"meta_data": [{"key": "_generated_by", "value": "someone-else"}]}
        assert not tag.is_marked(resource)

    def test_missing_meta_is_not_marked(self, tag: OwnershipTag) -> None:
        """Resources without meta_data (or with null) are not marked."""
        assert not tag.is_marked({"id": 1})
        assert not tag.is_marked({"id": 1, "meta_data": None})


class TestResourceType:
    """Tests for ResourceType."""

    def test_summary_keys(self) -> None:
        """Values are the keys used in run summaries."""
        assert {resource.value for resource in ResourceType} == {
            "attribute_taxonomy",
            "brand_terms",
            "categories",
            "simple_items",
            "composite_items",
            "variants",
            "bundle_items",
        }
