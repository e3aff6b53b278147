"""Test helper utilities: in-memory fakes for the external collaborators."""

from tests.helpers.fakes import (
    FakeCatalogSource,
    FakeGenerationAdapter,
    FakeMediaStorage,
    make_item,
)

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"

__all__ = [
    "OWNER_ID",
    "OTHER_OWNER_ID",
    "FakeCatalogSource",
    "FakeGenerationAdapter",
    "FakeMediaStorage",
    "make_item",
]
