"""Component identity for the object store substrate."""

from __future__ import annotations

RESOURCE_COMPONENT_ID = "substrate_object_store"
