"""Component identity for the Upload Authority Service."""

from __future__ import annotations

SERVICE_COMPONENT_ID = "service_upload_authority"
SERVICE_SCHEMA = "upload_authority"
