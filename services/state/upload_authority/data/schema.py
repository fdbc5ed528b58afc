"""SQLAlchemy table definitions owned by the Upload Authority Service."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from packages.stowage_shared.ids import ulid_primary_key_column, ulid_reference_column

metadata = MetaData()

upload_requests = Table(
    "upload_requests",
    metadata,
    ulid_primary_key_column("id"),
    Column("client_id", String(100), nullable=False),
    Column("upload_id", String(200), nullable=False),
    Column("status", String(16), nullable=False),
    Column("attempt_count", Integer, nullable=False, server_default="0"),
    Column("checksum", String(64), nullable=False),
    ulid_reference_column("file_metadata_id", nullable=True),
    Column("error_code", String(64), nullable=True),
    Column("error_message", Text, nullable=True),
    Column("original_filename", String(512), nullable=False),
    Column("content_type", String(256), nullable=False),
    Column("size_bytes", BigInteger, nullable=False),
    Column("client_metadata", JSONB, nullable=False, server_default="{}"),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    UniqueConstraint("client_id", "upload_id", name="uq_upload_requests_client_upload"),
    CheckConstraint(
        "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED')",
        name="ck_upload_requests_status",
    ),
    CheckConstraint("attempt_count >= 0", name="ck_upload_requests_attempts"),
    CheckConstraint(
        "(status = 'COMPLETED') = (file_metadata_id IS NOT NULL)",
        name="ck_upload_requests_file_iff_completed",
    ),
    Index("ix_upload_requests_client_checksum", "client_id", "checksum", "status"),
    Index("ix_upload_requests_status_updated", "status", "updated_at"),
)

file_metadata = Table(
    "file_metadata",
    metadata,
    ulid_primary_key_column("id"),
    Column("client_id", String(100), nullable=False),
    ulid_reference_column("upload_request_id"),
    Column("upload_id", String(200), nullable=False),
    Column("original_filename", String(512), nullable=False),
    Column("checksum", String(64), nullable=False),
    Column("size_bytes", BigInteger, nullable=False),
    Column("content_type", String(256), nullable=False),
    Column("storage_provider", String(32), nullable=True),
    Column("storage_bucket", String(255), nullable=True),
    Column("storage_key", String(1024), nullable=True),
    Column("storage_url", String(2048), nullable=True),
    Column("storage_etag", String(128), nullable=True),
    Column("status", String(16), nullable=False),
    Column("client_metadata", JSONB, nullable=False, server_default="{}"),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    ),
    UniqueConstraint("upload_request_id", name="uq_file_metadata_upload_request"),
    CheckConstraint(
        "status IN ('PROCESSING', 'COMPLETED')", name="ck_file_metadata_status"
    ),
    CheckConstraint("size_bytes > 0", name="ck_file_metadata_size_positive"),
)
