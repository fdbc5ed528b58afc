"""Unit tests for the local filesystem object store."""

from __future__ import annotations

import hashlib
import io
from pathlib import Path

import pytest

import resources.substrates.object_store.filesystem_substrate as filesystem_module
from resources.substrates.object_store import (
    LocalFilesystemObjectStore,
    ObjectNotFoundError,
    ObjectStoreError,
    ObjectStoreSettings,
)


def _store(tmp_path: Path, **overrides: object) -> LocalFilesystemObjectStore:
    settings = ObjectStoreSettings(
        backend="filesystem", root_dir=str(tmp_path), **overrides
    )
    return LocalFilesystemObjectStore(settings=settings)


def test_put_get_delete_cycle(tmp_path: Path) -> None:
    """Objects should be readable after put and gone after delete."""
    store = _store(tmp_path)
    content = b"hello object"

    stored = store.put_object(
        bucket="uploads",
        key="client-1/2026/01/02/u-1/1-a.txt",
        stream=io.BytesIO(content),
        size=len(content),
        content_type="text/plain",
    )

    assert stored.provider == "filesystem"
    assert stored.etag == hashlib.md5(content).hexdigest()
    assert stored.url.startswith("file://")
    assert store.object_exists(bucket="uploads", key=stored.key) is True
    assert store.get_object(bucket="uploads", key=stored.key) == content

    store.delete_object(bucket="uploads", key=stored.key)
    store.delete_object(bucket="uploads", key=stored.key)
    assert store.object_exists(bucket="uploads", key=stored.key) is False


def test_public_base_url_is_used_for_object_url(tmp_path: Path) -> None:
    store = _store(tmp_path, public_base_url="https://cdn.example.com/")

    stored = store.put_object(
        bucket="uploads",
        key="c/k.bin",
        stream=io.BytesIO(b"x"),
        size=1,
        content_type="application/octet-stream",
    )

    assert stored.url == "https://cdn.example.com/uploads/c/k.bin"
    assert (
        store.presign_get(bucket="uploads", key="c/k.bin", expires_in_seconds=60)
        == stored.url
    )


def test_get_missing_object_raises_not_found(tmp_path: Path) -> None:
    store = _store(tmp_path)

    with pytest.raises(ObjectNotFoundError):
        store.get_object(bucket="uploads", key="missing.bin")
    with pytest.raises(ObjectNotFoundError):
        store.presign_get(bucket="uploads", key="missing.bin", expires_in_seconds=60)


def test_short_stream_is_rejected_and_leaves_nothing(tmp_path: Path) -> None:
    """A stream shorter than the declared size must not produce an object."""
    store = _store(tmp_path)

    with pytest.raises(ObjectStoreError, match="short write"):
        store.put_object(
            bucket="uploads",
            key="c/short.bin",
            stream=io.BytesIO(b"abc"),
            size=10,
            content_type="application/octet-stream",
        )

    assert store.object_exists(bucket="uploads", key="c/short.bin") is False
    assert list((tmp_path / "uploads" / "c").glob(".objtmp-*.tmp")) == []


def test_replace_failure_cleans_temp_files(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Temp files should be removed when the atomic replace fails."""
    store = _store(tmp_path)

    def _raise_replace(*args: object, **kwargs: object) -> object:
        del args, kwargs
        raise OSError("replace failed")

    monkeypatch.setattr(filesystem_module.os, "replace", _raise_replace)

    with pytest.raises(ObjectStoreError):
        store.put_object(
            bucket="uploads",
            key="c/file.bin",
            stream=io.BytesIO(b"payload"),
            size=7,
            content_type="application/octet-stream",
        )

    assert list((tmp_path / "uploads" / "c").glob(".objtmp-*.tmp")) == []


@pytest.mark.parametrize(
    "key", ["../escape.bin", "/abs.bin", "a/./b.bin", "a//b.bin", "a/", ""]
)
def test_keys_cannot_escape_root(tmp_path: Path, key: str) -> None:
    store = _store(tmp_path)

    with pytest.raises(ValueError):
        store.resolve_path(bucket="uploads", key=key)


@pytest.mark.parametrize("bucket", ["..", ".", "", "a/b"])
def test_buckets_must_be_one_plain_segment(tmp_path: Path, bucket: str) -> None:
    store = _store(tmp_path)

    with pytest.raises(ValueError):
        store.resolve_path(bucket=bucket, key="c/file.bin")


def test_health_reports_root_that_is_a_file(tmp_path: Path) -> None:
    root_file = tmp_path / "root-file"
    root_file.write_text("not-a-dir", encoding="utf-8")
    store = LocalFilesystemObjectStore(
        settings=ObjectStoreSettings(backend="filesystem", root_dir=str(root_file))
    )

    status = store.health()

    assert status.ready is False
