"""Test content hashing and version detection."""

import asyncio
import copy
from datetime import datetime, timedelta

import pytest

from api_sentinel.detection import ChangeDetector, canonical_json, content_hash
from api_sentinel.storage.sqlite_store import SQLiteStore


def test_hash_ignores_key_order_and_whitespace():
    a = {"openapi": "3.0.0", "paths": {"/a": {"get": {}}, "/b": {}}}
    b = {"paths": {"/b": {}, "/a": {"get": {}}}, "openapi": "3.0.0"}

    assert content_hash(a) == content_hash(b)
    assert canonical_json(a) == '{"openapi":"3.0.0","paths":{"/a":{"get":{}},"/b":{}}}'


def test_hash_changes_with_content():
    assert content_hash({"paths": {}}) != content_hash({"paths": {"/a": {}}})


def test_non_string_keys_are_stringified():
    assert content_hash({"responses": {200: {"description": "ok"}}}) == \
        content_hash({"responses": {"200": {"description": "ok"}}})


@pytest.mark.asyncio
async def test_first_content_creates_baseline_version(store, petstore):
    detector = ChangeDetector(store)

    result = await detector.detect("spec-1", "project-1", petstore, commit_ref="abc123")

    assert result.is_new
    assert result.previous is None
    assert result.created.content == petstore
    assert result.created.commit_ref == "abc123"
    assert store.get_latest_schema_version("spec-1") == result.created


@pytest.mark.asyncio
async def test_identical_content_is_not_new(store, petstore):
    """Submitting the same content twice never creates a second version."""
    detector = ChangeDetector(store)

    first = await detector.detect("spec-1", "project-1", petstore)
    reordered = dict(reversed(list(copy.deepcopy(petstore).items())))
    second = await detector.detect("spec-1", "project-1", reordered)

    assert first.is_new
    assert not second.is_new
    assert second.created is None
    assert second.previous.id == first.created.id


@pytest.mark.asyncio
async def test_changed_content_links_previous_version(store, petstore):
    detector = ChangeDetector(store)
    first = await detector.detect("spec-1", "project-1", petstore)

    changed = copy.deepcopy(petstore)
    del changed["paths"]["/pets/{petId}"]
    second = await detector.detect("spec-1", "project-1", changed)

    assert second.is_new
    assert second.previous.id == first.created.id
    assert second.created.id != first.created.id


@pytest.mark.asyncio
async def test_reverted_content_reuses_existing_version(store, petstore):
    """Reverting to earlier content moves the head back without a new row."""
    detector = ChangeDetector(store)
    first = await detector.detect("spec-1", "project-1", petstore)
    changed = copy.deepcopy(petstore)
    changed["paths"]["/orders"] = {"get": {"responses": {"200": {"description": "ok"}}}}
    second = await detector.detect("spec-1", "project-1", changed)

    reverted = await detector.detect("spec-1", "project-1", petstore)

    assert reverted.is_new
    assert reverted.previous.id == second.created.id
    assert reverted.created.id == first.created.id
    assert store.get_latest_schema_version("spec-1").id == first.created.id


@pytest.mark.asyncio
async def test_concurrent_identical_submissions_create_one_version(tmp_path, petstore):
    """Concurrent triggers with the same content produce exactly one new version."""
    db_path = tmp_path / "concurrent.db"
    detectors = [ChangeDetector(SQLiteStore(db_path)) for _ in range(8)]

    results = await asyncio.gather(*(
        detector.detect("spec-1", "project-1", copy.deepcopy(petstore)) for detector in detectors
    ))

    assert sum(1 for result in results if result.is_new) == 1
    created = [result.created for result in results if result.is_new][0]
    assert all(result.previous.id == created.id for result in results if not result.is_new)


@pytest.mark.asyncio
async def test_sources_are_tracked_independently(store, petstore):
    detector = ChangeDetector(store)

    a = await detector.detect("spec-a", "project-1", petstore)
    b = await detector.detect("spec-b", "project-1", petstore)

    assert a.is_new and b.is_new
    assert a.created.id != b.created.id


@pytest.mark.asyncio
async def test_store_timestamps_are_utc(store, petstore):
    result = await ChangeDetector(store).detect("spec-1", "project-1", petstore)
    error_at = store.update_source_error("spec-1", "fetch failed")

    assert datetime.fromisoformat(result.created.created_at).utcoffset() == timedelta(0)
    assert datetime.fromisoformat(error_at).utcoffset() == timedelta(0)
    assert store.get_source_health("spec-1").last_error_at == error_at
