"""Shared fixtures for api-sentinel tests."""

import copy

import pytest

from api_sentinel.alerting.retry_policy import RetryPolicy
from api_sentinel.storage.sqlite_store import SQLiteStore


async def _no_sleep(seconds):
    return None


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


PETSTORE_V1 = {
    "openapi": "3.0.3",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "paths": {
        "/pets": {
            "get": {
                "parameters": [
                    {"name": "status", "in": "query", "schema": {"type": "string"}},
                ],
                "responses": {"200": {"description": "ok"}},
            },
            "post": {
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/NewPet"}}},
                },
                "responses": {"201": {"description": "created"}},
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {"responses": {"200": {"description": "ok"}, "404": {"description": "missing"}}},
            "delete": {"responses": {"204": {"description": "deleted"}}},
        },
    },
    "components": {
        "schemas": {
            "Pet": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "integer"},
                    "name": {"type": "string"},
                    "status": {"type": "string", "enum": ["available", "pending", "sold"]},
                    "owner": {"$ref": "#/components/schemas/Owner"},
                },
            },
            "NewPet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "tag": {"type": "string"},
                },
            },
            "Owner": {
                "type": "object",
                "properties": {"email": {"type": "string"}},
            },
        }
    },
}


@pytest.fixture
def petstore():
    """A fresh copy of a small OpenAPI 3 document."""
    return copy.deepcopy(PETSTORE_V1)


@pytest.fixture
def store(tmp_path):
    """SQLite store backed by a temporary database file."""
    return SQLiteStore(tmp_path / "sentinel.db", busy_timeout=5.0)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def fast_retry():
    """Default retry schedule without real waiting."""
    return RetryPolicy(sleep=_no_sleep)
