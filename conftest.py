from __future__ import annotations

import copy
from typing import Any

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from jobportal.config import Settings
from jobportal.main import create_app
from pymongo import ReturnDocument
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

TEST_JWT_SECRET = "test-secret-for-jobportal"


def matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in query.items())


def apply_update(document: dict[str, Any], update: dict[str, Any]) -> None:
    for operator, fields in update.items():
        if operator == "$set":
            document.update(copy.deepcopy(fields))
        elif operator == "$inc":
            for key, amount in fields.items():
                document[key] = document.get(key, 0) + amount
        else:
            raise NotImplementedError(f"Unsupported update operator: {operator}")


class FakeCollection:
    """In-memory stand-in for the subset of pymongo's Collection used by the service."""

    def __init__(self) -> None:
        self.documents: list[dict[str, Any]] = []

    def find(self, query: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        query = query or {}
        return [copy.deepcopy(doc) for doc in self.documents if matches(doc, query)]

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        for document in self.documents:
            if matches(document, query):
                return copy.deepcopy(document)
        return None

    def insert_one(self, document: dict[str, Any]) -> InsertOneResult:
        document.setdefault("_id", ObjectId())
        self.documents.append(copy.deepcopy(document))
        return InsertOneResult(document["_id"], True)

    def update_one(self, query: dict[str, Any], update: dict[str, Any]) -> UpdateResult:
        for document in self.documents:
            if matches(document, query):
                before = copy.deepcopy(document)
                apply_update(document, update)
                modified = int(before != document)
                return UpdateResult({"n": 1, "nModified": modified}, True)
        return UpdateResult({"n": 0, "nModified": 0}, True)

    def find_one_and_update(
        self,
        query: dict[str, Any],
        update: dict[str, Any],
        return_document: bool = ReturnDocument.BEFORE,
    ) -> dict[str, Any] | None:
        for document in self.documents:
            if matches(document, query):
                before = copy.deepcopy(document)
                apply_update(document, update)
                if return_document == ReturnDocument.AFTER:
                    return copy.deepcopy(document)
                return before
        return None

    def delete_one(self, query: dict[str, Any]) -> DeleteResult:
        for index, document in enumerate(self.documents):
            if matches(document, query):
                del self.documents[index]
                return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())

    def command(self, name: str) -> dict[str, Any]:
        if name != "ping":
            raise NotImplementedError(name)
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self) -> None:
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase())

    @property
    def admin(self) -> FakeDatabase:
        return self["admin"]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def mongo_client() -> FakeMongoClient:
    return FakeMongoClient()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret=TEST_JWT_SECRET,
        cors_origins=["http://localhost:5173"],
    )


@pytest.fixture
def database(mongo_client: FakeMongoClient, settings: Settings) -> FakeDatabase:
    return mongo_client[settings.db_name]


@pytest.fixture
def client(settings: Settings, mongo_client: FakeMongoClient):
    app = create_app(settings=settings, mongo_client=mongo_client)
    with TestClient(app) as test_client:
        yield test_client
