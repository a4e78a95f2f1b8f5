"""Test configuration and fixtures."""

from datetime import datetime, timedelta
from string import ascii_lowercase

import mongomock
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tours_api.core.config import settings
from tours_api.core.database import get_db
from tours_api.services.tour_service import TourService


class AsyncCursorAdapter:
    """Async cursor surface over a mongomock cursor."""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        documents = list(self._cursor)
        return documents if length is None else documents[:length]


class AsyncCollectionAdapter:
    """Exposes a mongomock collection through pymongo's asyncio API shape."""

    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return AsyncCursorAdapter(self._collection.find(*args, **kwargs))

    async def aggregate(self, pipeline, **kwargs):
        return AsyncCursorAdapter(self._collection.aggregate(pipeline, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class AsyncDatabaseAdapter:
    """Async database handle over a mongomock database."""

    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return AsyncCollectionAdapter(self._database[name])

    async def command(self, name, *args, **kwargs):
        return {"ok": 1.0}


def alpha_name(index: int) -> str:
    """Unique alphabetic tour name of valid length."""
    return "TourNumber" + ascii_lowercase[index // 26 % 26] + ascii_lowercase[index % 26]


def tour_document(index: int, **overrides) -> dict:
    """A stored tour document, as the write path would persist it."""
    name = overrides.pop("name", alpha_name(index))
    document = {
        "name": name,
        "slug": name.lower(),
        "duration": 5,
        "maxGroupSize": 10,
        "difficulty": "easy",
        "ratingsAverage": 4.5,
        "ratingsQuantity": 10,
        "price": 100 + index,
        "summary": "A tour used by the test suite",
        "imageCover": "cover.jpg",
        "images": [],
        "startDates": [],
        "secretTour": False,
        "createdAt": datetime(2024, 1, 1) + timedelta(minutes=index),
        "__v": 0,
    }
    document.update(overrides)
    return document


@pytest.fixture
def mongo_db():
    """In-memory MongoDB database with the production indexes."""
    database = mongomock.MongoClient()[settings.database_name]
    database[settings.tours_collection].create_index("name", unique=True)
    return database


@pytest.fixture
def tours_collection(mongo_db):
    """Synchronous handle for seeding and inspecting tours."""
    return mongo_db[settings.tours_collection]


@pytest.fixture
def test_db(mongo_db):
    """Async database handle backed by mongomock."""
    return AsyncDatabaseAdapter(mongo_db)


@pytest.fixture
def test_service(test_db):
    """Tour service bound to the in-memory database."""
    return TourService(test_db)


@pytest.fixture
def make_tour():
    """Factory for stored tour documents."""
    return tour_document


@pytest.fixture
def seed_tours(tours_collection):
    """Insert stored tour documents and return their ids."""

    def seed(*documents):
        return tours_collection.insert_many(list(documents)).inserted_ids

    return seed


@pytest.fixture
def development_mode(monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")


@pytest.fixture
def production_mode(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")


@pytest_asyncio.fixture(scope="function")
async def test_app(test_db):
    """Create the application with the database dependency overridden."""
    from tours_api.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_tour_data():
    """Sample tour payload for testing."""
    return {
        "name": "NorthernLightsAdventure",
        "duration": 7,
        "maxGroupSize": 12,
        "difficulty": "medium",
        "ratingsAverage": 4.8,
        "ratingsQuantity": 21,
        "price": 1299,
        "priceDiscount": 999,
        "summary": "  Chase the Aurora Borealis across Iceland  ",
        "description": "Five nights under the northern sky with expert guides",
        "imageCover": "northern-lights.jpg",
        "images": ["aurora-1.jpg", "aurora-2.jpg"],
        "startDates": ["2024-03-01T09:00:00", "2024-03-15T09:00:00", "2025-01-01T09:00:00"],
    }
