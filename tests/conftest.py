"""Pytest fixtures for taswear tests."""

import asyncio
from typing import Any, Callable

import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from taswear.container import AppContainer
from taswear.identity import IdentityProvider
from taswear.repositories import AuthRepository, OrderRepository, ProductRepository
from taswear.schemas import Product
from taswear.settings import Settings


class UnreachableDatabase:
    """Stands in for a database whose server can't be reached."""

    name = "unreachable"

    def __getitem__(self, collection_name: str):
        raise ServerSelectionTimeoutError("localhost:27017: [Errno 111] Connection refused")


@pytest.fixture
def settings():
    return Settings(
        database_name="taswear_test",
        jwt_secret="test-secret",
        password_schemes=["pbkdf2_sha256"],
        catalog_poll_interval=0.01,
        featured_products_limit=3,
    )


@pytest.fixture
def db(settings):
    """A fresh in-memory database per test."""
    return mongomock.MongoClient()[settings.database_name]


@pytest.fixture
def identity(db, settings):
    return IdentityProvider(db, settings)


@pytest.fixture
def auth_repository(identity, db):
    return AuthRepository(identity, db)


@pytest.fixture
def product_repository(db, settings):
    return ProductRepository(db, poll_interval=settings.catalog_poll_interval)


@pytest.fixture
def order_repository(db):
    return OrderRepository(db)


@pytest.fixture
def container(settings, db):
    return AppContainer(settings, database=db)


async def add_products(repository: ProductRepository, *products: Product) -> list:
    """Add products in order (the last one is the newest) and return their ids."""
    ids = []
    for product in products:
        result = await repository.add(product)
        ids.append(result.value)
    return ids


async def wait_for(flow, predicate: Callable[[Any], bool], timeout: float = 2.0) -> Any:
    """Return the first value of ``flow`` matching ``predicate``."""

    async def watch():
        async for value in flow.subscribe():
            if predicate(value):
                return value

    return await asyncio.wait_for(watch(), timeout)
