import logging

import pytest

from healthchain.cache import IdentifierCache, MemoryStore
from healthchain.context import ChainContext

from helpers import CHAIN_ID, FakeAccessor, FakeDocuments

logging.getLogger("healthchain").setLevel(logging.DEBUG)


@pytest.fixture
def accessor():
    return FakeAccessor()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return IdentifierCache(store)


@pytest.fixture
def documents():
    return FakeDocuments()


@pytest.fixture
def context(accessor, cache, documents):
    return ChainContext(accessor, cache, documents=documents, max_scan=100, chain_id=CHAIN_ID)
