"""
Shared fixtures: a throwaway SQLite record store, a hash embedding index and a fake clock.
"""

import pytest

from lifeinbox.core.dao import RecordStore
from lifeinbox.vector.embeddings import DeterministicHashEmbedding
from lifeinbox.vector.index import EmbeddingIndex

from helpers import FakeClock


@pytest.fixture
def store(tmp_path):
    return RecordStore(str(tmp_path / "records.db"))


@pytest.fixture
def provider():
    return DeterministicHashEmbedding(dimension=256)


@pytest.fixture
def index(store, provider):
    return EmbeddingIndex(store, provider, model_version="hash-test")


@pytest.fixture
def clock():
    return FakeClock()
