"""Fixtures for charity_oracle tests."""

import pytest

from charity_oracle.evidence import EvidenceStore, MemoryEvidenceBackend
from fakes import FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def memory_store():
    return EvidenceStore(MemoryEvidenceBackend())
