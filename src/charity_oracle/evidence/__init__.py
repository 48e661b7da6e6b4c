"""Evidence correlation store and its backends."""

from charity_oracle.evidence.backends import (
    EvidenceBackend,
    MemoryEvidenceBackend,
    SqliteEvidenceBackend,
)
from charity_oracle.evidence.store import EvidenceStore

__all__ = [
    "EvidenceBackend",
    "EvidenceStore",
    "MemoryEvidenceBackend",
    "SqliteEvidenceBackend",
]
