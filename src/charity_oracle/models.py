"""
Shared dataclasses for the verification oracle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, List, Optional, Sequence


class CharityStatus(IntEnum):
    """On-chain lifecycle state, in the contract's enum order."""
    PENDING = 0
    APPROVED = 1
    REJECTED = 2
    SUSPENDED = 3


class JobOrigin(str, Enum):
    """How a verification job was discovered."""
    EVENT = "event"
    BACKLOG = "backlog"
    MANUAL = "manual"


class JobState(str, Enum):
    QUEUED = "queued"
    SCORING = "scoring"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


ACTIVE_STATES = frozenset({JobState.SCORING, JobState.SUBMITTING})
TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED})


# =============================================================================
# Evidence keys
# =============================================================================

WALLET_PREFIX = "wallet:"
ENTITY_PREFIX = "entity:"


def wallet_key(address: str) -> str:
    return f"{WALLET_PREFIX}{address.strip().lower()}"


def entity_key(charity_id: int) -> str:
    return f"{ENTITY_PREFIX}{int(charity_id)}"


@dataclass
class CharityRecord:
    """Decoded ``getCharity`` tuple. Read-only to the oracle."""

    charity_id: int
    name: str
    description: str
    evidence_ref: str
    wallet: str
    score: int
    status: CharityStatus
    registered_at: int = 0
    decided_at: int = 0
    decided_by: str = ""
    total_donations: int = 0
    donor_count: int = 0
    funding_goal: int = 0
    deadline: int = 0
    is_active: bool = False
    currency_totals: List[int] = field(default_factory=list)
    evidence_urls: List[str] = field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == CharityStatus.PENDING

    @classmethod
    def from_chain(cls, charity_id: int, raw: Sequence[Any]) -> "CharityRecord":
        """Decode a struct returned by ``getCharity``.

        Field order: name, description, evidence-ref, wallet, score, status,
        registeredAt, decidedAt, decidedBy, totalDonations, donorCount,
        fundingGoal, deadline, isActive. Newer deployments append per-currency
        totals and an evidence url list; those are picked up when present.
        """
        values = list(raw)
        if len(values) < 6:
            raise ValueError(f"charity {charity_id}: record tuple too short ({len(values)} fields)")

        def _at(index: int, default: Any) -> Any:
            return values[index] if index < len(values) else default

        currency_totals: List[int] = []
        evidence_urls: List[str] = []
        for extra in values[14:]:
            if isinstance(extra, (list, tuple)):
                if all(isinstance(item, str) for item in extra):
                    evidence_urls = [item for item in extra if item]
                else:
                    currency_totals.extend(int(item) for item in extra)
            elif isinstance(extra, int) and not isinstance(extra, bool):
                currency_totals.append(extra)

        score = int(values[4])
        return cls(
            charity_id=int(charity_id),
            name=str(values[0]),
            description=str(values[1]),
            evidence_ref=str(values[2] or ""),
            wallet=str(values[3]),
            score=max(0, min(100, score)),
            status=CharityStatus(int(values[5])),
            registered_at=int(_at(6, 0)),
            decided_at=int(_at(7, 0)),
            decided_by=str(_at(8, "")),
            total_donations=int(_at(9, 0)),
            donor_count=int(_at(10, 0)),
            funding_goal=int(_at(11, 0)),
            deadline=int(_at(12, 0)),
            is_active=bool(_at(13, False)),
            currency_totals=currency_totals,
            evidence_urls=evidence_urls,
        )


@dataclass
class RegistrationEvent:
    """A decoded ``CharityRegistered`` log."""
    charity_id: int
    submitter: str
    name: str
    timestamp: int
    block_number: Optional[int] = None


@dataclass
class VerificationJob:
    """One unit of verification work for a charity identifier."""

    charity_id: int
    origin: JobOrigin
    submitter: Optional[str] = None
    attempts: int = 0
    state: JobState = JobState.QUEUED
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES


@dataclass
class ScoreBreakdown:
    """Per-signal results and the aggregated decision for one charity."""

    base_score: float
    reasoning: str = ""
    flags: List[str] = field(default_factory=list)
    online_presence: bool = False
    document_valid: bool = False
    image_score: float = 0.0
    image_valid: bool = False
    image_reasoning: str = ""
    final_score: int = 0
    approved: bool = False
    notes: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """One-line description for logs."""
        parts = [f"score={self.final_score}", f"approved={self.approved}", f"base={self.base_score:g}"]
        if self.flags:
            parts.append(f"flags={len(self.flags)}")
        if self.image_score:
            parts.append(f"image={self.image_score:g}{'' if self.image_valid else ' (invalid)'}")
        return " ".join(parts)
