"""
Stage result types.

Every stage returns a StageResult: either a value, or a typed failure plus
the neutral value the pipeline may fall back to. The pipeline, not the
stage, decides whether a failure is neutral or fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class StageFailureKind(str, Enum):
    UNAVAILABLE = "unavailable"  # collaborator unreachable or timed out
    MALFORMED = "malformed"      # collaborator answered but output unusable
    REJECTED = "rejected"        # collaborator refused the request (auth, bad input)


@dataclass
class StageFailure:
    kind: StageFailureKind
    detail: str


@dataclass
class StageResult(Generic[T]):
    stage: str
    value: T
    failure: Optional[StageFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, stage: str, value: T) -> "StageResult[T]":
        return cls(stage=stage, value=value)

    @classmethod
    def failed(cls, stage: str, neutral: T, kind: StageFailureKind, detail: str) -> "StageResult[T]":
        return cls(stage=stage, value=neutral, failure=StageFailure(kind, detail))


@dataclass
class TextAnalysis:
    base_score: float
    reasoning: str = ""
    flags: List[str] = field(default_factory=list)


@dataclass
class OnlinePresence:
    found: bool
    sources: List[str] = field(default_factory=list)


@dataclass
class DocumentCheck:
    valid: bool
    note: str = ""
    url: Optional[str] = None


@dataclass
class ImageAnalysis:
    image_score: float = 0.0
    valid: bool = False
    reasoning: str = ""
    concerns: List[str] = field(default_factory=list)
