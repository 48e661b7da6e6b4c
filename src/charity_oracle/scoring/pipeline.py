"""
ScoringPipeline - runs all stages for one charity and aggregates them.

Stage failure policy:
- text analysis is required; without it a score means nothing, so its
  failure raises ScoringError and the job is released unsubmitted
- document and image probes are optional; their failures fall back to the
  neutral value and are recorded in ``ScoreBreakdown.notes``
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Sequence

from charity_oracle.config.defaults import APPROVAL_THRESHOLD
from charity_oracle.errors import ScoringError
from charity_oracle.models import CharityRecord, ScoreBreakdown
from charity_oracle.scoring.aggregate import aggregate_score
from charity_oracle.scoring.results import StageResult
from charity_oracle.scoring.stages import (
    DocumentReachabilityStage,
    ImageAnalysisStage,
    TextAnalysisStage,
    check_online_presence,
)

logger = logging.getLogger(__name__)


class ScoringPipeline:
    """Runs the scoring stages concurrently and builds a ScoreBreakdown."""

    def __init__(
        self,
        text_stage: TextAnalysisStage,
        document_stage: DocumentReachabilityStage,
        image_stage: ImageAnalysisStage,
        threshold: int = APPROVAL_THRESHOLD,
    ):
        self.text_stage = text_stage
        self.document_stage = document_stage
        self.image_stage = image_stage
        self.threshold = threshold

    async def score(self, record: CharityRecord, evidence_urls: Sequence[str]) -> ScoreBreakdown:
        """Score one charity.

        Raises:
            ScoringError: if text analysis produced no usable result
        """
        logger.info(
            f"Starting verification for charity {record.charity_id}: {record.name} "
            f"({len(evidence_urls)} evidence urls)"
        )

        text, document, image = await asyncio.gather(
            self.text_stage.run(record.name, record.description, record.wallet, record.evidence_ref),
            self.document_stage.run(record.evidence_ref),
            self.image_stage.run(list(evidence_urls), record.name, record.description),
        )
        presence = check_online_presence(record.name)

        if not text.ok or text.value is None:
            detail = text.failure.detail if text.failure else "no result"
            kind = text.failure.kind.value if text.failure else "unknown"
            raise ScoringError(record.charity_id, f"text analysis {kind}: {detail}")

        notes: List[str] = []
        for result in (document, image):
            note = _failure_note(result)
            if note:
                notes.append(note)

        final, approved = aggregate_score(
            base_score=text.value.base_score,
            online_presence=presence.value.found,
            document_valid=document.value.valid,
            image_score=image.value.image_score,
            image_valid=image.value.valid,
            flags=text.value.flags,
            threshold=self.threshold,
        )

        breakdown = ScoreBreakdown(
            base_score=text.value.base_score,
            reasoning=f"{text.value.reasoning} | Image Analysis: {image.value.reasoning}",
            flags=list(text.value.flags),
            online_presence=presence.value.found,
            document_valid=document.value.valid,
            image_score=image.value.image_score,
            image_valid=image.value.valid,
            image_reasoning=image.value.reasoning,
            final_score=final,
            approved=approved,
            notes=notes,
        )
        logger.info(f"Verification complete for charity {record.charity_id}: {breakdown.summary()}")
        return breakdown


def _failure_note(result: StageResult) -> str:
    if result.ok:
        return ""
    return f"{result.stage} {result.failure.kind.value}: {result.failure.detail}"
