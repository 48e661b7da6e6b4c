"""Multi-signal scoring: stages, aggregation and the pipeline that ties them."""

from charity_oracle.scoring.aggregate import aggregate_score, image_adjustment
from charity_oracle.scoring.pipeline import ScoringPipeline
from charity_oracle.scoring.results import (
    DocumentCheck,
    ImageAnalysis,
    OnlinePresence,
    StageFailure,
    StageFailureKind,
    StageResult,
    TextAnalysis,
)
from charity_oracle.scoring.stages import (
    DocumentReachabilityStage,
    ImageAnalysisStage,
    TextAnalysisStage,
    check_online_presence,
    resolve_document_url,
)

__all__ = [
    "DocumentCheck",
    "DocumentReachabilityStage",
    "ImageAnalysis",
    "ImageAnalysisStage",
    "OnlinePresence",
    "ScoringPipeline",
    "StageFailure",
    "StageFailureKind",
    "StageResult",
    "TextAnalysis",
    "TextAnalysisStage",
    "aggregate_score",
    "check_online_presence",
    "image_adjustment",
    "resolve_document_url",
]
