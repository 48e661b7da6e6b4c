"""
Scoring stages.

Each stage is independent: no shared mutable state, so the pipeline can run
them concurrently and in any order. Stages never raise for collaborator
trouble; they return a StageResult carrying the failure instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from charity_oracle.config.defaults import (
    CHARITY_NAME_INDICATORS,
    DEFAULT_IPFS_GATEWAY_URL,
    DOCUMENT_REFERENCE_MIN_LENGTH,
    IMAGE_STRONG_MIN,
    PROBE_TIMEOUT_SECONDS,
)
from charity_oracle.errors import (
    CollaboratorRejectedError,
    ConfigurationError,
    MalformedResponseError,
    TransientCollaboratorError,
)
from charity_oracle.llm.client import ChatClient
from charity_oracle.llm.parsing import coerce_score
from charity_oracle.scoring.prompts import (
    TEXT_SYSTEM_PROMPT,
    build_image_prompt,
    build_text_prompt,
)
from charity_oracle.scoring.results import (
    DocumentCheck,
    ImageAnalysis,
    OnlinePresence,
    StageFailureKind,
    StageResult,
    TextAnalysis,
)

logger = logging.getLogger(__name__)

TEXT_STAGE = "text_analysis"
PRESENCE_STAGE = "online_presence"
DOCUMENT_STAGE = "document_reachability"
IMAGE_STAGE = "image_analysis"


def _failure_kind(error: Exception) -> StageFailureKind:
    if isinstance(error, TransientCollaboratorError):
        return StageFailureKind.UNAVAILABLE
    if isinstance(error, MalformedResponseError):
        return StageFailureKind.MALFORMED
    return StageFailureKind.REJECTED


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


class TextAnalysisStage:
    """LLM rubric over name, description, wallet and document reference."""

    name = TEXT_STAGE

    def __init__(self, client: ChatClient, model: str):
        self.client = client
        self.model = model

    @staticmethod
    def parse(data: Dict[str, Any]) -> TextAnalysis:
        if "baseScore" not in data:
            raise MalformedResponseError("text analysis response has no baseScore")
        return TextAnalysis(
            base_score=coerce_score(data["baseScore"]),
            reasoning=str(data.get("reasoning") or "AI analysis completed"),
            flags=_string_list(data.get("flags")),
        )

    async def run(
        self,
        name: str,
        description: str,
        wallet: str,
        evidence_ref: str,
    ) -> StageResult[Optional[TextAnalysis]]:
        prompt = build_text_prompt(name, description, wallet, evidence_ref)
        try:
            data = await self.client.complete_json(TEXT_SYSTEM_PROMPT, prompt, self.model)
            return StageResult.success(self.name, self.parse(data))
        except (
            TransientCollaboratorError,
            MalformedResponseError,
            CollaboratorRejectedError,
            ConfigurationError,
        ) as e:
            logger.warning(f"Text analysis failed: {e}")
            return StageResult.failed(self.name, None, _failure_kind(e), str(e))


def check_online_presence(name: str) -> StageResult[OnlinePresence]:
    """Name-based heuristic: any charity indicator word counts as presence."""
    lowered = (name or "").lower()
    hits = [word for word in CHARITY_NAME_INDICATORS if word in lowered]
    sources = ["Name includes charity indicators"] if hits else []
    return StageResult.success(PRESENCE_STAGE, OnlinePresence(found=bool(hits), sources=sources))


def resolve_document_url(reference: str, gateway: str = DEFAULT_IPFS_GATEWAY_URL) -> str:
    """Turn a content hash or ``ipfs://`` reference into a gateway url."""
    reference = reference.strip()
    if reference.startswith(("http://", "https://")):
        return reference
    if reference.startswith("ipfs://"):
        reference = reference[len("ipfs://"):]
    return f"{gateway.rstrip('/')}/{reference.lstrip('/')}"


class DocumentReachabilityStage:
    """Bounded HEAD probe against the resolved document url."""

    name = DOCUMENT_STAGE

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        gateway: str = DEFAULT_IPFS_GATEWAY_URL,
        timeout: float = PROBE_TIMEOUT_SECONDS,
    ):
        self.http_client = http_client
        self.gateway = gateway
        self.timeout = timeout

    async def run(self, reference: str) -> StageResult[DocumentCheck]:
        reference = (reference or "").strip()
        if len(reference) < DOCUMENT_REFERENCE_MIN_LENGTH:
            return StageResult.success(
                self.name, DocumentCheck(valid=False, note="Missing or invalid document reference")
            )

        url = resolve_document_url(reference, self.gateway)
        try:
            resp = await self.http_client.head(url, timeout=self.timeout, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.info(f"Document probe failed (not critical): {url}: {e}")
            return StageResult.failed(
                self.name,
                DocumentCheck(valid=False, note="Documents not accessible", url=url),
                StageFailureKind.UNAVAILABLE,
                str(e) or type(e).__name__,
            )

        if resp.is_success:
            return StageResult.success(
                self.name, DocumentCheck(valid=True, note="Documents accessible", url=url)
            )
        return StageResult.success(
            self.name,
            DocumentCheck(valid=False, note=f"Documents returned HTTP {resp.status_code}", url=url),
        )


class ImageAnalysisStage:
    """Vision rubric over uploaded evidence images."""

    name = IMAGE_STAGE

    def __init__(self, client: ChatClient, model: str):
        self.client = client
        self.model = model

    @staticmethod
    def parse(data: Dict[str, Any]) -> ImageAnalysis:
        raw_score = data.get("imageScore", data.get("score"))
        if raw_score is None:
            raise MalformedResponseError("image analysis response has no imageScore")
        score = coerce_score(raw_score)
        return ImageAnalysis(
            image_score=score,
            valid=data.get("valid") is True or score >= IMAGE_STRONG_MIN,
            reasoning=str(data.get("reasoning") or "Image analysis completed"),
            concerns=_string_list(data.get("concerns")),
        )

    async def run(
        self,
        image_urls: Sequence[str],
        name: str,
        description: str,
    ) -> StageResult[ImageAnalysis]:
        if not image_urls:
            return StageResult.success(self.name, ImageAnalysis(reasoning="No images provided"))

        logger.info(f"Analyzing {len(image_urls)} evidence images")
        try:
            data = await self.client.complete_vision_json(
                build_image_prompt(name, description), list(image_urls), self.model
            )
            return StageResult.success(self.name, self.parse(data))
        except (
            TransientCollaboratorError,
            MalformedResponseError,
            CollaboratorRejectedError,
            ConfigurationError,
        ) as e:
            logger.warning(f"Image analysis failed (not critical): {e}")
            return StageResult.failed(
                self.name,
                ImageAnalysis(reasoning="Image analysis failed - technical error"),
                _failure_kind(e),
                str(e),
            )
