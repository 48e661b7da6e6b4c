"""
Score aggregation.

Pure function of the stage outputs, so the order stages finish in has no
effect on the result.

    score = base
    +10 online presence, +10 reachable documents
    image (only when image_score > 0):
        valid and >= 70 -> +20
        >= 50           -> +10
        < 30            -> -15
    -5 per flag
    final = clamp(round(score), 0, 100); approved = final >= threshold
"""

from __future__ import annotations

from typing import Sequence, Tuple

from charity_oracle.config.defaults import (
    APPROVAL_THRESHOLD,
    DOCUMENT_BONUS,
    FLAG_PENALTY,
    IMAGE_DECENT_BONUS,
    IMAGE_DECENT_MIN,
    IMAGE_POOR_BELOW,
    IMAGE_POOR_PENALTY,
    IMAGE_STRONG_BONUS,
    IMAGE_STRONG_MIN,
    ONLINE_PRESENCE_BONUS,
    SCORE_MAX,
    SCORE_MIN,
)


def image_adjustment(image_score: float, image_valid: bool) -> int:
    """Points contributed by the image stage. Tiers are exclusive."""
    if image_score <= 0:
        return 0
    if image_valid and image_score >= IMAGE_STRONG_MIN:
        return IMAGE_STRONG_BONUS
    if image_score >= IMAGE_DECENT_MIN:
        return IMAGE_DECENT_BONUS
    if image_score < IMAGE_POOR_BELOW:
        return -IMAGE_POOR_PENALTY
    return 0


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; scores round .5 upwards.
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def aggregate_score(
    base_score: float,
    online_presence: bool,
    document_valid: bool,
    image_score: float,
    image_valid: bool,
    flags: Sequence[str],
    threshold: int = APPROVAL_THRESHOLD,
) -> Tuple[int, bool]:
    """Return ``(final_score, approved)``."""
    score = float(base_score)
    if online_presence:
        score += ONLINE_PRESENCE_BONUS
    if document_valid:
        score += DOCUMENT_BONUS
    score += image_adjustment(image_score, image_valid)
    score -= FLAG_PENALTY * len(flags)

    final = max(SCORE_MIN, min(SCORE_MAX, round_half_up(score)))
    return final, final >= threshold
