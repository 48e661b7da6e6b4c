"""Default configuration values for the verification oracle.

All hard-coded numbers (thresholds, timeouts, pacing, retry bounds) live
here. Modules import these constants instead of repeating literals.

Usage:
    from charity_oracle.config.defaults import (
        APPROVAL_THRESHOLD,
        SUBMIT_MAX_ATTEMPTS,
    )
"""

from __future__ import annotations

# =============================================================================
# Chain Defaults
# =============================================================================

DEFAULT_RPC_URL = "https://sepolia.base.org"
DEFAULT_REGISTRY_ADDRESS = "0x0cA13eB99B282Cd23490B34C51dF9cBBD8528828"

TX_RECEIPT_TIMEOUT_SECONDS = 120.0
TX_RECEIPT_POLL_SECONDS = 1.0
TX_GAS_BUFFER_PERCENT = 20  # added on top of estimate_gas


# =============================================================================
# Event Subscription / Backlog Defaults
# =============================================================================

EVENT_POLL_INTERVAL_SECONDS = 4.0
EVENT_LOOKBACK_BLOCKS = 0
EVENT_MAX_BLOCK_RANGE = 2000  # upper bound per eth_getLogs request

BACKLOG_ITEM_DELAY_SECONDS = 2.0
BACKLOG_INTERVAL_SECONDS = 0.0  # 0 disables periodic re-scan


# =============================================================================
# Scoring Defaults
# =============================================================================

APPROVAL_THRESHOLD = 60
SCORE_MIN = 0
SCORE_MAX = 100

ONLINE_PRESENCE_BONUS = 10
DOCUMENT_BONUS = 10
IMAGE_STRONG_BONUS = 20
IMAGE_DECENT_BONUS = 10
IMAGE_POOR_PENALTY = 15
FLAG_PENALTY = 5

IMAGE_STRONG_MIN = 70
IMAGE_DECENT_MIN = 50
IMAGE_POOR_BELOW = 30

CHARITY_NAME_INDICATORS = ("foundation", "fund", "charity", "relief")

DOCUMENT_REFERENCE_MIN_LENGTH = 10
DEFAULT_IPFS_GATEWAY_URL = "https://ipfs.io/ipfs/"
PROBE_TIMEOUT_SECONDS = 5.0

SCORING_CONCURRENCY = 2


# =============================================================================
# LLM Collaborator Defaults
# =============================================================================

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TEXT_MODEL = "gpt-4o-mini"
DEFAULT_VISION_MODEL = "gpt-4o"
LLM_TIMEOUT_SECONDS = 60.0
LLM_TEMPERATURE = 0.3
LLM_VISION_MAX_TOKENS = 1000


# =============================================================================
# Retry Defaults
# =============================================================================

SUBMIT_MAX_ATTEMPTS = 3
SUBMIT_BASE_DELAY_SECONDS = 2.0
SUBMIT_MAX_DELAY_SECONDS = 30.0
RETRY_BACKOFF_MULTIPLIER = 2.0
RETRY_JITTER_FACTOR = 0.1


# =============================================================================
# Circuit Breaker Defaults
# =============================================================================

CIRCUIT_BREAKER_FAILURE_THRESHOLD = 5
CIRCUIT_BREAKER_SUCCESS_THRESHOLD = 1
CIRCUIT_BREAKER_TIMEOUT_SECONDS = 60.0  # time in OPEN before HALF_OPEN
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS = 1


# =============================================================================
# Storage Defaults
# =============================================================================

DEFAULT_EVIDENCE_DB_PATH = ".charity_oracle/evidence.db"
