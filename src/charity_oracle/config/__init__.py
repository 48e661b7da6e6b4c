"""Runtime configuration for the verification oracle.

Values come from the process environment. ``load_config()`` first loads an
optional ``.env`` file so local runs behave like the deployed service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from charity_oracle.config.defaults import (
    APPROVAL_THRESHOLD,
    BACKLOG_INTERVAL_SECONDS,
    BACKLOG_ITEM_DELAY_SECONDS,
    DEFAULT_EVIDENCE_DB_PATH,
    DEFAULT_IPFS_GATEWAY_URL,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_REGISTRY_ADDRESS,
    DEFAULT_RPC_URL,
    DEFAULT_TEXT_MODEL,
    DEFAULT_VISION_MODEL,
    EVENT_LOOKBACK_BLOCKS,
    EVENT_POLL_INTERVAL_SECONDS,
    LLM_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    SCORING_CONCURRENCY,
    SUBMIT_BASE_DELAY_SECONDS,
    SUBMIT_MAX_ATTEMPTS,
    SUBMIT_MAX_DELAY_SECONDS,
    TX_RECEIPT_TIMEOUT_SECONDS,
)
from charity_oracle.errors import ConfigurationError

DECISION_PROTOCOLS = ("explicit", "auto")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class OracleConfig:
    """Everything the oracle needs to run, in one place."""

    # Chain
    rpc_url: str = DEFAULT_RPC_URL
    private_key: Optional[str] = field(default=None, repr=False)
    registry_address: str = DEFAULT_REGISTRY_ADDRESS
    abi_path: Optional[str] = None
    decision_protocol: str = "explicit"
    required_approvals: Optional[int] = None
    tx_receipt_timeout: float = TX_RECEIPT_TIMEOUT_SECONDS

    # LLM collaborator
    openai_api_key: Optional[str] = field(default=None, repr=False)
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    text_model: str = DEFAULT_TEXT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    llm_timeout: float = LLM_TIMEOUT_SECONDS

    # Scoring
    ipfs_gateway_url: str = DEFAULT_IPFS_GATEWAY_URL
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    approval_threshold: int = APPROVAL_THRESHOLD
    scoring_concurrency: int = SCORING_CONCURRENCY

    # Discovery
    event_poll_interval: float = EVENT_POLL_INTERVAL_SECONDS
    event_lookback_blocks: int = EVENT_LOOKBACK_BLOCKS
    backlog_item_delay: float = BACKLOG_ITEM_DELAY_SECONDS
    backlog_interval: float = BACKLOG_INTERVAL_SECONDS

    # Submission
    submit_max_attempts: int = SUBMIT_MAX_ATTEMPTS
    submit_base_delay: float = SUBMIT_BASE_DELAY_SECONDS
    submit_max_delay: float = SUBMIT_MAX_DELAY_SECONDS

    # Storage
    evidence_db_path: Path = Path(DEFAULT_EVIDENCE_DB_PATH)

    @classmethod
    def from_env(cls) -> "OracleConfig":
        """Create config from environment variables with defaults as fallbacks."""
        protocol = os.environ.get("DECISION_PROTOCOL", "explicit").strip().lower()
        return cls(
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            private_key=os.environ.get("ADMIN_PRIVATE_KEY") or None,
            registry_address=os.environ.get("CHARITY_REGISTRY_ADDRESS", DEFAULT_REGISTRY_ADDRESS),
            abi_path=os.environ.get("CONTRACT_ABI_PATH") or None,
            decision_protocol=protocol,
            required_approvals=_env_int("REQUIRED_APPROVALS", None),
            tx_receipt_timeout=_env_float("TX_RECEIPT_TIMEOUT_SECONDS", TX_RECEIPT_TIMEOUT_SECONDS),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_base_url=os.environ.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL),
            text_model=os.environ.get("AI_MODEL", DEFAULT_TEXT_MODEL),
            vision_model=os.environ.get("AI_VISION_MODEL", DEFAULT_VISION_MODEL),
            llm_timeout=_env_float("LLM_TIMEOUT_SECONDS", LLM_TIMEOUT_SECONDS),
            ipfs_gateway_url=os.environ.get("IPFS_GATEWAY_URL", DEFAULT_IPFS_GATEWAY_URL),
            probe_timeout=_env_float("PROBE_TIMEOUT_SECONDS", PROBE_TIMEOUT_SECONDS),
            approval_threshold=_env_int("APPROVAL_THRESHOLD", APPROVAL_THRESHOLD),
            scoring_concurrency=_env_int("SCORING_CONCURRENCY", SCORING_CONCURRENCY),
            event_poll_interval=_env_float("EVENT_POLL_INTERVAL_SECONDS", EVENT_POLL_INTERVAL_SECONDS),
            event_lookback_blocks=_env_int("EVENT_LOOKBACK_BLOCKS", EVENT_LOOKBACK_BLOCKS),
            backlog_item_delay=_env_float("BACKLOG_ITEM_DELAY_SECONDS", BACKLOG_ITEM_DELAY_SECONDS),
            backlog_interval=_env_float("BACKLOG_INTERVAL_SECONDS", BACKLOG_INTERVAL_SECONDS),
            submit_max_attempts=_env_int("SUBMIT_MAX_ATTEMPTS", SUBMIT_MAX_ATTEMPTS),
            submit_base_delay=_env_float("SUBMIT_BASE_DELAY_SECONDS", SUBMIT_BASE_DELAY_SECONDS),
            submit_max_delay=_env_float("SUBMIT_MAX_DELAY_SECONDS", SUBMIT_MAX_DELAY_SECONDS),
            evidence_db_path=Path(os.environ.get("EVIDENCE_DB_PATH", DEFAULT_EVIDENCE_DB_PATH)),
        )

    def validate(self, require_signer: bool = True, require_llm: bool = True) -> None:
        """Raise ConfigurationError naming every missing or invalid setting."""
        problems: list[str] = []
        if require_signer and not self.private_key:
            problems.append("ADMIN_PRIVATE_KEY is not set")
        if require_llm and not self.openai_api_key:
            problems.append("OPENAI_API_KEY is not set")
        if self.decision_protocol not in DECISION_PROTOCOLS:
            problems.append(
                f"DECISION_PROTOCOL must be one of {', '.join(DECISION_PROTOCOLS)}, "
                f"got {self.decision_protocol!r}"
            )
        if self.scoring_concurrency < 1:
            problems.append("SCORING_CONCURRENCY must be at least 1")
        if self.submit_max_attempts < 1:
            problems.append("SUBMIT_MAX_ATTEMPTS must be at least 1")
        if not 0 <= self.approval_threshold <= 100:
            problems.append("APPROVAL_THRESHOLD must be within 0..100")
        if problems:
            raise ConfigurationError("; ".join(problems))


def load_config(env_file: Optional[Path] = None) -> OracleConfig:
    """Load ``.env`` (if present) and build the config from the environment."""
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv(Path.cwd() / ".env")
    return OracleConfig.from_env()


__all__ = ["DECISION_PROTOCOLS", "OracleConfig", "load_config"]
