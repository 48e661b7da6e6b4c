"""
Decision protocols: how a score turns into on-chain state changes.

Two registry generations are deployed:

- explicit: the oracle writes the score and then an explicit approve or
  reject; the contract may require several approvals
- auto: the oracle writes the score only and the contract decides

``protocol_for()`` picks one from configuration.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from charity_oracle.chain.abi import (
    FN_APPROVE,
    FN_REJECT,
    FN_SET_REQUIRED_APPROVALS,
    FN_UPDATE_SCORE,
)
from charity_oracle.chain.gateway import ChainGateway
from charity_oracle.config import OracleConfig
from charity_oracle.errors import ConfigurationError
from charity_oracle.models import ScoreBreakdown

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainCall:
    """One state-changing contract call."""
    fn_name: str
    args: Tuple[Any, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return f"{self.fn_name}({', '.join(str(a) for a in self.args)})"


class DecisionProtocol(abc.ABC):
    name: str = ""

    @abc.abstractmethod
    async def plan(self, gateway: ChainGateway, charity_id: int, breakdown: ScoreBreakdown) -> List[ChainCall]:
        """Calls to submit, in order, for one scored charity."""

    async def startup_calls(self, gateway: ChainGateway) -> List[ChainCall]:
        """Administrative calls to run once before any job is submitted."""
        return []

    async def after_submission(self, gateway: ChainGateway, charity_id: int, breakdown: ScoreBreakdown) -> None:
        return None


class ExplicitDecisionProtocol(DecisionProtocol):
    """Score update followed by approveCharity or rejectCharity."""

    name = "explicit"

    def __init__(self, required_approvals: Optional[int] = None):
        self.required_approvals = required_approvals

    async def plan(self, gateway: ChainGateway, charity_id: int, breakdown: ScoreBreakdown) -> List[ChainCall]:
        calls = [ChainCall(FN_UPDATE_SCORE, (charity_id, breakdown.final_score))]
        if not breakdown.approved:
            calls.append(ChainCall(FN_REJECT, (charity_id,)))
            return calls

        account = gateway.account_address
        if account and await gateway.has_approved(charity_id, account):
            logger.info(f"Charity {charity_id} already approved by {account}; submitting score only")
        else:
            calls.append(ChainCall(FN_APPROVE, (charity_id,)))
        return calls

    async def startup_calls(self, gateway: ChainGateway) -> List[ChainCall]:
        if self.required_approvals is None:
            return []
        current = await gateway.required_approvals()
        if current == self.required_approvals:
            logger.info(f"Registry already requires {current} approvals")
            return []
        logger.info(f"Registry requires {current} approvals; setting {self.required_approvals}")
        return [ChainCall(FN_SET_REQUIRED_APPROVALS, (self.required_approvals,))]

    async def after_submission(self, gateway: ChainGateway, charity_id: int, breakdown: ScoreBreakdown) -> None:
        if not breakdown.approved:
            return
        count = await gateway.approval_count(charity_id)
        required = await gateway.required_approvals()
        logger.info(f"Charity {charity_id} has {count}/{required} approvals")


class AutoDecisionProtocol(DecisionProtocol):
    """Score update only; the contract applies its own threshold."""

    name = "auto"

    async def plan(self, gateway: ChainGateway, charity_id: int, breakdown: ScoreBreakdown) -> List[ChainCall]:
        return [ChainCall(FN_UPDATE_SCORE, (charity_id, breakdown.final_score))]


def protocol_for(config: OracleConfig) -> DecisionProtocol:
    if config.decision_protocol == ExplicitDecisionProtocol.name:
        return ExplicitDecisionProtocol(required_approvals=config.required_approvals)
    if config.decision_protocol == AutoDecisionProtocol.name:
        if config.required_approvals is not None:
            logger.warning("REQUIRED_APPROVALS is ignored by the auto decision protocol")
        return AutoDecisionProtocol()
    raise ConfigurationError(f"Unknown decision protocol: {config.decision_protocol!r}")
