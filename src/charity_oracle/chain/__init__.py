"""Registry contract access: gateway, decision protocols and the single writer."""

from charity_oracle.chain.abi import REGISTRY_ABI, load_abi
from charity_oracle.chain.gateway import ChainGateway, Web3ChainGateway
from charity_oracle.chain.protocols import (
    AutoDecisionProtocol,
    ChainCall,
    DecisionProtocol,
    ExplicitDecisionProtocol,
    protocol_for,
)
from charity_oracle.chain.submitter import ChainSubmitter, SubmissionResult

__all__ = [
    "AutoDecisionProtocol",
    "ChainCall",
    "ChainGateway",
    "ChainSubmitter",
    "DecisionProtocol",
    "ExplicitDecisionProtocol",
    "REGISTRY_ABI",
    "SubmissionResult",
    "Web3ChainGateway",
    "load_abi",
    "protocol_for",
]
