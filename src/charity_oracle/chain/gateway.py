"""
ChainGateway - read/write/event facade over the registry contract.

``ChainGateway`` is the boundary the rest of the oracle talks to; tests
swap in an in-memory implementation. ``Web3ChainGateway`` is the real one,
built on web3.py's ``AsyncWeb3`` with a local eth-account signer.

Error mapping:
- unreachable RPC during a read -> TransientCollaboratorError
- a read the contract rejects (unknown id) -> JobError
- a transaction that reverts, times out or cannot be sent -> TransactionError
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from charity_oracle.chain.abi import (
    FN_APPROVAL_COUNT,
    FN_APPROVALS,
    FN_GET_RECORD,
    FN_REQUIRED_APPROVALS,
    FN_TOTAL_COUNT,
    REGISTERED_EVENT,
    load_abi,
)
from charity_oracle.config import OracleConfig
from charity_oracle.config.defaults import (
    TX_GAS_BUFFER_PERCENT,
    TX_RECEIPT_POLL_SECONDS,
    TX_RECEIPT_TIMEOUT_SECONDS,
)
from charity_oracle.errors import (
    ConfigurationError,
    JobError,
    TransactionError,
    TransientCollaboratorError,
)
from charity_oracle.models import CharityRecord, RegistrationEvent

logger = logging.getLogger(__name__)


class ChainGateway(abc.ABC):
    """Everything the oracle needs from the registry contract."""

    @property
    @abc.abstractmethod
    def account_address(self) -> Optional[str]:
        """Signing account, or None for a read-only gateway."""

    @abc.abstractmethod
    async def block_number(self) -> int:
        ...

    @abc.abstractmethod
    async def total_count(self) -> int:
        ...

    @abc.abstractmethod
    async def get_record(self, charity_id: int) -> CharityRecord:
        ...

    @abc.abstractmethod
    async def get_registration_events(self, from_block: int, to_block: int) -> List[RegistrationEvent]:
        ...

    @abc.abstractmethod
    async def required_approvals(self) -> int:
        ...

    @abc.abstractmethod
    async def approval_count(self, charity_id: int) -> int:
        ...

    @abc.abstractmethod
    async def has_approved(self, charity_id: int, address: str) -> bool:
        ...

    @abc.abstractmethod
    async def pending_nonce(self) -> int:
        ...

    @abc.abstractmethod
    async def transact(self, fn_name: str, args: Sequence[Any], nonce: int) -> Dict[str, Any]:
        """Sign, send and wait for one transaction. Returns a receipt summary.

        Raises:
            TransactionError: if the transaction could not be confirmed
        """

    async def close(self) -> None:
        return None


def format_receipt(w3: Any, receipt: Any) -> Dict[str, Any]:
    if receipt is None:
        return {"status": "pending"}
    tx_hash = receipt.get("transactionHash")
    return {
        "transactionHash": w3.to_hex(tx_hash) if tx_hash else None,
        "status": receipt.get("status"),
        "blockNumber": receipt.get("blockNumber"),
        "gasUsed": receipt.get("gasUsed"),
    }


class Web3ChainGateway(ChainGateway):
    """Registry gateway over JSON-RPC."""

    def __init__(
        self,
        rpc_url: str,
        registry_address: str,
        abi: List[Dict[str, Any]],
        private_key: Optional[str] = None,
        receipt_timeout: float = TX_RECEIPT_TIMEOUT_SECONDS,
        w3: Optional[AsyncWeb3] = None,
    ):
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        try:
            address = AsyncWeb3.to_checksum_address(registry_address)
        except ValueError as e:
            raise ConfigurationError(f"CHARITY_REGISTRY_ADDRESS is not a valid address: {e}")
        self.contract = self.w3.eth.contract(address=address, abi=abi)
        self.receipt_timeout = receipt_timeout
        self._account = None
        if private_key:
            try:
                self._account = Account.from_key(private_key)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"ADMIN_PRIVATE_KEY is not a valid key: {e}")
        self._chain_id: Optional[int] = None

    @classmethod
    def from_config(cls, config: OracleConfig) -> "Web3ChainGateway":
        return cls(
            rpc_url=config.rpc_url,
            registry_address=config.registry_address,
            abi=load_abi(config.abi_path),
            private_key=config.private_key,
            receipt_timeout=config.tx_receipt_timeout,
        )

    @property
    def account_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _call(self, fn_name: str, *args: Any, raise_logic_errors: bool = False) -> Any:
        try:
            return await getattr(self.contract.functions, fn_name)(*args).call()
        except ContractLogicError as e:
            if raise_logic_errors:
                raise
            raise TransientCollaboratorError(f"{fn_name} reverted: {e}") from e
        except Exception as e:
            raise TransientCollaboratorError(f"{fn_name} call failed: {e}") from e

    async def block_number(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except Exception as e:
            raise TransientCollaboratorError(f"block number unavailable: {e}") from e

    async def total_count(self) -> int:
        return int(await self._call(FN_TOTAL_COUNT))

    async def get_record(self, charity_id: int) -> CharityRecord:
        try:
            raw = await self._call(FN_GET_RECORD, charity_id, raise_logic_errors=True)
        except ContractLogicError as e:
            raise JobError(charity_id, f"record unavailable: {e}") from e
        try:
            return CharityRecord.from_chain(charity_id, raw)
        except (ValueError, TypeError) as e:
            raise JobError(charity_id, f"record could not be decoded: {e}") from e

    async def get_registration_events(self, from_block: int, to_block: int) -> List[RegistrationEvent]:
        event = getattr(self.contract.events, REGISTERED_EVENT)
        try:
            logs = await event.get_logs(from_block=from_block, to_block=to_block)
        except Exception as e:
            raise TransientCollaboratorError(
                f"{REGISTERED_EVENT} logs {from_block}..{to_block} unavailable: {e}"
            ) from e

        events = []
        for log in logs:
            try:
                args = log["args"]
                events.append(
                    RegistrationEvent(
                        charity_id=int(args["charityId"]),
                        submitter=str(args["registrant"]),
                        name=str(args["name"]),
                        timestamp=int(args["timestamp"]),
                        block_number=log.get("blockNumber"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                # The backlog scan still finds the record itself.
                logger.warning(f"Skipping undecodable {REGISTERED_EVENT} log in blocks {from_block}..{to_block}: {e!r}")
        return events

    async def required_approvals(self) -> int:
        return int(await self._call(FN_REQUIRED_APPROVALS))

    async def approval_count(self, charity_id: int) -> int:
        return int(await self._call(FN_APPROVAL_COUNT, charity_id))

    async def has_approved(self, charity_id: int, address: str) -> bool:
        return bool(await self._call(FN_APPROVALS, charity_id, AsyncWeb3.to_checksum_address(address)))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _require_account(self):
        if self._account is None:
            raise ConfigurationError("ADMIN_PRIVATE_KEY is required to send transactions")
        return self._account

    async def pending_nonce(self) -> int:
        account = self._require_account()
        try:
            return int(await self.w3.eth.get_transaction_count(account.address, "pending"))
        except Exception as e:
            raise TransientCollaboratorError(f"nonce unavailable: {e}") from e

    async def _chain_id_cached(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def transact(self, fn_name: str, args: Sequence[Any], nonce: int) -> Dict[str, Any]:
        account = self._require_account()
        fn = getattr(self.contract.functions, fn_name)(*args)
        label = f"{fn_name}({', '.join(str(a) for a in args)})"

        try:
            gas = await fn.estimate_gas({"from": account.address})
            tx = await fn.build_transaction(
                {
                    "from": account.address,
                    "nonce": nonce,
                    "chainId": await self._chain_id_cached(),
                    "gas": gas * (100 + TX_GAS_BUFFER_PERCENT) // 100,
                }
            )
        except ContractLogicError as e:
            raise TransactionError(f"{label} would revert: {e}", reverted=True) from e
        except Exception as e:
            raise TransactionError(f"{label} could not be prepared: {e}") from e

        signed = account.sign_transaction(tx)
        raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise TransactionError(f"{label}: signed transaction has no raw payload")

        try:
            tx_hash = await self.w3.eth.send_raw_transaction(raw_tx)
        except Web3Exception as e:
            raise TransactionError(f"{label} rejected by node: {e}") from e
        except Exception as e:
            raise TransactionError(f"{label} could not be sent: {e}") from e

        hex_hash = self.w3.to_hex(tx_hash)
        logger.info(f"Sent {label} nonce={nonce} tx={hex_hash}")

        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout, poll_latency=TX_RECEIPT_POLL_SECONDS
            )
        except TimeExhausted as e:
            raise TransactionError(
                f"{label} not confirmed within {self.receipt_timeout:.0f}s", tx_hash=hex_hash
            ) from e
        except Exception as e:
            raise TransactionError(f"{label} receipt unavailable: {e}", tx_hash=hex_hash) from e

        formatted = format_receipt(self.w3, receipt)
        if formatted.get("status") not in (1, True):
            raise TransactionError(f"{label} reverted", tx_hash=hex_hash, reverted=True)
        logger.info(f"Confirmed {label} in block {formatted.get('blockNumber')} tx={hex_hash}")
        return formatted

    async def close(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
