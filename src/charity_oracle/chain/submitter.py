"""
ChainSubmitter - the single writer for the oracle's signing account.

All state-changing transactions go through one background task that takes
requests off an asyncio.Queue and handles them one at a time. Each
transaction is confirmed before the next one is signed, so nonces are used
strictly in order.

A request is a list of calls (score update, then the decision when the
protocol needs one). A failed attempt is retried with capped backoff and
resumes at the first call that has not been confirmed, so a retried job
never writes its score twice. Once attempts run out the caller gets a
ChainSubmissionError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from charity_oracle.chain.gateway import ChainGateway
from charity_oracle.chain.protocols import ChainCall, DecisionProtocol
from charity_oracle.errors import (
    ChainSubmissionError,
    OracleError,
    TransactionError,
    TransientCollaboratorError,
)
from charity_oracle.models import ScoreBreakdown, VerificationJob
from charity_oracle.retry import RetryConfig, RetryStats, with_retry_async

logger = logging.getLogger(__name__)

# Failures worth another attempt; anything else (bad config, bad record) is not.
RETRYABLE_ERRORS = (TransactionError, TransientCollaboratorError)


def is_retryable(error: BaseException) -> bool:
    """Reverted transactions are final; other submission errors get another attempt."""
    return not (isinstance(error, TransactionError) and error.reverted)


@dataclass
class SubmissionResult:
    """What happened to one submission request."""
    charity_id: Optional[int]
    submitted: bool = False
    skipped_reason: Optional[str] = None
    tx_hashes: List[str] = field(default_factory=list)
    attempts: int = 0


@dataclass
class _Request:
    calls: List[ChainCall]
    charity_id: Optional[int] = None
    breakdown: Optional[ScoreBreakdown] = None
    label: str = ""
    confirmed: int = 0
    receipts: List[Dict[str, Any]] = field(default_factory=list)
    future: Optional[asyncio.Future] = None


_STOP = object()


class ChainSubmitter:
    """Serializes every transaction from one signing account."""

    def __init__(
        self,
        gateway: ChainGateway,
        protocol: DecisionProtocol,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.gateway = gateway
        self.protocol = protocol
        config = retry_config or RetryConfig(retryable_exceptions=RETRYABLE_ERRORS)
        if config.retry_if is None:
            config = replace(config, retry_if=is_retryable)
        self.retry_config = config
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._accepting = False
        self._nonce: Optional[int] = None
        self.submitted_count = 0
        self.failed_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._accepting = True
        self._task = asyncio.create_task(self._writer(), name="chain-submitter")
        logger.info(
            f"Chain submitter started (protocol={self.protocol.name}, "
            f"account={self.gateway.account_address})"
        )

    async def stop(self) -> None:
        """Stop accepting requests and wait for queued ones to finish."""
        if self._task is None:
            return
        self._accepting = False
        await self._queue.put(_STOP)
        await self._task
        self._task = None
        logger.info(
            f"Chain submitter stopped ({self.submitted_count} submitted, {self.failed_count} failed)"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(self, job: VerificationJob, breakdown: ScoreBreakdown) -> SubmissionResult:
        """Submit a scored job and wait until its transactions are confirmed.

        Raises:
            ChainSubmissionError: if the transactions could not be confirmed
        """
        calls = await self.protocol.plan(self.gateway, job.charity_id, breakdown)
        request = _Request(
            calls=calls,
            charity_id=job.charity_id,
            breakdown=breakdown,
            label=f"charity-{job.charity_id}",
        )
        return await self._enqueue(request)

    async def execute(self, calls: List[ChainCall], label: str = "admin") -> SubmissionResult:
        """Run administrative calls through the same writer."""
        if not calls:
            return SubmissionResult(charity_id=None, skipped_reason="nothing to submit")
        return await self._enqueue(_Request(calls=list(calls), label=label))

    async def _enqueue(self, request: _Request) -> SubmissionResult:
        if not self._accepting:
            raise ChainSubmissionError(
                request.charity_id if request.charity_id is not None else -1,
                "submitter is not accepting requests",
                attempts=0,
            )
        request.future = asyncio.get_running_loop().create_future()
        await self._queue.put(request)
        return await request.future

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    async def _writer(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                await self._handle(item)
            finally:
                self._queue.task_done()

    async def _handle(self, request: _Request) -> None:
        stats = RetryStats()
        try:
            result = await with_retry_async(
                self._attempt,
                request,
                config=self.retry_config,
                task_id=request.label,
                on_retry=self._resync_nonce,
                stats=stats,
            )
        except OracleError as e:
            self.failed_count += 1
            error = ChainSubmissionError(
                request.charity_id if request.charity_id is not None else -1,
                f"{request.label} failed after {stats.attempts} attempts "
                f"({request.confirmed}/{len(request.calls)} confirmed): {e}",
                attempts=stats.attempts,
            )
            self._nonce = None
            logger.error(str(error))
            if not request.future.done():
                request.future.set_exception(error)
            return
        except asyncio.CancelledError:
            request.future.cancel()
            raise
        except Exception as e:
            # Hand the error to the caller and keep the writer alive.
            self.failed_count += 1
            self._nonce = None
            logger.exception(f"Unexpected error submitting {request.label}")
            if not request.future.done():
                request.future.set_exception(e)
            return

        result.attempts = stats.attempts
        if result.submitted:
            self.submitted_count += 1
            await self._after_submission(request)
        if not request.future.done():
            request.future.set_result(result)

    async def _attempt(self, request: _Request) -> SubmissionResult:
        if request.charity_id is not None and request.confirmed == 0:
            record = await self.gateway.get_record(request.charity_id)
            if not record.is_pending:
                reason = f"status is {record.status.name}"
                logger.info(f"Skipping submission for charity {request.charity_id}: {reason}")
                return SubmissionResult(charity_id=request.charity_id, skipped_reason=reason)

        while request.confirmed < len(request.calls):
            call = request.calls[request.confirmed]
            if self._nonce is None:
                self._nonce = await self.gateway.pending_nonce()
            receipt = await self.gateway.transact(call.fn_name, call.args, self._nonce)
            self._nonce += 1
            request.confirmed += 1
            request.receipts.append(receipt)

        return SubmissionResult(
            charity_id=request.charity_id,
            submitted=True,
            tx_hashes=[r.get("transactionHash") for r in request.receipts if r.get("transactionHash")],
        )

    async def _resync_nonce(self, attempt: int, error: BaseException) -> None:
        # A failed send may or may not have consumed the nonce; ask the node.
        self._nonce = None

    async def _after_submission(self, request: _Request) -> None:
        if request.charity_id is None or request.breakdown is None:
            return
        try:
            await self.protocol.after_submission(self.gateway, request.charity_id, request.breakdown)
        except OracleError as e:
            logger.warning(f"Post-submission read failed for charity {request.charity_id}: {e}")
