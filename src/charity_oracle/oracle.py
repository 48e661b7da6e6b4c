"""
VerificationOracle - builds every component once and runs them together.

Producers (event subscriber, backlog scanner) feed the job queue; scoring
workers take jobs off it, assemble evidence, run the scoring pipeline and
hand the result to the single chain submitter.

Shutdown order:
1. producers stop and the queue stops accepting work
2. jobs already being scored or submitted run to completion
3. the submitter drains and the shared clients close
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from charity_oracle.backlog import BacklogScanner, ScanStats
from charity_oracle.chain.gateway import ChainGateway, Web3ChainGateway
from charity_oracle.chain.protocols import DecisionProtocol, protocol_for
from charity_oracle.chain.submitter import RETRYABLE_ERRORS, ChainSubmitter, SubmissionResult
from charity_oracle.config import OracleConfig
from charity_oracle.errors import OracleError
from charity_oracle.evidence import EvidenceStore, SqliteEvidenceBackend
from charity_oracle.job_queue import JobQueue, QueueClosed
from charity_oracle.llm import ChatClient, CircuitBreaker, CircuitBreakerConfig
from charity_oracle.models import CharityRecord, JobOrigin, ScoreBreakdown, VerificationJob
from charity_oracle.retry import RetryConfig
from charity_oracle.scoring import (
    DocumentReachabilityStage,
    ImageAnalysisStage,
    ScoringPipeline,
    TextAnalysisStage,
)
from charity_oracle.subscriber import EventSubscriber

logger = logging.getLogger(__name__)


@dataclass
class VerificationOutcome:
    """Result of verifying one charity outside the worker loop."""
    record: CharityRecord
    evidence_urls: List[str]
    breakdown: Optional[ScoreBreakdown] = None
    submission: Optional[SubmissionResult] = None
    skipped_reason: Optional[str] = None


def merge_evidence(*sources: Sequence[str]) -> List[str]:
    """Concatenate url lists, keeping first-seen order and dropping repeats."""
    seen = set()
    merged: List[str] = []
    for urls in sources:
        for url in urls:
            if url and url not in seen:
                seen.add(url)
                merged.append(url)
    return merged


class VerificationOracle:
    """Wires the oracle's components and owns their lifecycle."""

    def __init__(
        self,
        gateway: ChainGateway,
        pipeline: ScoringPipeline,
        evidence: EvidenceStore,
        protocol: DecisionProtocol,
        submitter: Optional[ChainSubmitter] = None,
        queue: Optional[JobQueue] = None,
        concurrency: int = 1,
        backlog_item_delay: float = 0.0,
        backlog_interval: float = 0.0,
        event_poll_interval: float = 1.0,
        event_lookback_blocks: int = 0,
        http_client: Optional[httpx.AsyncClient] = None,
        chat_client: Optional[ChatClient] = None,
    ):
        self.gateway = gateway
        self.pipeline = pipeline
        self.evidence = evidence
        self.protocol = protocol
        self.submitter = submitter or ChainSubmitter(gateway, protocol)
        self.queue = queue or JobQueue()
        self.concurrency = max(1, concurrency)
        self.backlog_interval = backlog_interval
        self.subscriber = EventSubscriber(
            gateway,
            self.queue,
            poll_interval=event_poll_interval,
            lookback_blocks=event_lookback_blocks,
        )
        self.scanner = BacklogScanner(gateway, self.queue, item_delay=backlog_item_delay)
        self._http_client = http_client
        self._chat_client = chat_client
        self._initialized = False

    @classmethod
    def from_config(cls, config: OracleConfig) -> "VerificationOracle":
        """Construct the production component graph."""
        http_client = httpx.AsyncClient(timeout=config.llm_timeout)
        chat = ChatClient(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            http_client=http_client,
            timeout=config.llm_timeout,
            breaker=CircuitBreaker("llm", CircuitBreakerConfig.from_env()),
        )
        pipeline = ScoringPipeline(
            text_stage=TextAnalysisStage(chat, config.text_model),
            document_stage=DocumentReachabilityStage(
                http_client, gateway=config.ipfs_gateway_url, timeout=config.probe_timeout
            ),
            image_stage=ImageAnalysisStage(chat, config.vision_model),
            threshold=config.approval_threshold,
        )
        gateway = Web3ChainGateway.from_config(config)
        protocol = protocol_for(config)
        submitter = ChainSubmitter(
            gateway,
            protocol,
            retry_config=RetryConfig(
                max_attempts=config.submit_max_attempts,
                base_delay=config.submit_base_delay,
                max_delay=config.submit_max_delay,
                retryable_exceptions=RETRYABLE_ERRORS,
            ),
        )
        return cls(
            gateway=gateway,
            pipeline=pipeline,
            evidence=EvidenceStore(SqliteEvidenceBackend(config.evidence_db_path)),
            protocol=protocol,
            submitter=submitter,
            concurrency=config.scoring_concurrency,
            backlog_item_delay=config.backlog_item_delay,
            backlog_interval=config.backlog_interval,
            event_poll_interval=config.event_poll_interval,
            event_lookback_blocks=config.event_lookback_blocks,
            http_client=http_client,
            chat_client=chat,
        )

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.evidence.initialize()
        self._initialized = True

    async def close(self) -> None:
        await self.submitter.stop()
        await self.evidence.close()
        if self._chat_client is not None:
            await self._chat_client.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()
        await self.gateway.close()
        self._initialized = False

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------

    async def assemble_evidence(self, record: CharityRecord, submitter: Optional[str] = None) -> List[str]:
        """On-chain evidence urls followed by the store entry for this charity."""
        stored = await self.evidence.resolve(record.charity_id, wallets=[record.wallet, submitter])
        return merge_evidence(record.evidence_urls, stored)

    async def process_job(self, job: VerificationJob) -> Optional[SubmissionResult]:
        """Score and submit one job. Returns None when the record is already decided."""
        record = await self.gateway.get_record(job.charity_id)
        if not record.is_pending:
            logger.info(f"Charity {job.charity_id} is {record.status.name}; nothing to verify")
            return None

        evidence_urls = await self.assemble_evidence(record, job.submitter)
        breakdown = await self.pipeline.score(record, evidence_urls)
        for note in breakdown.notes:
            logger.warning(f"Charity {job.charity_id}: {note}")

        self.queue.mark_submitting(job.charity_id)
        result = await self.submitter.submit(job, breakdown)
        if result.submitted:
            logger.info(
                f"Submitted charity {job.charity_id}: score={breakdown.final_score} "
                f"{'approved' if breakdown.approved else 'rejected'} "
                f"(attempts={result.attempts}, txs={len(result.tx_hashes)})"
            )
        return result

    async def verify_one(self, charity_id: int, submit: bool = False) -> VerificationOutcome:
        """Verify a single charity on demand, optionally submitting the result."""
        record = await self.gateway.get_record(charity_id)
        if not record.is_pending:
            # Stored evidence stays where it is for decided records.
            return VerificationOutcome(
                record=record,
                evidence_urls=list(record.evidence_urls),
                skipped_reason=f"status is {record.status.name}",
            )

        evidence_urls = await self.assemble_evidence(record)
        outcome = VerificationOutcome(record=record, evidence_urls=evidence_urls)
        outcome.breakdown = await self.pipeline.score(record, evidence_urls)
        if submit:
            job = VerificationJob(charity_id=charity_id, origin=JobOrigin.MANUAL)
            self.submitter.start()
            outcome.submission = await self.submitter.submit(job, outcome.breakdown)
        return outcome

    # ------------------------------------------------------------------
    # Service loop
    # ------------------------------------------------------------------

    async def _worker(self, index: int) -> None:
        while True:
            try:
                job = await self.queue.dequeue()
            except QueueClosed:
                return
            try:
                await self.process_job(job)
            except OracleError as e:
                self.queue.fail(job.charity_id, str(e))
            except asyncio.CancelledError:
                self.queue.fail(job.charity_id, "cancelled")
                raise
            except Exception as e:
                logger.exception(f"Worker {index}: unexpected error on charity {job.charity_id}")
                self.queue.fail(job.charity_id, repr(e))
            else:
                self.queue.complete(job.charity_id)

    async def _scan_once(self, shutdown: asyncio.Event) -> None:
        try:
            await self.scanner.scan(shutdown)
        except Exception:
            logger.exception("Backlog scan failed")

    async def _backlog_loop(self, shutdown: asyncio.Event) -> None:
        await self._scan_once(shutdown)
        if self.backlog_interval <= 0:
            return
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.backlog_interval)
            except asyncio.TimeoutError:
                logger.info("Starting periodic backlog scan")
                await self._scan_once(shutdown)

    async def run_startup_calls(self) -> Optional[SubmissionResult]:
        calls = await self.protocol.startup_calls(self.gateway)
        if not calls:
            return None
        return await self.submitter.execute(calls, label="startup")

    async def reconcile(self) -> ScanStats:
        """One backlog pass, then verify everything it queued and return."""
        await self.initialize()
        self.submitter.start()
        await self.run_startup_calls()
        stats = await self.scanner.scan()
        self.queue.close(drop_waiting=False)
        workers = [
            asyncio.create_task(self._worker(i), name=f"scoring-worker-{i}")
            for i in range(self.concurrency)
        ]
        await asyncio.gather(*workers)
        await self.submitter.stop()
        logger.info(f"Reconciliation finished: {self.queue.get_status()}")
        return stats

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run until ``shutdown`` is set, then wind down in order."""
        await self.initialize()
        self.submitter.start()
        await self.run_startup_calls()

        workers = [
            asyncio.create_task(self._worker(i), name=f"scoring-worker-{i}")
            for i in range(self.concurrency)
        ]
        producers = [
            asyncio.create_task(self.subscriber.run(shutdown), name="event-subscriber"),
            asyncio.create_task(self._backlog_loop(shutdown), name="backlog-scanner"),
        ]
        logger.info(f"Verification oracle running with {self.concurrency} scoring workers")

        try:
            await shutdown.wait()
        finally:
            logger.info("Shutting down: no new jobs, finishing in-flight work")
            shutdown.set()
            for task, outcome in zip(producers, await asyncio.gather(*producers, return_exceptions=True)):
                if isinstance(outcome, BaseException) and not isinstance(outcome, asyncio.CancelledError):
                    logger.error(f"{task.get_name()} exited with error: {outcome!r}")
            self.queue.close()
            await asyncio.gather(*workers, return_exceptions=True)
            await self.submitter.stop()
            logger.info(f"Oracle stopped: {self.queue.get_status()}")
