"""Tests for oracle.py module."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from charity_oracle.backlog import ScanStats
from charity_oracle.chain.protocols import AutoDecisionProtocol, ExplicitDecisionProtocol
from charity_oracle.chain.submitter import RETRYABLE_ERRORS, ChainSubmitter
from charity_oracle.errors import ScoringError
from charity_oracle.models import (
    CharityStatus,
    JobOrigin,
    RegistrationEvent,
    ScoreBreakdown,
    VerificationJob,
)
from charity_oracle.oracle import VerificationOracle, merge_evidence
from charity_oracle.retry import RetryConfig
from fakes import make_record

WALLET = "0x1111111111111111111111111111111111111111"
SUBMITTER = "0x3333333333333333333333333333333333333333"


def _breakdown(score=72, approved=True):
    return ScoreBreakdown(base_score=score, final_score=score, approved=approved)


def _pipeline(score=None):
    pipeline = MagicMock()
    pipeline.score = score or AsyncMock(return_value=_breakdown())
    return pipeline


def _oracle(gateway, store, pipeline, protocol=None, **kwargs):
    protocol = protocol or ExplicitDecisionProtocol()
    submitter = ChainSubmitter(
        gateway,
        protocol,
        retry_config=RetryConfig(
            max_attempts=2, base_delay=0, max_delay=0, jitter=0, retryable_exceptions=RETRYABLE_ERRORS
        ),
    )
    kwargs.setdefault("event_poll_interval", 0.01)
    return VerificationOracle(
        gateway=gateway,
        pipeline=pipeline,
        evidence=store,
        protocol=protocol,
        submitter=submitter,
        **kwargs,
    )


async def _wait_for(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def _blocking_score(started, release, breakdown=None):
    async def score(record, evidence_urls):
        started.set()
        await release.wait()
        return breakdown or _breakdown()

    return AsyncMock(side_effect=score)


class TestMergeEvidence:
    def test_keeps_order_and_drops_repeats(self):
        assert merge_evidence(["a", "b"], ["b", "", "c"], ["a"]) == ["a", "b", "c"]


class TestProcessJob:
    async def test_assembles_evidence_and_submits(self, gateway, memory_store):
        gateway.add(make_record(1, wallet=WALLET, evidence_urls=["https://chain/a.jpg", "https://shared"]))
        await memory_store.store_by_wallet(WALLET, ["https://shared", "https://store/b.jpg"])
        pipeline = _pipeline()
        oracle = _oracle(gateway, memory_store, pipeline)
        oracle.submitter.start()

        result = await oracle.process_job(VerificationJob(1, JobOrigin.EVENT))
        await oracle.submitter.stop()

        assert result.submitted is True
        record, urls = pipeline.score.call_args.args
        assert record.charity_id == 1
        assert urls == ["https://chain/a.jpg", "https://shared", "https://store/b.jpg"]
        assert await memory_store.get_by_wallet(WALLET) is None
        assert await memory_store.get_by_entity(1) == ["https://shared", "https://store/b.jpg"]
        assert gateway.calls() == ["updateAiScore", "approveCharity"]

    async def test_falls_back_to_event_submitter_wallet(self, gateway, memory_store):
        gateway.add(make_record(2, wallet=WALLET))
        await memory_store.store_by_wallet(SUBMITTER, ["https://upload.jpg"])
        pipeline = _pipeline()
        oracle = _oracle(gateway, memory_store, pipeline)
        oracle.submitter.start()

        await oracle.process_job(VerificationJob(2, JobOrigin.EVENT, submitter=SUBMITTER))
        await oracle.submitter.stop()

        assert pipeline.score.call_args.args[1] == ["https://upload.jpg"]
        assert await memory_store.get_by_entity(2) == ["https://upload.jpg"]

    async def test_decided_record_is_not_scored(self, gateway, memory_store):
        gateway.add(make_record(3, status=CharityStatus.REJECTED))
        pipeline = _pipeline()
        oracle = _oracle(gateway, memory_store, pipeline)

        assert await oracle.process_job(VerificationJob(3, JobOrigin.BACKLOG)) is None
        pipeline.score.assert_not_called()
        assert gateway.transactions == []


class TestRun:
    async def test_startup_backlog_is_verified(self, gateway, memory_store):
        gateway.add(make_record(0))
        gateway.add(make_record(1, status=CharityStatus.APPROVED))
        gateway.add(make_record(2))
        oracle = _oracle(gateway, memory_store, _pipeline(), concurrency=2)
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await _wait_for(lambda: oracle.queue.completed_count == 2)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        decided = sorted(args[0] for name, args, _ in gateway.transactions if name == "approveCharity")
        assert decided == [0, 2]
        assert [nonce for _, _, nonce in gateway.transactions] == list(range(4))

    async def test_duplicate_discovery_submits_once(self, gateway, memory_store):
        gateway.add(make_record(1))
        started, release = asyncio.Event(), asyncio.Event()
        pipeline = _pipeline(_blocking_score(started, release))
        oracle = _oracle(gateway, memory_store, pipeline)
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await asyncio.wait_for(started.wait(), timeout=1)
        assert oracle.queue.enqueue(1, JobOrigin.EVENT) is False
        assert oracle.queue.enqueue(1, JobOrigin.BACKLOG) is False
        release.set()
        await _wait_for(lambda: oracle.queue.completed_count == 1)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        assert pipeline.score.await_count == 1
        assert gateway.calls().count("updateAiScore") == 1

    async def test_scoring_failure_releases_job(self, gateway, memory_store):
        gateway.add(make_record(1))
        pipeline = _pipeline(AsyncMock(side_effect=ScoringError(1, "text analysis unavailable")))
        oracle = _oracle(gateway, memory_store, pipeline)
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await _wait_for(lambda: oracle.queue.failed_count == 1)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        assert gateway.transactions == []
        assert oracle.queue.is_held(1) is False

    async def test_shutdown_waits_for_in_flight_job(self, gateway, memory_store):
        gateway.add(make_record(1))
        started, release = asyncio.Event(), asyncio.Event()
        oracle = _oracle(gateway, memory_store, _pipeline(_blocking_score(started, release)))
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await asyncio.wait_for(started.wait(), timeout=1)
        shutdown.set()
        await asyncio.sleep(0.02)
        assert not task.done()

        release.set()
        await asyncio.wait_for(task, timeout=1)

        assert gateway.calls() == ["updateAiScore", "approveCharity"]

    async def test_event_discovery(self, gateway, memory_store):
        oracle = _oracle(gateway, memory_store, _pipeline(), protocol=AutoDecisionProtocol())
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await asyncio.sleep(0.02)
        gateway.add(make_record(0))
        gateway.events.append(RegistrationEvent(0, SUBMITTER, "Hope Foundation", 1_700_000_000, 101))
        gateway.head = 101
        await _wait_for(lambda: oracle.queue.completed_count == 1)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        assert gateway.calls() == ["updateAiScore"]

    async def test_periodic_scan_survives_a_failed_pass(self, gateway, memory_store):
        oracle = _oracle(gateway, memory_store, _pipeline(), backlog_interval=0.01)
        oracle.scanner.scan = AsyncMock(side_effect=[RuntimeError("decode failure")] + [ScanStats()] * 100)
        shutdown = asyncio.Event()

        task = asyncio.create_task(oracle.run(shutdown))
        await _wait_for(lambda: oracle.scanner.scan.await_count >= 3)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)


class TestManualOperations:
    async def test_verify_one_dry_run(self, gateway, memory_store):
        gateway.add(make_record(1))
        oracle = _oracle(gateway, memory_store, _pipeline())

        outcome = await oracle.verify_one(1)

        assert outcome.breakdown.final_score == 72
        assert outcome.submission is None
        assert gateway.transactions == []

    async def test_verify_one_submit(self, gateway, memory_store):
        gateway.add(make_record(1))
        oracle = _oracle(gateway, memory_store, _pipeline())

        outcome = await oracle.verify_one(1, submit=True)
        await oracle.submitter.stop()

        assert outcome.submission.submitted is True
        assert gateway.calls() == ["updateAiScore", "approveCharity"]

    async def test_verify_one_decided(self, gateway, memory_store):
        gateway.add(make_record(1, wallet=WALLET, status=CharityStatus.APPROVED))
        await memory_store.store_by_wallet(WALLET, ["https://upload.jpg"])
        pipeline = _pipeline()
        oracle = _oracle(gateway, memory_store, pipeline)

        outcome = await oracle.verify_one(1, submit=True)

        assert outcome.skipped_reason == "status is APPROVED"
        pipeline.score.assert_not_called()
        assert await memory_store.get_by_wallet(WALLET) == ["https://upload.jpg"]
        assert await memory_store.get_by_entity(1) is None

    async def test_reconcile(self, gateway, memory_store):
        gateway.add(make_record(0))
        gateway.add(make_record(1, status=CharityStatus.SUSPENDED))
        gateway.add(make_record(2))
        oracle = _oracle(gateway, memory_store, _pipeline(), concurrency=2)

        stats = await oracle.reconcile()

        assert stats.queued == 2
        assert oracle.queue.completed_count == 2
        assert gateway.calls().count("updateAiScore") == 2

    async def test_startup_calls_go_through_submitter(self, gateway, memory_store):
        gateway.required = 1
        oracle = _oracle(gateway, memory_store, _pipeline(), protocol=ExplicitDecisionProtocol(required_approvals=2))
        oracle.submitter.start()

        result = await oracle.run_startup_calls()
        await oracle.submitter.stop()

        assert result.submitted is True
        assert gateway.required == 2
