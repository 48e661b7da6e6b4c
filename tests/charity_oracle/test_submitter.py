"""Tests for chain/submitter.py module."""

import asyncio

import pytest

from charity_oracle.chain.protocols import AutoDecisionProtocol, ChainCall, ExplicitDecisionProtocol
from charity_oracle.chain.submitter import RETRYABLE_ERRORS, ChainSubmitter
from charity_oracle.errors import ChainSubmissionError, TransactionError, TransientCollaboratorError
from charity_oracle.models import CharityStatus, JobOrigin, ScoreBreakdown, VerificationJob
from charity_oracle.retry import RetryConfig
from fakes import make_record


def _breakdown(score, approved):
    return ScoreBreakdown(base_score=score, final_score=score, approved=approved)


def _job(charity_id):
    return VerificationJob(charity_id=charity_id, origin=JobOrigin.EVENT)


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, base_delay=0, max_delay=0, jitter=0, retryable_exceptions=RETRYABLE_ERRORS)


@pytest.fixture
async def submitter(gateway, fast_retry):
    submitter = ChainSubmitter(gateway, ExplicitDecisionProtocol(), retry_config=fast_retry)
    submitter.start()
    yield submitter
    await submitter.stop()


class TestExplicitSubmission:
    async def test_approved_sends_score_then_approve(self, gateway, submitter):
        gateway.add(make_record(1))

        result = await submitter.submit(_job(1), _breakdown(72, True))

        assert result.submitted is True
        assert gateway.transactions == [
            ("updateAiScore", (1, 72), 0),
            ("approveCharity", (1,), 1),
        ]
        assert len(result.tx_hashes) == 2
        assert gateway.records[1].status == CharityStatus.APPROVED

    async def test_rejected_sends_score_then_reject(self, gateway, submitter):
        gateway.add(make_record(2))

        await submitter.submit(_job(2), _breakdown(41, False))

        assert gateway.calls() == ["updateAiScore", "rejectCharity"]
        assert gateway.records[2].status == CharityStatus.REJECTED

    async def test_skips_decided_record(self, gateway, submitter):
        gateway.add(make_record(3, status=CharityStatus.APPROVED))

        result = await submitter.submit(_job(3), _breakdown(90, True))

        assert result.submitted is False
        assert "APPROVED" in result.skipped_reason
        assert gateway.transactions == []

    async def test_no_second_approval_from_same_account(self, gateway, submitter):
        gateway.required = 2
        gateway.add(make_record(4))
        gateway.approvals[4] = {gateway.account_address}

        await submitter.submit(_job(4), _breakdown(80, True))

        assert gateway.calls() == ["updateAiScore"]


class TestOrdering:
    async def test_concurrent_submissions_use_consecutive_nonces(self, gateway, submitter):
        for i in range(5):
            gateway.add(make_record(i))

        results = await asyncio.gather(
            *(submitter.submit(_job(i), _breakdown(70, True)) for i in range(5))
        )

        assert all(r.submitted for r in results)
        assert [nonce for _, _, nonce in gateway.transactions] == list(range(10))
        # Each job's two transactions are adjacent: nothing interleaves.
        for index in range(0, 10, 2):
            score_call, decision_call = gateway.transactions[index], gateway.transactions[index + 1]
            assert score_call[0] == "updateAiScore"
            assert decision_call[0] == "approveCharity"
            assert score_call[1][0] == decision_call[1][0]

    async def test_nonce_is_cached_between_jobs(self, gateway, submitter):
        gateway.add(make_record(1))
        gateway.add(make_record(2))

        await submitter.submit(_job(1), _breakdown(70, True))
        await submitter.submit(_job(2), _breakdown(70, True))

        assert gateway.nonce_reads == 1


class TestRetry:
    async def test_retry_resumes_after_confirmed_calls(self, gateway, submitter):
        gateway.add(make_record(1))
        # Score update succeeds, the approval fails once.
        gateway.transact_errors = [None, TransactionError("underpriced")]

        result = await submitter.submit(_job(1), _breakdown(70, True))

        assert result.submitted is True
        assert result.attempts == 2
        assert gateway.calls() == ["updateAiScore", "approveCharity"]
        assert gateway.nonce_reads == 2

    async def test_exhausted_retries_raise(self, gateway, submitter):
        gateway.add(make_record(1))
        gateway.transact_errors = [TransactionError("nonce too low")] * 3

        with pytest.raises(ChainSubmissionError) as exc:
            await submitter.submit(_job(1), _breakdown(70, True))

        assert exc.value.charity_id == 1
        assert exc.value.attempts == 3
        assert gateway.transactions == []
        assert submitter.failed_count == 1

    async def test_reverted_transaction_is_not_retried(self, gateway, submitter):
        gateway.add(make_record(1))
        gateway.transact_errors = [None, TransactionError("approveCharity reverted", reverted=True)]

        with pytest.raises(ChainSubmissionError) as exc:
            await submitter.submit(_job(1), _breakdown(70, True))

        assert exc.value.attempts == 1
        assert gateway.calls() == ["updateAiScore"]
        assert len(gateway.transact_errors) == 0

    async def test_writer_survives_a_failed_job(self, gateway, submitter):
        gateway.add(make_record(1))
        gateway.add(make_record(2))
        gateway.transact_errors = [TransactionError("boom")] * 3

        with pytest.raises(ChainSubmissionError):
            await submitter.submit(_job(1), _breakdown(70, True))
        result = await submitter.submit(_job(2), _breakdown(30, False))

        assert result.submitted is True
        assert gateway.calls() == ["updateAiScore", "rejectCharity"]

    async def test_transient_record_read_is_retried(self, gateway, submitter):
        record = gateway.add(make_record(1))
        reads = []
        original = gateway.get_record

        async def flaky(charity_id):
            reads.append(charity_id)
            if len(reads) == 1:
                raise TransientCollaboratorError("rpc down")
            return record

        gateway.get_record = flaky

        result = await submitter.submit(_job(1), _breakdown(70, True))

        assert result.submitted is True
        assert len(reads) == 2
        gateway.get_record = original


class TestLifecycle:
    async def test_auto_protocol_sends_score_only(self, gateway, fast_retry):
        gateway.add(make_record(1))
        submitter = ChainSubmitter(gateway, AutoDecisionProtocol(), retry_config=fast_retry)
        submitter.start()
        try:
            await submitter.submit(_job(1), _breakdown(85, True))
        finally:
            await submitter.stop()

        assert gateway.calls() == ["updateAiScore"]
        assert gateway.records[1].status == CharityStatus.PENDING

    async def test_execute_admin_calls(self, gateway, submitter):
        result = await submitter.execute([ChainCall("setRequiredApprovals", (2,))], label="startup")

        assert result.submitted is True
        assert gateway.required == 2

    async def test_execute_nothing(self, submitter):
        result = await submitter.execute([])
        assert result.submitted is False

    async def test_submit_after_stop_is_rejected(self, gateway, fast_retry):
        gateway.add(make_record(1))
        submitter = ChainSubmitter(gateway, ExplicitDecisionProtocol(), retry_config=fast_retry)
        submitter.start()
        await submitter.stop()

        with pytest.raises(ChainSubmissionError):
            await submitter.submit(_job(1), _breakdown(70, True))

    async def test_stop_drains_queued_requests(self, gateway, fast_retry):
        for i in range(3):
            gateway.add(make_record(i))
        submitter = ChainSubmitter(gateway, ExplicitDecisionProtocol(), retry_config=fast_retry)
        submitter.start()

        pending = [asyncio.create_task(submitter.submit(_job(i), _breakdown(70, True))) for i in range(3)]
        await asyncio.sleep(0)
        await submitter.stop()

        results = await asyncio.gather(*pending)
        assert all(r.submitted for r in results)
        assert len(gateway.transactions) == 6
