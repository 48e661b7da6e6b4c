"""
Verify command - score one charity and optionally submit the result.
"""

from __future__ import annotations

from charity_oracle.cli.output import ConsoleOutput
from charity_oracle.config import OracleConfig
from charity_oracle.oracle import VerificationOracle


async def run(config: OracleConfig, charity_id: int, submit: bool = False) -> int:
    """Run the verify command."""
    console = ConsoleOutput()
    config.validate(require_signer=submit, require_llm=True)
    oracle = VerificationOracle.from_config(config)

    try:
        await oracle.initialize()
        outcome = await oracle.verify_one(charity_id, submit=submit)
    finally:
        await oracle.close()

    console.print_record(outcome.record)
    if outcome.evidence_urls:
        console.print(f"Evidence: {len(outcome.evidence_urls)} url(s)")
    if outcome.skipped_reason:
        console.print_info(f"Not verified: {outcome.skipped_reason}")
        return 0

    console.print_breakdown(outcome.breakdown)
    if not submit:
        console.print_info("Dry run; pass --submit to write the result on-chain")
        return 0

    submission = outcome.submission
    if submission.submitted:
        console.print_success(f"Submitted in {len(submission.tx_hashes)} transaction(s)")
        for tx_hash in submission.tx_hashes:
            console.print(f"  {tx_hash}")
    else:
        console.print_info(f"Nothing submitted: {submission.skipped_reason}")
    return 0
