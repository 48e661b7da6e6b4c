"""
Scan command - list pending charities, or verify them with --process.
"""

from __future__ import annotations

from charity_oracle.backlog import BacklogScanner, ScanStats
from charity_oracle.chain import Web3ChainGateway
from charity_oracle.cli.output import ConsoleOutput
from charity_oracle.config import OracleConfig
from charity_oracle.job_queue import JobQueue
from charity_oracle.oracle import VerificationOracle


def _report(console: ConsoleOutput, stats: ScanStats) -> None:
    console.print(
        f"[bold]{stats.total}[/bold] registered, [bold]{stats.pending}[/bold] pending, "
        f"{stats.skipped} decided"
    )
    for error in stats.errors:
        console.print_warning(error)


async def run(config: OracleConfig, process: bool = False) -> int:
    """Run the scan command."""
    console = ConsoleOutput()

    if process:
        config.validate(require_signer=True, require_llm=True)
        oracle = VerificationOracle.from_config(config)
        try:
            stats = await oracle.reconcile()
        finally:
            await oracle.close()
        _report(console, stats)
        status = oracle.queue.get_status()
        console.print(f"Verified {status['completed']}, failed {status['failed']}")
        return 1 if status["failed"] or stats.errors else 0

    config.validate(require_signer=False, require_llm=False)
    gateway = Web3ChainGateway.from_config(config)
    queue = JobQueue()
    try:
        stats = await BacklogScanner(gateway, queue, item_delay=0).scan()
    finally:
        await gateway.close()

    _report(console, stats)
    held = sorted(job_id for job_id in range(stats.total) if queue.is_held(job_id))
    if held:
        console.print(f"Pending: {', '.join(str(i) for i in held)}")
    return 1 if stats.errors else 0
