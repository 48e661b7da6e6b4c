"""
BacklogScanner - full pass over the registry for records still Pending.

Runs at startup to recover anything registered while the oracle was down,
and again on demand (or periodically) for reconciliation. A record that
cannot be read is logged and skipped; the scan always continues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from charity_oracle.chain.gateway import ChainGateway
from charity_oracle.config.defaults import BACKLOG_ITEM_DELAY_SECONDS
from charity_oracle.errors import OracleError
from charity_oracle.job_queue import JobQueue
from charity_oracle.models import JobOrigin

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    total: int = 0
    pending: int = 0
    queued: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


class BacklogScanner:
    """Sequential registry walk that enqueues Pending records."""

    def __init__(
        self,
        gateway: ChainGateway,
        queue: JobQueue,
        item_delay: float = BACKLOG_ITEM_DELAY_SECONDS,
    ):
        self.gateway = gateway
        self.queue = queue
        self.item_delay = item_delay
        self.last_stats: Optional[ScanStats] = None

    async def scan(self, shutdown: Optional[asyncio.Event] = None) -> ScanStats:
        stats = ScanStats()
        try:
            stats.total = await self.gateway.total_count()
        except OracleError as e:
            logger.error(f"Backlog scan aborted, registry size unavailable: {e}")
            stats.errors.append(str(e))
            self.last_stats = stats
            return stats
        except Exception as e:
            logger.exception("Backlog scan aborted, registry size unavailable")
            stats.errors.append(repr(e))
            self.last_stats = stats
            return stats

        logger.info(f"Scanning {stats.total} registered charities for pending verification")

        for charity_id in range(stats.total):
            if shutdown is not None and shutdown.is_set():
                logger.info(f"Backlog scan interrupted at charity {charity_id}")
                break
            try:
                record = await self.gateway.get_record(charity_id)
                if not record.is_pending:
                    stats.skipped += 1
                    continue
                stats.pending += 1
                if self.queue.enqueue(charity_id, JobOrigin.BACKLOG):
                    stats.queued += 1
            except OracleError as e:
                logger.error(f"Backlog: could not process charity {charity_id}: {e}")
                stats.errors.append(f"{charity_id}: {e}")
                continue
            except Exception as e:
                logger.exception(f"Backlog: unexpected error on charity {charity_id}")
                stats.errors.append(f"{charity_id}: {e!r}")
                continue

            if self.item_delay > 0:
                await asyncio.sleep(self.item_delay)

        logger.info(
            f"Backlog scan complete: {stats.pending} pending, {stats.queued} queued, "
            f"{stats.skipped} decided, {len(stats.errors)} errors"
        )
        self.last_stats = stats
        return stats
