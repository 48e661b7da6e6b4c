"""
EventSubscriber - turns registry registration events into queued jobs.

Polls ``CharityRegistered`` logs with an in-memory block cursor that starts
``lookback_blocks`` before the head seen at startup. Nothing is persisted:
events emitted while the process is down are picked up by the backlog scan.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from charity_oracle.chain.gateway import ChainGateway
from charity_oracle.config.defaults import (
    EVENT_LOOKBACK_BLOCKS,
    EVENT_MAX_BLOCK_RANGE,
    EVENT_POLL_INTERVAL_SECONDS,
)
from charity_oracle.errors import OracleError
from charity_oracle.job_queue import JobQueue
from charity_oracle.models import JobOrigin

logger = logging.getLogger(__name__)


class EventSubscriber:
    """Enqueue-only consumer of the registration event stream."""

    def __init__(
        self,
        gateway: ChainGateway,
        queue: JobQueue,
        poll_interval: float = EVENT_POLL_INTERVAL_SECONDS,
        lookback_blocks: int = EVENT_LOOKBACK_BLOCKS,
        max_block_range: int = EVENT_MAX_BLOCK_RANGE,
    ):
        self.gateway = gateway
        self.queue = queue
        self.poll_interval = poll_interval
        self.lookback_blocks = max(0, lookback_blocks)
        self.max_block_range = max(1, max_block_range)
        self.next_block: Optional[int] = None
        self.events_seen = 0

    async def poll_once(self) -> int:
        """Fetch logs from the cursor up to the current head. Returns jobs queued."""
        head = await self.gateway.block_number()
        if self.next_block is None:
            if self.lookback_blocks:
                self.next_block = max(0, head - self.lookback_blocks)
            else:
                # Only blocks mined after startup.
                self.next_block = head + 1
            logger.info(f"Listening for registrations from block {self.next_block}")

        queued = 0
        while self.next_block <= head:
            to_block = min(head, self.next_block + self.max_block_range - 1)
            events = await self.gateway.get_registration_events(self.next_block, to_block)
            for event in events:
                self.events_seen += 1
                logger.info(
                    f"New charity registered: {event.charity_id} {event.name!r} "
                    f"by {event.submitter} (block {event.block_number})"
                )
                if self.queue.enqueue(event.charity_id, JobOrigin.EVENT, submitter=event.submitter):
                    queued += 1
            self.next_block = to_block + 1
        return queued

    async def run(self, shutdown: asyncio.Event) -> None:
        """Poll until ``shutdown`` is set. Poll failures are logged and retried."""
        logger.info(f"Event subscriber started (poll every {self.poll_interval}s)")
        while not shutdown.is_set():
            try:
                await self.poll_once()
            except OracleError as e:
                logger.warning(f"Event poll failed, will retry: {e}")
            except Exception:
                logger.exception("Unexpected error during event poll, will retry")
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Event subscriber stopped")
