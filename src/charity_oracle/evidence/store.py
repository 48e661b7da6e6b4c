"""
EvidenceStore - correlates uploaded evidence urls with charities.

Uploads arrive before the charity exists on-chain, so they are first keyed
by the submitting wallet (``wallet:<address>``). Once the oracle learns the
registry identifier the entry moves to ``entity:<id>``; the wallet key is
removed in the same update.

Writes go through one lock owned by the store, so there is a single writer
no matter how many workers share it. Reads are not serialized.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from charity_oracle.evidence.backends import EvidenceBackend
from charity_oracle.models import (
    ENTITY_PREFIX,
    WALLET_PREFIX,
    entity_key,
    wallet_key,
)

logger = logging.getLogger(__name__)

# Key forms written by the old file-backed registry.
_LEGACY_WALLET = re.compile(r"^wallet_(0x[0-9a-fA-F]+)$")
_LEGACY_ENTITY = re.compile(r"^charity_(\d+)$")


def _clean_urls(urls: Iterable[str]) -> List[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    seen = set()
    out: List[str] = []
    for url in urls:
        url = (url or "").strip()
        if url and url not in seen:
            seen.add(url)
            out.append(url)
    return out


class EvidenceStore:
    """Evidence map over an injected backend."""

    def __init__(self, backend: EvidenceBackend):
        self.backend = backend
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        await self.backend.initialize()

    async def close(self) -> None:
        await self.backend.close()

    # ------------------------------------------------------------------
    # Wallet-keyed (pre-registration)
    # ------------------------------------------------------------------

    async def store_by_wallet(self, address: str, urls: Sequence[str]) -> List[str]:
        cleaned = _clean_urls(urls)
        async with self._write_lock:
            await self.backend.put(wallet_key(address), cleaned)
        logger.info(f"Stored {len(cleaned)} evidence urls for wallet {address.lower()}")
        return cleaned

    async def get_by_wallet(self, address: str) -> Optional[List[str]]:
        return await self.backend.get(wallet_key(address))

    # ------------------------------------------------------------------
    # Entity-keyed (post-registration)
    # ------------------------------------------------------------------

    async def store_by_entity(self, charity_id: int, urls: Sequence[str]) -> List[str]:
        cleaned = _clean_urls(urls)
        async with self._write_lock:
            await self.backend.put(entity_key(charity_id), cleaned)
        logger.info(f"Stored {len(cleaned)} evidence urls for charity {charity_id}")
        return cleaned

    async def get_by_entity(self, charity_id: int) -> Optional[List[str]]:
        return await self.backend.get(entity_key(charity_id))

    async def migrate(
        self,
        address: str,
        charity_id: int,
        urls: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """Move a wallet entry to the entity key in one atomic update.

        ``urls`` defaults to the current wallet entry. Calling this again
        after a completed migration rewrites the same entity entry and
        leaves no wallet entry behind.
        """
        async with self._write_lock:
            if urls is None:
                urls = await self.backend.get(wallet_key(address))
                if urls is None:
                    urls = await self.backend.get(entity_key(charity_id)) or []
            cleaned = _clean_urls(urls)
            await self.backend.replace(entity_key(charity_id), cleaned, wallet_key(address))
        logger.info(
            f"Moved {len(cleaned)} evidence urls from wallet {address.lower()} to charity {charity_id}"
        )
        return cleaned

    async def resolve(self, charity_id: int, wallets: Sequence[Optional[str]] = ()) -> List[str]:
        """Evidence for a charity: entity key first, then each wallet in order.

        A wallet hit is migrated to the entity key on the spot.
        """
        urls = await self.get_by_entity(charity_id)
        if urls is not None:
            return urls

        for address in wallets:
            if not address:
                continue
            wallet_urls = await self.get_by_wallet(address)
            if wallet_urls is not None:
                return await self.migrate(address, charity_id, wallet_urls)

        return []

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    async def snapshot(self) -> Dict[str, List[str]]:
        return await self.backend.snapshot()

    async def import_document(self, document: Mapping[str, Sequence[str]]) -> int:
        """Load a flat key -> urls document, accepting the legacy key forms.

        Returns the number of entries imported. Unknown keys are skipped.
        """
        imported = 0
        for raw_key, urls in document.items():
            key = raw_key.strip()
            legacy_wallet = _LEGACY_WALLET.match(key)
            legacy_entity = _LEGACY_ENTITY.match(key)
            if legacy_wallet:
                key = wallet_key(legacy_wallet.group(1))
            elif legacy_entity:
                key = entity_key(int(legacy_entity.group(1)))
            elif key.startswith(WALLET_PREFIX):
                key = wallet_key(key[len(WALLET_PREFIX):])
            elif not key.startswith(ENTITY_PREFIX):
                logger.warning(f"Skipping unrecognised evidence key {raw_key!r}")
                continue

            if not isinstance(urls, (list, tuple)):
                logger.warning(f"Skipping evidence key {raw_key!r}: value is not a list")
                continue

            async with self._write_lock:
                await self.backend.put(key, _clean_urls(urls))
            imported += 1

        logger.info(f"Imported {imported} evidence entries")
        return imported
