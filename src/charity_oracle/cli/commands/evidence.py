"""
Evidence command - manage the evidence store by hand.

    add WALLET URL...     record urls uploaded for a wallet
    show [KEY]            show one wallet or charity id, or everything
    migrate WALLET ID     move a wallet entry to a charity id
    import FILE           load a flat JSON document of key -> urls
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from charity_oracle.cli.output import ConsoleOutput
from charity_oracle.config import OracleConfig
from charity_oracle.evidence import EvidenceStore, SqliteEvidenceBackend
from charity_oracle.models import entity_key, wallet_key


async def _show(store: EvidenceStore, console: ConsoleOutput, key: Optional[str]) -> int:
    if key is None:
        entries = await store.snapshot()
    elif key.isdigit():
        urls = await store.get_by_entity(int(key))
        entries = {entity_key(int(key)): urls} if urls is not None else {}
    else:
        urls = await store.get_by_wallet(key)
        entries = {wallet_key(key): urls} if urls is not None else {}

    if not entries:
        console.print_info("No evidence found")
        return 1
    console.print_evidence(entries)
    return 0


async def run(
    config: OracleConfig,
    action: str,
    key: Optional[str] = None,
    urls: Optional[List[str]] = None,
    charity_id: Optional[int] = None,
    path: Optional[Path] = None,
) -> int:
    """Run the evidence command."""
    console = ConsoleOutput()
    store = EvidenceStore(SqliteEvidenceBackend(config.evidence_db_path))
    await store.initialize()
    try:
        if action == "add":
            stored = await store.store_by_wallet(key, urls or [])
            console.print_success(f"{len(stored)} url(s) stored for {wallet_key(key)}")
            return 0
        if action == "show":
            return await _show(store, console, key)
        if action == "migrate":
            moved = await store.migrate(key, charity_id)
            console.print_success(f"{len(moved)} url(s) now under {entity_key(charity_id)}")
            return 0
        if action == "import":
            document = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(document, dict):
                console.print_error(f"{path} must contain a JSON object")
                return 1
            count = await store.import_document(document)
            console.print_success(f"Imported {count} entries from {path}")
            return 0
    finally:
        await store.close()

    console.print_error(f"Unknown evidence action: {action}")
    return 1
