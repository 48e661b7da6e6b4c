"""
Status command - show a charity's on-chain record and stored evidence.
"""

from __future__ import annotations

from charity_oracle.chain import Web3ChainGateway
from charity_oracle.cli.output import ConsoleOutput
from charity_oracle.config import OracleConfig
from charity_oracle.evidence import EvidenceStore, SqliteEvidenceBackend
from charity_oracle.models import entity_key, wallet_key


async def run(config: OracleConfig, charity_id: int) -> int:
    """Run the status command."""
    console = ConsoleOutput()
    config.validate(require_signer=False, require_llm=False)
    gateway = Web3ChainGateway.from_config(config)
    store = EvidenceStore(SqliteEvidenceBackend(config.evidence_db_path))

    try:
        record = await gateway.get_record(charity_id)
        await store.initialize()
        entries = {}
        by_entity = await store.get_by_entity(charity_id)
        if by_entity is not None:
            entries[entity_key(charity_id)] = by_entity
        by_wallet = await store.get_by_wallet(record.wallet)
        if by_wallet is not None:
            entries[wallet_key(record.wallet)] = by_wallet
    finally:
        await store.close()
        await gateway.close()

    console.print_record(record)
    if entries:
        console.print_evidence(entries)
    else:
        console.print_info("No stored evidence")
    return 0
