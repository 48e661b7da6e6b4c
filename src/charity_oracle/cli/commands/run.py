"""
Run command - start the long-running verification service.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from charity_oracle.config import OracleConfig
from charity_oracle.oracle import VerificationOracle

logger = logging.getLogger(__name__)


async def run(config: OracleConfig) -> int:
    """Run the oracle until SIGINT or SIGTERM."""
    config.validate(require_signer=True, require_llm=True)
    oracle = VerificationOracle.from_config(config)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows event loops; KeyboardInterrupt still ends the run.
            pass

    logger.info(
        f"Starting oracle on {config.rpc_url} for registry {config.registry_address} "
        f"(protocol={config.decision_protocol})"
    )
    try:
        await oracle.run(shutdown)
    finally:
        await oracle.close()
    return 0
