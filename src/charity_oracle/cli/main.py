#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from charity_oracle.cli.output import ConsoleOutput
from charity_oracle.config import load_config
from charity_oracle.errors import ConfigurationError, OracleError

NOISY_LOGGERS = ("web3", "httpx", "httpcore", "urllib3", "aiosqlite", "asyncio")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # Third-party clients log every request at INFO/DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="charity-oracle",
        description="Off-chain verification oracle for the charity registry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global options
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Log verbosity (default: info)",
    )
    parser.add_argument("--env-file", type=Path, help="Load settings from this .env file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # --- Command Definitions ---
    subparsers.add_parser("run", help="Run the verification service")

    scan_p = subparsers.add_parser("scan", help="Scan the registry for pending charities")
    scan_p.add_argument("--process", action="store_true", help="Verify and submit what the scan finds")

    verify_p = subparsers.add_parser("verify", help="Verify one charity")
    verify_p.add_argument("charity_id", type=int, help="Registry identifier")
    verify_p.add_argument("--submit", action="store_true", help="Write the result on-chain")

    status_p = subparsers.add_parser("status", help="Show a charity's record and evidence")
    status_p.add_argument("charity_id", type=int, help="Registry identifier")

    evidence_p = subparsers.add_parser("evidence", help="Manage stored evidence")
    evidence_sub = evidence_p.add_subparsers(dest="evidence_action", metavar="ACTION")

    add_p = evidence_sub.add_parser("add", help="Store evidence urls for a wallet")
    add_p.add_argument("wallet", help="Submitter wallet address")
    add_p.add_argument("urls", nargs="+", help="Evidence urls")

    show_p = evidence_sub.add_parser("show", help="Show evidence for a wallet or charity id")
    show_p.add_argument("key", nargs="?", help="Wallet address or charity id (default: all)")

    migrate_p = evidence_sub.add_parser("migrate", help="Move a wallet's evidence to a charity id")
    migrate_p.add_argument("wallet", help="Submitter wallet address")
    migrate_p.add_argument("charity_id", type=int, help="Registry identifier")

    import_p = evidence_sub.add_parser("import", help="Import a JSON evidence document")
    import_p.add_argument("file", type=Path, help="Path to JSON file")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        return 0

    console = ConsoleOutput()
    from charity_oracle.cli.commands import evidence, run, scan, status, verify

    try:
        config = load_config(args.env_file)
        if args.command == "run":
            return asyncio.run(run.run(config))
        elif args.command == "scan":
            return asyncio.run(scan.run(config, process=args.process))
        elif args.command == "verify":
            return asyncio.run(verify.run(config, args.charity_id, submit=args.submit))
        elif args.command == "status":
            return asyncio.run(status.run(config, args.charity_id))
        elif args.command == "evidence":
            if args.evidence_action is None:
                parser.parse_args(["evidence", "--help"])
            return asyncio.run(
                evidence.run(
                    config,
                    args.evidence_action,
                    key=getattr(args, "wallet", None) or getattr(args, "key", None),
                    urls=getattr(args, "urls", None),
                    charity_id=getattr(args, "charity_id", None),
                    path=getattr(args, "file", None),
                )
            )
    except ConfigurationError as e:
        console.print_error(f"Configuration: {e}")
        return 2
    except OracleError as e:
        console.print_error(str(e))
        return 1
    except KeyboardInterrupt:
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
