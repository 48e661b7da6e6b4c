"""Tests for cli/main.py module."""

import asyncio
import json
import os

import pytest
from unittest.mock import patch

from charity_oracle.cli.main import build_parser, main
from charity_oracle.evidence import EvidenceStore, SqliteEvidenceBackend

WALLET = "0x2222222222222222222222222222222222222222"


async def _snapshot(db_path):
    store = EvidenceStore(SqliteEvidenceBackend(db_path))
    await store.initialize()
    try:
        return await store.snapshot()
    finally:
        await store.close()


class TestBuildParser:
    def test_verify(self):
        args = build_parser().parse_args(["verify", "5", "--submit"])

        assert args.command == "verify"
        assert args.charity_id == 5
        assert args.submit is True

    def test_evidence_migrate(self):
        args = build_parser().parse_args(["evidence", "migrate", WALLET, "3"])

        assert args.evidence_action == "migrate"
        assert args.wallet == WALLET
        assert args.charity_id == 3

    def test_verify_needs_integer(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["verify", "abc"])


class TestEvidenceCommand:
    """Evidence subcommands run against a temporary sqlite store."""

    @pytest.fixture
    def db_env(self, tmp_path):
        db_path = tmp_path / "evidence.db"
        env_file = tmp_path / ".env"
        env_file.write_text("")
        with patch.dict(os.environ, {"EVIDENCE_DB_PATH": str(db_path)}, clear=True):
            yield db_path, env_file

    def test_add_then_migrate(self, db_env):
        db_path, env_file = db_env

        assert main(["--env-file", str(env_file), "evidence", "add", WALLET, "https://a.jpg", "https://b.jpg"]) == 0
        assert asyncio.run(_snapshot(db_path)) == {f"wallet:{WALLET}": ["https://a.jpg", "https://b.jpg"]}

        assert main(["--env-file", str(env_file), "evidence", "migrate", WALLET, "7"]) == 0
        assert asyncio.run(_snapshot(db_path)) == {"entity:7": ["https://a.jpg", "https://b.jpg"]}

    def test_show_missing(self, db_env):
        _, env_file = db_env

        assert main(["--env-file", str(env_file), "evidence", "show", "42"]) == 1

    def test_import(self, db_env, tmp_path):
        db_path, env_file = db_env
        document = tmp_path / "evidence.json"
        document.write_text(json.dumps({f"wallet:{WALLET}": ["https://c.jpg"], "entity:1": ["https://d.jpg"]}))

        assert main(["--env-file", str(env_file), "evidence", "import", str(document)]) == 0

        snapshot = asyncio.run(_snapshot(db_path))
        assert snapshot["entity:1"] == ["https://d.jpg"]
        assert snapshot[f"wallet:{WALLET}"] == ["https://c.jpg"]

    def test_bad_config_exits_with_two(self, db_env):
        _, env_file = db_env
        with patch.dict(os.environ, {"SCORING_CONCURRENCY": "many"}):
            assert main(["--env-file", str(env_file), "evidence", "show"]) == 2
