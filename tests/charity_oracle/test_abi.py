"""Tests for chain/abi.py module."""

import json

import pytest

from charity_oracle.chain.abi import FN_GET_RECORD, REGISTERED_EVENT, REGISTRY_ABI, load_abi
from charity_oracle.errors import ConfigurationError


class TestLoadAbi:
    def test_builtin_when_no_path(self):
        abi = load_abi(None)

        names = {entry["name"] for entry in abi}
        assert abi is REGISTRY_ABI
        assert FN_GET_RECORD in names
        assert REGISTERED_EVENT in names

    def test_bare_list(self, tmp_path):
        path = tmp_path / "abi.json"
        path.write_text(json.dumps([{"type": "function", "name": "ping"}]))

        assert load_abi(str(path)) == [{"type": "function", "name": "ping"}]

    def test_build_artifact(self, tmp_path):
        path = tmp_path / "CharityRegistry.json"
        path.write_text(json.dumps({"contractName": "CharityRegistry", "abi": [{"name": "ping"}]}))

        assert load_abi(str(path)) == [{"name": "ping"}]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_abi(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "abi.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_abi(str(path))

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "abi.json"
        path.write_text(json.dumps({"bytecode": "0x00"}))

        with pytest.raises(ConfigurationError, match="valid ABI"):
            load_abi(str(path))
