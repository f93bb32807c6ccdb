"""
End-to-end tests for the chipnft CLI.

Every invocation gets an isolated SQLite store and event log under tmp_path;
envelopes are produced by the `sign` command itself (software chip).
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chipnft.chip import SoftChip
from chipnft.cli.main import app
from chipnft.contract import ChipNFT
from chipnft.crypto.secp256k1 import N, split_signature
from chipnft.errors import StorageError

runner = CliRunner()


@pytest.fixture
def invoke(tmp_path: Path):
    base = ["--db", str(tmp_path / "ledger.db"), "--events", str(tmp_path / "events.jsonl")]

    def _invoke(*args: str, expect: int = 0):
        result = runner.invoke(app, [*base, *args])
        assert result.exit_code == expect, result.output
        return result

    return _invoke


@pytest.fixture
def envelope(invoke, tmp_path: Path):
    def _envelope(seed: str, message: str, nonce: int, *extra: str) -> str:
        out = invoke("sign", "--seed", seed, "--message", message, "--nonce", str(nonce), *extra)
        path = tmp_path / f"{seed}-{nonce}.json"
        path.write_text(out.stdout)
        return str(path)

    return _envelope


@pytest.fixture
def initialized(invoke):
    invoke("init", "--admin", "GADMIN", "--name", "Merch", "--symbol", "MRC",
           "--base-uri", "ipfs://cid", "--max-supply", "2")
    return invoke


def _json(result) -> object:
    return json.loads(result.stdout)


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for cmd in ("init", "mint", "claim", "transfer", "owner", "events", "sign", "der"):
        assert cmd in result.output


def test_full_flow(initialized, envelope):
    invoke = initialized
    res = invoke("--json", "mint", "--envelope", envelope("chip-1", "m1", 1))
    assert _json(res) == {"token_id": 0}

    res = invoke("claim", "--claimant", "GALICE", "--envelope", envelope("chip-1", "m2", 2))
    assert "claimed by GALICE" in res.stdout

    invoke("transfer", "--from", "GALICE", "--to", "GBOB", "--token-id", "0",
           "--envelope", envelope("chip-1", "m3", 3))

    assert invoke("owner", "0").stdout.strip() == "GBOB"
    assert invoke("balance", "GBOB").stdout.strip() == "1"
    assert invoke("balance", "GALICE").stdout.strip() == "0"
    assert invoke("uri", "0").stdout.strip() == "ipfs://cid/0"

    pk = SoftChip.from_seed("chip-1").public_key.hex()
    assert _json(invoke("--json", "nonce", pk)) == {"public_key": pk, "nonce": 3}

    info = _json(invoke("--json", "info"))
    assert info["name"] == "Merch"
    assert info["total_minted"] == 1
    assert info["nonce_encoding"] == "be32"

    logs = _json(invoke("--json", "events"))
    assert [e["name"] for e in logs] == ["mint", "claim", "transfer"]
    logs = _json(invoke("--json", "events", "--topic", "claim|transfer", "--topic", "*", "--topic", "GBOB"))
    assert [e["name"] for e in logs] == ["transfer"]
    assert "(no events)" in invoke("events", "--name", "burn").stdout


def test_explicit_envelope_fields(initialized, tmp_path):
    env = json.loads(
        initialized("sign", "--seed", "chip-1", "--message-hex", "6d31", "--nonce", "1").stdout
    )
    res = initialized(
        "--json", "mint",
        "--message-hex", env["message"],
        "--signature", "0x" + env["signature"],
        "--recovery-id", str(env["recovery_id"] + 27),
        "--public-key", env["public_key"],
        "--nonce", str(env["nonce"]),
    )
    assert _json(res) == {"token_id": 0}


def test_domain_errors_exit_1(initialized, envelope):
    invoke = initialized
    mint_env = envelope("chip-1", "m1", 1)
    invoke("mint", "--envelope", mint_env)

    res = invoke("mint", "--envelope", mint_env, expect=1)
    assert "invalid_signature:" in res.output

    res = invoke("owner", "0", expect=1)
    assert "non_existent_token:" in res.output

    res = invoke("transfer", "--from", "GBOB", "--to", "GALICE", "--token-id", "0",
                 "--envelope", envelope("chip-1", "t", 5), expect=1)
    assert "non_existent_token:" in res.output

    res = invoke("init", "--admin", "GADMIN", "--name", "X", "--symbol", "X", "--max-supply", "1",
                 expect=1)
    assert "already_constructed:" in res.output


def test_supply_cap(initialized, envelope):
    for seed in ("a", "b"):
        initialized("mint", "--envelope", envelope(seed, "m", 1))
    res = initialized("mint", "--envelope", envelope("c", "m", 1), expect=1)
    assert "token_ids_depleted:" in res.output


def test_storage_failure_during_call(initialized, envelope, monkeypatch):
    def locked(self, *fields):
        raise StorageError("database is locked")

    monkeypatch.setattr(ChipNFT, "mint", locked)
    res = initialized("mint", "--envelope", envelope("chip-1", "m1", 1), expect=1)
    assert "storage_error: database is locked" in res.output
    assert res.exception is None or isinstance(res.exception, SystemExit)


def test_missing_envelope_fields(initialized):
    res = initialized("mint", "--message", "m1", "--nonce", "1", expect=1)
    assert "invalid_input:" in res.output
    assert "--signature" in res.output


def test_uninitialized_store(invoke, envelope):
    res = invoke("mint", "--envelope", envelope("chip-1", "m1", 1), expect=1)
    assert "unset_metadata:" in res.output


def test_bad_nonce_encoding_is_config_error(invoke):
    res = invoke("--nonce-encoding", "le32", "info", expect=2)
    assert "config_error" in res.output


def test_xdr_flow(invoke, envelope):
    invoke("--nonce-encoding", "xdr", "init", "--admin", "GADMIN", "--name", "Merch",
           "--symbol", "MRC", "--max-supply", "1")
    res = invoke("--nonce-encoding", "xdr", "mint", "--envelope", envelope("chip-1", "m1", 1), expect=1)
    assert "invalid_signature:" in res.output
    xdr_env = envelope("chip-1", "m1", 2, "--encoding", "xdr")
    res = invoke("--nonce-encoding", "xdr", "--json", "mint", "--envelope", xdr_env)
    assert _json(res) == {"token_id": 0}


def test_digest_command(invoke):
    res = invoke("--json", "digest", "--message", "abc", "--nonce", "7")
    data = _json(res)
    assert data["digest"] == hashlib.sha256(b"abc\x00\x00\x00\x07").hexdigest()
    assert data["encoding"] == "be32"
    res = invoke("digest", "--message-hex", "616263", "--nonce", "7", "--encoding", "xdr")
    assert res.stdout.strip() == hashlib.sha256(b"abc\x00\x00\x00\x03\x00\x00\x00\x07").hexdigest()


def test_sign_requires_one_key_source(invoke):
    res = invoke("sign", "--message", "m", "--nonce", "1", expect=1)
    assert "invalid_input:" in res.output
    res = invoke("sign", "--seed", "a", "--private-key", "01" * 32, "--message", "m", "--nonce", "1",
                 expect=1)
    assert "invalid_input:" in res.output


def test_der_command(invoke):
    env = json.loads(invoke("sign", "--private-key", "11" * 32, "--message", "m", "--nonce", "4").stdout)
    r, s = split_signature(bytes.fromhex(env["signature"]))
    s = N - s
    rb, sb = r.to_bytes(33, "big"), s.to_bytes(33, "big")
    body = b"\x02\x21" + rb + b"\x02\x21" + sb
    der = (b"\x30" + bytes([len(body)]) + body).hex()

    data = _json(invoke("--json", "der", der, "--public-key", env["public_key"],
                        "--message", "m", "--nonce", "4"))
    assert data == {
        "signature": env["signature"],
        "was_normalized": True,
        "recovery_id": env["recovery_id"],
    }
    res = invoke("der", "3006020101", expect=1)
    assert "invalid_input:" in res.output
