# -*- coding: utf-8 -*-
"""
chipnft.tests.conftest
======================

Pytest fixtures for the ledger, its storage layers and the CLI.

Goals:
- **Deterministic software chips** (keys derived from fixed seeds) so every
  signature in the suite is reproducible.
- A **fresh in-memory collection** per test, already constructed, with an
  in-memory event sink that tests can inspect.
- A `signed` helper that produces the positional envelope arguments of
  mint/claim/transfer in one call.

Usage (inside a test file):
    def test_flow(collection, chip, signed):
        token_id = collection.mint(*signed(chip, b"m1", 1))
        collection.claim("GALICE", *signed(chip, b"m2", 2))
        assert collection.owner_of(token_id) == "GALICE"
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Tuple

import pytest
from hypothesis import HealthCheck, settings

from chipnft import logging as clog
from chipnft.chip import SoftChip, build_envelope
from chipnft.config import NftConfig, load_config
from chipnft.contract import ChipNFT
from chipnft.state.events import InMemoryEventSink

# Prefer UTC everywhere.
os.environ.setdefault("TZ", "UTC")

# Hypothesis: small local runs, deeper CI runs; no deadline (curve math is pure Python).
# The autouse env fixture is stateless across examples.
_QUIET = [HealthCheck.function_scoped_fixture]
settings.register_profile("local", settings(max_examples=25, deadline=None, suppress_health_check=_QUIET))
settings.register_profile("ci", settings(max_examples=200, deadline=None, suppress_health_check=_QUIET))
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE") or ("ci" if os.environ.get("CI") else "local"))

ADMIN = "GADMIN"
ALICE = "GALICE"
BOB = "GBOB"
CAROL = "GCAROL"

MAX_SUPPLY = 3

Fields = Tuple[bytes, bytes, int, bytes, int]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in list(os.environ):
        if name.startswith("CHIPNFT_"):
            monkeypatch.delenv(name, raising=False)
    load_config.cache_clear()
    yield
    load_config.cache_clear()
    # CLI runs attach handlers to streams that are closed once the run ends
    root = logging.getLogger("chipnft")
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(logging.NOTSET)
    clog.clear_context()


@pytest.fixture
def config(tmp_path: Path) -> NftConfig:
    return NftConfig(
        nonce_encoding="be32",
        db_uri="memory://",
        events_path=tmp_path / "events.jsonl",
        log_level="DEBUG",
        log_format="text",
        max_message_bytes=4096,
    )


@pytest.fixture
def chip() -> SoftChip:
    return SoftChip.from_seed("chip-1")


@pytest.fixture
def chip2() -> SoftChip:
    return SoftChip.from_seed("chip-2")


@pytest.fixture
def chips() -> list:
    return [SoftChip.from_seed(f"chip-{i}") for i in range(1, 8)]


@pytest.fixture
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def nft(config: NftConfig, sink: InMemoryEventSink):
    contract = ChipNFT.open("memory://", events=sink, config=config)
    yield contract
    contract.close()


@pytest.fixture
def collection(nft: ChipNFT) -> ChipNFT:
    nft.construct(ADMIN, "Merch", "MRC", "ipfs://cid", MAX_SUPPLY)
    return nft


@pytest.fixture
def signed() -> Callable[..., Fields]:
    def _signed(chip: SoftChip, message: bytes, nonce: int, *, encoding: str = "be32") -> Fields:
        return build_envelope(chip, message, nonce, encoding=encoding).fields()

    return _signed


@pytest.fixture
def minted(collection: ChipNFT, chip: SoftChip, signed) -> int:
    """Token 0, minted by `chip` with nonce 1 and still unclaimed."""
    return collection.mint(*signed(chip, b"m1", 1))


@pytest.fixture
def claimed(collection: ChipNFT, chip: SoftChip, signed, minted: int) -> int:
    """Token 0, claimed by ALICE with nonce 2."""
    collection.claim(ALICE, *signed(chip, b"m2", 2))
    return minted
