import hashlib
import json

import pytest

from chipnft.auth import chip_digest
from chipnft.chip import (ChipSigner, SoftChip, build_auth_message,
                          build_envelope, determine_recovery_id,
                          envelope_from_der, normalize_recovery_id)
from chipnft.crypto.secp256k1 import N, split_signature

from conftest import ALICE

CONTRACT_ID = "ab" * 32
PASSPHRASE = "Test SDF Network ; September 2015"


def _der(r: int, s: int) -> bytes:
    def enc(v):
        raw = v.to_bytes((v.bit_length() + 7) // 8, "big")
        if raw[0] & 0x80:
            raw = b"\x00" + raw
        return b"\x02" + bytes([len(raw)]) + raw

    body = enc(r) + enc(s)
    return b"\x30" + bytes([len(body)]) + body


def test_soft_chip_is_deterministic(chip):
    again = SoftChip.from_seed("chip-1")
    assert again.public_key == chip.public_key
    assert again == chip
    assert "private_key" not in repr(chip)
    assert isinstance(chip, ChipSigner)
    assert len(chip.public_key) == 65 and chip.public_key[0] == 0x04


def test_generated_chips_differ():
    a, b = SoftChip.generate(), SoftChip.generate()
    assert a.public_key != b.public_key


@pytest.mark.parametrize("v, expected", [(0, 0), (1, 1), (3, 3), (27, 0), (28, 1), (30, 3)])
def test_normalize_recovery_id(v, expected):
    assert normalize_recovery_id(v) == expected


@pytest.mark.parametrize("v", [-1, 4, 26, 31, 35])
def test_normalize_recovery_id_rejects(v):
    with pytest.raises(ValueError):
        normalize_recovery_id(v)


def test_build_auth_message_layout():
    msg = build_auth_message(CONTRACT_ID, "claim", [ALICE, 2], PASSPHRASE)
    assert msg[:32] == hashlib.sha256(PASSPHRASE.encode()).digest()
    assert msg[32:64] == bytes.fromhex(CONTRACT_ID)
    assert msg[64:69] == b"claim"
    assert json.loads(msg[69:]) == [ALICE, 2]
    assert msg[69:] == b'["GALICE",2]'
    assert build_auth_message("0x" + CONTRACT_ID, "claim", [ALICE, 2], PASSPHRASE) == msg
    assert build_auth_message(bytes.fromhex(CONTRACT_ID), "claim", (ALICE, 2), PASSPHRASE) == msg


def test_auth_message_drives_a_claim(collection, chip, minted):
    msg = build_auth_message(CONTRACT_ID, "claim", [ALICE], PASSPHRASE)
    collection.claim(ALICE, *build_envelope(chip, msg, 2).fields())
    assert collection.owner_of(minted) == ALICE


def test_envelope_from_high_s_der(chip):
    ref = build_envelope(chip, b"tap", 9)
    r, s = split_signature(ref.signature)
    env = envelope_from_der(b"tap", _der(r, N - s), chip.public_key, 9)
    assert env == ref


def test_envelope_from_der_rejects_foreign_key(chip, chip2):
    ref = build_envelope(chip, b"tap", 9)
    r, s = split_signature(ref.signature)
    with pytest.raises(ValueError):
        envelope_from_der(b"tap", _der(r, s), chip2.public_key, 9)


def test_determine_recovery_id_matches_signer(chips):
    for c in chips:
        env = build_envelope(c, b"x", 1)
        digest = chip_digest(b"x", 1)
        assert determine_recovery_id(digest, env.signature, c.public_key) == env.recovery_id
