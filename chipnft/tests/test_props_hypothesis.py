"""
Property tests for the authorization path and the key scheme.

Curve arithmetic is pure Python, so example counts stay small; the CI profile
registered in conftest raises them.
"""

from __future__ import annotations

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from chipnft.auth import AuthEnvelope, chip_digest, encode_nonce, verify
from chipnft.chip import SoftChip, build_envelope
from chipnft.db import Prefix, open_kv
from chipnft.errors import InvalidSignature
from chipnft.metadata import token_uri_for
from chipnft.nonces import NonceRegistry
from chipnft.state.journal import Journal

CHIP = SoftChip.from_seed("prop-chip")
OTHER = SoftChip.from_seed("prop-other")

messages = st.binary(min_size=0, max_size=96)
nonces = st.integers(min_value=1, max_value=2**32 - 1)


def _registry() -> NonceRegistry:
    return NonceRegistry(Journal(open_kv("memory://")))


def _flip(data: bytes, bit: int) -> bytes:
    b = bytearray(data)
    b[bit // 8] ^= 1 << (bit % 8)
    return bytes(b)


@given(message=messages, nonce=nonces, encoding=st.sampled_from(["be32", "xdr"]))
def test_signed_envelopes_verify(message, nonce, encoding):
    env = build_envelope(CHIP, message, nonce, encoding=encoding)
    verify(_registry(), env, encoding=encoding)


@given(message=messages, nonce=nonces, data=st.data())
def test_any_message_bit_flip_is_rejected(message, nonce, data):
    assume(message)
    env = build_envelope(CHIP, message, nonce)
    bit = data.draw(st.integers(min_value=0, max_value=len(message) * 8 - 1))
    tampered = AuthEnvelope(_flip(message, bit), env.signature, env.recovery_id, env.public_key, nonce)
    with pytest.raises(InvalidSignature):
        verify(_registry(), tampered)


@given(message=messages, nonce=nonces, bit=st.integers(min_value=0, max_value=511))
def test_any_signature_bit_flip_is_rejected(message, nonce, bit):
    env = build_envelope(CHIP, message, nonce)
    tampered = AuthEnvelope(message, _flip(env.signature, bit), env.recovery_id, env.public_key, nonce)
    with pytest.raises(InvalidSignature):
        verify(_registry(), tampered)


@given(message=messages, nonce=nonces)
def test_signature_does_not_transfer_to_other_key(message, nonce):
    env = build_envelope(CHIP, message, nonce)
    forged = AuthEnvelope(message, env.signature, env.recovery_id, OTHER.public_key, nonce)
    with pytest.raises(InvalidSignature):
        verify(_registry(), forged)


@given(message=messages, a=nonces, b=nonces)
def test_digest_binds_the_nonce(message, a, b):
    assume(a != b)
    assert chip_digest(message, a) != chip_digest(message, b)
    assert encode_nonce(a, "xdr")[4:] == encode_nonce(a, "be32")


@given(
    a=st.lists(st.binary(max_size=8), min_size=1, max_size=3),
    b=st.lists(st.binary(max_size=8), min_size=1, max_size=3),
)
def test_prefix_keys_are_injective(a, b):
    p = Prefix(b"x")
    assert (p.key(*a) == p.key(*b)) == (a == b)


@given(base=st.text(max_size=20), token_id=st.integers(min_value=0, max_value=2**64 - 1))
def test_token_uri_ends_with_decimal_id(base, token_id):
    uri = token_uri_for(base, token_id)
    assert uri.endswith(str(token_id))
    assert uri.startswith(base)
    joined = 1 if base and not base.endswith("/") else 0
    assert uri.count("/") - base.count("/") == joined
