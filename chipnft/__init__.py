"""
chipnft — token collections whose mint, claim and transfer are authorized by
NFC chips holding secp256k1 keys.

A small, stable façade over the package:

- ChipNFT: the collection (construct / mint / claim / transfer and views)
- AuthEnvelope, chip_digest: what a chip signs and submits
- SoftChip, build_envelope: software chip for tests and development
- open_kv: key–value store by URI ("memory://", "sqlite:///path.db", path)
- errors: NftError and its subclasses

    from chipnft import ChipNFT, SoftChip, build_envelope

    nft = ChipNFT.open("memory://")
    nft.construct("GADMIN", "Merch", "MRC", "ipfs://cid", 10)
    chip = SoftChip.from_seed("demo")
    token_id = nft.mint(*build_envelope(chip, b"mint", 1).fields())
"""

from __future__ import annotations

from .version import __version__
from .auth import AuthEnvelope, chip_digest, encode_nonce
from .chip import SoftChip, build_auth_message, build_envelope
from .contract import ChipNFT
from .db import open_kv
from .errors import (AlreadyConstructed, IncorrectOwner, InvalidSignature,
                     MathOverflow, NftError, NonExistentToken,
                     TokenAlreadyMinted, TokenIDsAreDepleted, UnsetMetadata)


def version() -> str:
    """Return the chipnft version string."""
    return __version__


__all__ = [
    "__version__",
    "version",
    "ChipNFT",
    "AuthEnvelope",
    "chip_digest",
    "encode_nonce",
    "SoftChip",
    "build_envelope",
    "build_auth_message",
    "open_kv",
    "NftError",
    "NonExistentToken",
    "IncorrectOwner",
    "MathOverflow",
    "TokenIDsAreDepleted",
    "TokenAlreadyMinted",
    "UnsetMetadata",
    "InvalidSignature",
    "AlreadyConstructed",
]
