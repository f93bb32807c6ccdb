"""
chipnft.errors — typed failures of the chip-bound token ledger.

Every state-mutating call is fail-fast: the first violated precondition raises
one of the classes below and the surrounding checkpoint is reverted, so no
partial write survives. The classes carry a stable machine code (``code``),
the numeric status used by the on-chain contract this ledger mirrors
(``status``), a human-readable message and optional structured context.

Hierarchy
---------
NftError (base)
 ├─ NonExistentToken     200  lookup on an unminted id / unbound public key
 ├─ IncorrectOwner       201  transfer `from` is not the current owner
 ├─ MathOverflow         205  balance arithmetic would wrap (broken invariant)
 ├─ TokenIDsAreDepleted  206  supply cap reached
 ├─ TokenAlreadyMinted   210  duplicate mint, or duplicate claim
 ├─ UnsetMetadata        213  collection read before construction
 ├─ InvalidSignature     214  recovery mismatch, stale nonce, chip/token mismatch
 └─ AlreadyConstructed   215  construct invoked twice

StorageError and ConfigError are infrastructure failures and do not belong to
the contract taxonomy above.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class NftError(Exception):
    """
    Base ledger error.

    Attributes:
        code:    short machine-readable code string
        status:  numeric status of the contract error enum
        message: human-readable message
        context: optional extra fields for debugging / CLI output
    """

    code: str = "nft_error"
    status: int = 0
    default_message: str = "ledger error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.context:
            return f"{self.code}: {self.message} ({self.context})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": self.code,
            "status": self.status,
            "message": self.message,
        }
        if self.context:
            out["context"] = dict(self.context)
        return out


class NonExistentToken(NftError):
    code = "non_existent_token"
    status = 200
    default_message = "token does not exist"


class IncorrectOwner(NftError):
    code = "incorrect_owner"
    status = 201
    default_message = "address is not the current owner"


class MathOverflow(NftError):
    """Balance arithmetic left its range. Triggering this signals a bug elsewhere."""

    code = "math_overflow"
    status = 205
    default_message = "balance arithmetic overflow"


class TokenIDsAreDepleted(NftError):
    code = "token_ids_depleted"
    status = 206
    default_message = "all token ids are in use"


class TokenAlreadyMinted(NftError):
    code = "token_already_minted"
    status = 210
    default_message = "token already minted"


class UnsetMetadata(NftError):
    code = "unset_metadata"
    status = 213
    default_message = "collection metadata is not set"


class InvalidSignature(NftError):
    code = "invalid_signature"
    status = 214
    default_message = "signature does not authorize this call"


class AlreadyConstructed(NftError):
    code = "already_constructed"
    status = 215
    default_message = "collection already constructed"


class StorageError(Exception):
    """Backing store failure (I/O, corrupt value width, closed handle)."""


class ConfigError(ValueError):
    """Invalid configuration value."""


ERRORS_BY_STATUS: Dict[int, type] = {
    cls.status: cls
    for cls in (
        NonExistentToken,
        IncorrectOwner,
        MathOverflow,
        TokenIDsAreDepleted,
        TokenAlreadyMinted,
        UnsetMetadata,
        InvalidSignature,
        AlreadyConstructed,
    )
}


def error_to_receipt_fields(err: NftError) -> Dict[str, Any]:
    """
    Map an NftError to receipt-like fields:

        {"status": "REVERT", "error": {code, status, message, context?}}
    """
    return {"status": "REVERT", "error": err.to_dict()}


__all__ = [
    "NftError",
    "NonExistentToken",
    "IncorrectOwner",
    "MathOverflow",
    "TokenIDsAreDepleted",
    "TokenAlreadyMinted",
    "UnsetMetadata",
    "InvalidSignature",
    "AlreadyConstructed",
    "StorageError",
    "ConfigError",
    "ERRORS_BY_STATUS",
    "error_to_receipt_fields",
]
