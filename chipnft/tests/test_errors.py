import pytest

from chipnft import errors as E


@pytest.mark.parametrize(
    "cls, status",
    [
        (E.NonExistentToken, 200),
        (E.IncorrectOwner, 201),
        (E.MathOverflow, 205),
        (E.TokenIDsAreDepleted, 206),
        (E.TokenAlreadyMinted, 210),
        (E.UnsetMetadata, 213),
        (E.InvalidSignature, 214),
        (E.AlreadyConstructed, 215),
    ],
)
def test_status_codes(cls, status):
    assert cls.status == status
    assert E.ERRORS_BY_STATUS[status] is cls
    assert issubclass(cls, E.NftError)


def test_codes_are_unique():
    codes = [cls.code for cls in E.ERRORS_BY_STATUS.values()]
    assert len(set(codes)) == len(codes)


def test_message_and_context():
    err = E.InvalidSignature(context={"reason": "stale_nonce"})
    assert err.message == E.InvalidSignature.default_message
    assert str(err) == "invalid_signature: signature does not authorize this call ({'reason': 'stale_nonce'})"
    assert err.to_dict() == {
        "code": "invalid_signature",
        "status": 214,
        "message": err.message,
        "context": {"reason": "stale_nonce"},
    }
    plain = E.IncorrectOwner("nope")
    assert str(plain) == "incorrect_owner: nope"
    assert "context" not in plain.to_dict()


def test_receipt_fields():
    fields = E.error_to_receipt_fields(E.TokenIDsAreDepleted(context={"max_supply": 3}))
    assert fields["status"] == "REVERT"
    assert fields["error"]["status"] == 206


def test_infrastructure_errors_are_separate():
    assert not issubclass(E.StorageError, E.NftError)
    assert not issubclass(E.ConfigError, E.NftError)
    assert issubclass(E.ConfigError, ValueError)
