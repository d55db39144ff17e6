# mypy: ignore-errors
# tests/services/test_signature.py
"""Tests for wallet signature verification."""

from __future__ import annotations

import base64

import pytest

from mintgate.services import signature as signature_module
from mintgate.services.signature import (
    MessageInput,
    SignatureRejected,
    SignatureVerifier,
    VerificationFailure,
    VerifierConfig,
    decode_b64,
    encode_uleb128,
    iter_candidates,
    normalize_signature,
    parse_authorization_message,
    sui_address,
)

EVENT_ID = "evt-launch"


@pytest.fixture()
def verifier() -> SignatureVerifier:
    return SignatureVerifier()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def test_serialized_signature_over_canonical_message(verifier, wallet) -> None:
    message = wallet.auth_message(EVENT_ID)
    encoded = message.encode()

    result = verifier.evaluate(
        wallet.serialized_signature(encoded),
        _b64(encoded),
        wallet.address,
        auth_message=message,
    )

    assert result.valid is True
    assert result.candidate == "canonical"


def test_bare_signature_with_out_of_band_public_key(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()
    signature = _b64(wallet.raw_signature(encoded))

    assert verifier.verify(signature, _b64(encoded), wallet.address, wallet.public_key_b64)


def test_flagged_signature_with_flagged_public_key(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()
    signature = _b64(b"\x00" + wallet.raw_signature(encoded))
    public_key = _b64(b"\x00" + wallet.public_key)

    assert verifier.verify(signature, _b64(encoded), wallet.address, public_key)


def test_byte_array_message(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()

    assert verifier.verify(wallet.serialized_signature(encoded), list(encoded), wallet.address)


def test_claimed_address_is_case_insensitive(verifier, wallet) -> None:
    message = wallet.auth_message(EVENT_ID)
    encoded = message.encode()

    assert verifier.verify(
        wallet.serialized_signature(encoded),
        _b64(encoded),
        wallet.address.upper().replace("0X", "0x"),
    )


def test_fifty_byte_signature_is_rejected_without_raising(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()

    result = verifier.evaluate(_b64(b"\x01" * 50), _b64(encoded), wallet.address)

    assert result.valid is False
    assert result.failure is VerificationFailure.INVALID_LENGTH


def test_empty_inputs_are_rejected(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()

    assert verifier.evaluate("", _b64(encoded), wallet.address).failure is (
        VerificationFailure.EMPTY_SIGNATURE
    )
    assert verifier.evaluate(
        wallet.serialized_signature(encoded), "", wallet.address
    ).failure is VerificationFailure.EMPTY_MESSAGE
    assert verifier.verify(None, None, wallet.address) is False


def test_message_for_another_address_is_rejected(verifier, wallet, other_wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()

    result = verifier.evaluate(
        wallet.serialized_signature(encoded),
        _b64(encoded),
        other_wallet.address,
    )

    assert result.failure is VerificationFailure.ADDRESS_MISMATCH


def test_key_must_control_claimed_address(wallet, other_wallet) -> None:
    # Message names other_wallet's address but is signed with wallet's key.
    encoded = wallet.auth_message(EVENT_ID, address=other_wallet.address).encode()
    signature = wallet.serialized_signature(encoded)

    bound = SignatureVerifier(VerifierConfig(bind_public_key=True))
    unbound = SignatureVerifier(VerifierConfig(bind_public_key=False))

    result = bound.evaluate(signature, _b64(encoded), other_wallet.address)
    assert result.failure is VerificationFailure.KEY_ADDRESS_MISMATCH
    assert unbound.verify(signature, _b64(encoded), other_wallet.address) is True


def test_non_ed25519_scheme_flag_is_rejected(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()
    payload = b"\x01" + wallet.raw_signature(encoded) + wallet.public_key

    result = verifier.evaluate(_b64(payload), _b64(encoded), wallet.address)

    assert result.failure is VerificationFailure.UNSUPPORTED_SCHEME


def test_bare_signature_without_public_key(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()

    result = verifier.evaluate(_b64(wallet.raw_signature(encoded)), _b64(encoded), wallet.address)

    assert result.failure is VerificationFailure.MISSING_PUBLIC_KEY


def test_signature_over_other_content_does_not_verify(verifier, wallet) -> None:
    encoded = wallet.auth_message(EVENT_ID).encode()
    signature = wallet.serialized_signature(b"something else entirely")

    result = verifier.evaluate(signature, _b64(encoded), wallet.address)

    assert result.failure is VerificationFailure.NO_CANDIDATE_MATCHED


def test_wallet_signing_base64_text_matches_ascii_candidate(verifier, wallet) -> None:
    message = wallet.auth_message(EVENT_ID)
    text_form = _b64(message.encode())
    signature = wallet.serialized_signature(text_form.encode())

    first = verifier.evaluate(signature, text_form, wallet.address, auth_message=message)
    second = verifier.evaluate(signature, text_form, wallet.address, auth_message=message)

    assert first.valid and second.valid
    assert first.candidate == second.candidate == "ascii"


def test_undecodable_bytes_fall_back_to_auth_message(verifier, wallet) -> None:
    message = wallet.auth_message(EVENT_ID)
    opaque = b"\xff\xfe\xfd" + bytes(range(16))
    signature = wallet.serialized_signature(opaque)

    result = verifier.evaluate(signature, _b64(opaque), wallet.address, auth_message=message)

    assert result.valid is True
    assert result.candidate == "raw"


def test_candidates_are_ordered_and_deduplicated() -> None:
    message = MessageInput(raw=b"abc", text_form="0x616263", canonical=b"abc")

    assert iter_candidates(message) == [("canonical", b"abc"), ("ascii", b"0x616263")]


def test_plain_hex_candidate() -> None:
    message = MessageInput(raw=None, text_form="616263", canonical=None)

    assert iter_candidates(message) == [("ascii", b"616263"), ("hex_plain", b"abc")]


def test_normalize_rejects_odd_lengths() -> None:
    with pytest.raises(SignatureRejected) as excinfo:
        normalize_signature(b"\x00" * 80, None)

    assert excinfo.value.reason is VerificationFailure.INVALID_LENGTH


def test_normalize_splits_serialized_payload(wallet) -> None:
    signature = b"\x07" * 64
    normalized = normalize_signature(b"\x00" + signature + wallet.public_key, None)

    assert normalized.signature == signature
    assert normalized.public_key == wallet.public_key


def test_parse_authorization_message_ignores_malformed_lines() -> None:
    parsed = parse_authorization_message(
        "SXT Event Mint\naddress=0xabc\nnot a pair\n=orphan\neventId = evt-1 "
    )

    assert parsed.header == "SXT Event Mint"
    assert parsed.fields == {"address": "0xabc", "eventId": "evt-1"}
    assert parsed.canonical("SXT Event Mint") == (
        b"SXT Event Mint\naddress=0xabc\neventId=evt-1\nnonce=\ntimestamp="
    )


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, b"\x00"), (127, b"\x7f"), (128, b"\x80\x01"), (300, b"\xac\x02")],
)
def test_encode_uleb128(value: int, expected: bytes) -> None:
    assert encode_uleb128(value) == expected


def test_decode_b64_accepts_urlsafe_without_padding() -> None:
    assert decode_b64(base64.urlsafe_b64encode(b"\xfb\xff").decode().rstrip("=")) == b"\xfb\xff"
    with pytest.raises(ValueError):
        decode_b64("not base64!")


def test_sui_address_shape(wallet) -> None:
    address = sui_address(wallet.public_key)

    assert address.startswith("0x")
    assert len(address) == 66
    assert address == address.lower()


def test_prefixed_hex_candidate_decodes_text_form() -> None:
    message = MessageInput(raw=b"\xd3\x1a", text_form="0x616263", canonical=None)

    assert iter_candidates(message) == [
        ("raw", b"\xd3\x1a"),
        ("ascii", b"0x616263"),
        ("hex_0x", b"abc"),
    ]


def test_first_matching_candidate_stops_the_search(verifier, wallet, mocker) -> None:
    spy = mocker.spy(signature_module, "verify_ed25519")
    message = wallet.auth_message(EVENT_ID)
    encoded = message.encode()

    # Sent as base64 text, so raw and ascii candidates exist after canonical.
    result = verifier.evaluate(
        wallet.serialized_signature(encoded),
        _b64(encoded),
        wallet.address,
        auth_message=message,
    )

    assert result.candidate == "canonical"
    assert spy.call_count == 1


def test_wallet_returning_prefixed_hex_matches_hex_candidate(verifier, wallet, mocker) -> None:
    # Signed text carries a wallet-specific header, so the canonical rebuild differs.
    signed = wallet.auth_message(EVENT_ID).replace("SXT Event Mint", "Sign in to mint", 1)
    signed_bytes = signed.encode()
    spy = mocker.spy(signature_module, "verify_ed25519")

    result = verifier.evaluate(
        wallet.serialized_signature(signed_bytes),
        "0x" + signed_bytes.hex(),
        wallet.address,
        auth_message=signed,
    )

    assert result.valid is True
    assert result.candidate == "hex_0x"
    tried = [call.args[1] for call in spy.call_args_list]
    assert tried[-1] == signed_bytes
    assert tried[0] == wallet.auth_message(EVENT_ID).encode()
    assert spy.spy_return is True
