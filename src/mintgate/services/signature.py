"""Wallet signature verification for mint authorization.

A mint request carries a message signed by the wallet that controls the
claimed address. Wallet clients disagree on how the signed bytes travel over
the wire, so verification works in three stages:

1. Parse the submitted message (header line, then ``key=value`` lines) and
   check that its ``address`` matches the claimed address.
2. Normalize the signature payload into a raw 64-byte Ed25519 signature and a
   32-byte public key. Three wire shapes are accepted, see
   :func:`normalize_signature`.
3. Try an ordered list of message reinterpretations and accept on the first
   one whose Sui personal-message digest verifies under the public key.

The public entry point :meth:`SignatureVerifier.verify` never raises; every
failure maps to a :class:`VerificationFailure` that is logged and collapsed to
``False``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

from mintgate.core.settings import Settings

logger = logging.getLogger(__name__)

ED25519_SCHEME_FLAG = 0x00
SIGNATURE_LENGTH = 64
PUBLIC_KEY_LENGTH = 32
# IntentScope.PersonalMessage, IntentVersion.V0, AppId.Sui
PERSONAL_MESSAGE_INTENT = bytes((3, 0, 0))
DIGEST_SIZE = 32

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

SignatureInput = bytes | str | Sequence[int]


class VerificationFailure(str, Enum):
    """Internal reasons a verification attempt can fail."""

    EMPTY_SIGNATURE = "empty_signature"
    EMPTY_MESSAGE = "empty_message"
    UNDECODABLE_SIGNATURE = "undecodable_signature"
    UNDECODABLE_MESSAGE = "undecodable_message"
    ADDRESS_MISMATCH = "address_mismatch"
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    MISSING_PUBLIC_KEY = "missing_public_key"
    INVALID_PUBLIC_KEY = "invalid_public_key"
    INVALID_LENGTH = "invalid_length"
    KEY_ADDRESS_MISMATCH = "key_address_mismatch"
    NO_CANDIDATE_MATCHED = "no_candidate_matched"


class SignatureRejected(Exception):
    """Raised inside the verifier; never escapes :meth:`SignatureVerifier.verify`."""

    def __init__(self, reason: VerificationFailure, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class VerifierConfig:
    """Immutable configuration for signature verification."""

    auth_message_header: str = "SXT Event Mint"
    bind_public_key: bool = True


def load_verifier_config(settings: Settings) -> VerifierConfig:
    """Build the verifier configuration from application settings."""
    return VerifierConfig(
        auth_message_header=settings.auth_message_header,
        bind_public_key=settings.signature_bind_public_key,
    )


@dataclass(frozen=True)
class AuthorizationMessage:
    """Parsed authorization message: header line plus key/value fields."""

    header: str
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def address(self) -> str:
        return self.fields.get("address", "")

    def canonical(self, header: str) -> bytes:
        """Rebuild the exact text the mint page asks wallets to sign."""
        lines = [
            header,
            f"address={self.fields.get('address', '')}",
            f"eventId={self.fields.get('eventId', '')}",
            f"nonce={self.fields.get('nonce', '')}",
            f"timestamp={self.fields.get('timestamp', '')}",
        ]
        return "\n".join(lines).encode("utf-8")


@dataclass(frozen=True)
class MessageInput:
    """Everything known about the submitted message bytes.

    Attributes:
        raw: Decoded bytes (base64 string or byte array), or None if the
            submitted string was not valid base64.
        text_form: The message exactly as submitted when it arrived as a
            string; None for byte arrays.
        canonical: Server-side reconstruction of the authorization message.
    """

    raw: bytes | None
    text_form: str | None
    canonical: bytes | None


@dataclass(frozen=True)
class NormalizedSignature:
    signature: bytes
    public_key: bytes


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a verification attempt with forensic detail."""

    valid: bool
    failure: VerificationFailure | None = None
    candidate: str | None = None

    def __bool__(self) -> bool:
        return self.valid


def parse_authorization_message(text: str) -> AuthorizationMessage:
    """Parse ``header\\nkey=value\\n...``; malformed lines are ignored."""
    lines = text.split("\n")
    header = lines[0].strip() if lines else ""
    fields: dict[str, str] = {}
    for line in lines[1:]:
        pair = line.strip()
        idx = pair.find("=")
        if idx > 0:
            fields[pair[:idx].strip()] = pair[idx + 1 :].strip()
    return AuthorizationMessage(header=header, fields=fields)


def decode_b64(data: str) -> bytes:
    """Decode standard or URL-safe base64, accepting omitted padding."""
    cleaned = "".join(data.split())
    padded = cleaned + "=" * (-len(cleaned) % 4)
    altchars = b"-_" if ("-" in cleaned or "_" in cleaned) else None
    try:
        return base64.b64decode(padded, altchars=altchars, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"Invalid base64 encoding: {err}") from err


def decode_binary(value: SignatureInput) -> bytes:
    """Decode a binary field sent as bytes, a byte array or a base64 string."""
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    if isinstance(value, str):
        return decode_b64(value)
    try:
        return bytes(value)
    except (TypeError, ValueError) as err:
        raise ValueError(f"Invalid byte array: {err}") from err


def encode_uleb128(value: int) -> bytes:
    """Encode an unsigned integer as ULEB128 (BCS vector length prefix)."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def personal_message_digest(message: bytes) -> bytes:
    """Return the 32-byte digest a Sui wallet signs for a personal message."""
    payload = PERSONAL_MESSAGE_INTENT + encode_uleb128(len(message)) + message
    return hashlib.blake2b(payload, digest_size=DIGEST_SIZE).digest()


def sui_address(public_key: bytes) -> str:
    """Derive the Sui address controlled by an Ed25519 public key."""
    digest = hashlib.blake2b(
        bytes((ED25519_SCHEME_FLAG,)) + public_key,
        digest_size=DIGEST_SIZE,
    )
    return "0x" + digest.hexdigest()


def _strip_key_flag(key: bytes) -> bytes:
    if len(key) == PUBLIC_KEY_LENGTH + 1:
        if key[0] != ED25519_SCHEME_FLAG:
            raise SignatureRejected(VerificationFailure.UNSUPPORTED_SCHEME, f"key flag 0x{key[0]:02x}")
        key = key[1:]
    if len(key) != PUBLIC_KEY_LENGTH:
        raise SignatureRejected(VerificationFailure.INVALID_PUBLIC_KEY, f"{len(key)}-byte public key")
    return key


def normalize_signature(raw: bytes, public_key: bytes | None) -> NormalizedSignature:
    """Split a signature payload into a raw signature and public key.

    Accepted shapes:
      * 64 bytes: bare signature, public key supplied out of band.
      * 65 bytes: scheme flag + signature, public key out of band.
      * 97 / 98 bytes: scheme flag + signature + public key (32 bytes, or
        33 bytes carrying its own scheme flag).

    The scheme flag must be Ed25519. Anything else is rejected.
    """
    length = len(raw)
    if length in (SIGNATURE_LENGTH, SIGNATURE_LENGTH + 1):
        if length == SIGNATURE_LENGTH + 1:
            if raw[0] != ED25519_SCHEME_FLAG:
                raise SignatureRejected(VerificationFailure.UNSUPPORTED_SCHEME, f"flag 0x{raw[0]:02x}")
            raw = raw[1:]
        if not public_key:
            raise SignatureRejected(VerificationFailure.MISSING_PUBLIC_KEY)
        return NormalizedSignature(signature=raw, public_key=_strip_key_flag(public_key))

    serialized_lengths = (
        1 + SIGNATURE_LENGTH + PUBLIC_KEY_LENGTH,
        1 + SIGNATURE_LENGTH + PUBLIC_KEY_LENGTH + 1,
    )
    if length in serialized_lengths:
        if raw[0] != ED25519_SCHEME_FLAG:
            raise SignatureRejected(VerificationFailure.UNSUPPORTED_SCHEME, f"flag 0x{raw[0]:02x}")
        signature = raw[1 : 1 + SIGNATURE_LENGTH]
        embedded_key = raw[1 + SIGNATURE_LENGTH :]
        return NormalizedSignature(signature=signature, public_key=_strip_key_flag(embedded_key))

    raise SignatureRejected(VerificationFailure.INVALID_LENGTH, f"{length}-byte signature payload")


# --- Message candidates -----------------------------------------------------------
# Tried in this order; the first candidate that verifies wins and no further
# candidates are attempted. Each entry is tied to a wallet behaviour seen in
# the field.


def _candidate_canonical(message: MessageInput) -> bytes | None:
    # Wallets that sign exactly the text the mint page rendered.
    return message.canonical


def _candidate_raw(message: MessageInput) -> bytes | None:
    # Wallets that echo back the byte array they signed.
    return message.raw


def _candidate_ascii(message: MessageInput) -> bytes | None:
    # Wallets that sign the base64 text itself instead of the decoded bytes.
    if message.text_form is None:
        return None
    return message.text_form.encode("utf-8")


def _candidate_hex_prefixed(message: MessageInput) -> bytes | None:
    # Wallets that return the signed bytes as a 0x-prefixed hex string.
    text = message.text_form
    if text is None or not text.startswith("0x") or len(text) <= 2 or len(text) % 2:
        return None
    body = text[2:]
    return bytes.fromhex(body) if _HEX_RE.match(body) else None


def _candidate_hex_plain(message: MessageInput) -> bytes | None:
    # Wallets that return the signed bytes as bare hex.
    text = message.text_form
    if text is None or text.startswith("0x") or len(text) <= 2 or len(text) % 2:
        return None
    return bytes.fromhex(text) if _HEX_RE.match(text) else None


CandidateStrategy = Callable[[MessageInput], bytes | None]

MESSAGE_CANDIDATES: tuple[tuple[str, CandidateStrategy], ...] = (
    ("canonical", _candidate_canonical),
    ("raw", _candidate_raw),
    ("ascii", _candidate_ascii),
    ("hex_0x", _candidate_hex_prefixed),
    ("hex_plain", _candidate_hex_plain),
)


def iter_candidates(message: MessageInput) -> list[tuple[str, bytes]]:
    """Materialize the candidate list in order, skipping empty and duplicate entries."""
    seen: set[bytes] = set()
    candidates: list[tuple[str, bytes]] = []
    for name, strategy in MESSAGE_CANDIDATES:
        data = strategy(message)
        if not data or data in seen:
            continue
        seen.add(data)
        candidates.append((name, data))
    return candidates


def verify_ed25519(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature over the personal-message digest of ``message``."""
    try:
        VerifyKey(public_key).verify(personal_message_digest(message), signature)
        return True
    except (CryptoError, ValueError, TypeError):
        return False


class SignatureVerifier:
    """Validates that a signature proves control of a claimed address."""

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self.config = config or VerifierConfig()

    def verify(
        self,
        signature: SignatureInput | None,
        message: SignatureInput | None,
        claimed_address: str,
        public_key: SignatureInput | None = None,
        *,
        auth_message: str | None = None,
    ) -> bool:
        """Return True when the signature is valid for the claimed address."""
        return self.evaluate(
            signature,
            message,
            claimed_address,
            public_key,
            auth_message=auth_message,
        ).valid

    def evaluate(
        self,
        signature: SignatureInput | None,
        message: SignatureInput | None,
        claimed_address: str,
        public_key: SignatureInput | None = None,
        *,
        auth_message: str | None = None,
    ) -> VerificationResult:
        """Like :meth:`verify` but keeps the failure reason or matched candidate."""
        started = time.perf_counter()
        try:
            result = self._evaluate(signature, message, claimed_address, public_key, auth_message)
        except SignatureRejected as rejection:
            logger.info(
                "Signature rejected for %s: %s %s",
                claimed_address,
                rejection.reason.value,
                rejection.detail,
            )
            result = VerificationResult(valid=False, failure=rejection.reason)
        except Exception:  # pragma: no cover - contract boundary
            logger.exception("Unexpected error during signature verification")
            result = VerificationResult(valid=False, failure=VerificationFailure.UNDECODABLE_MESSAGE)
        logger.debug("Signature verification took %.1fms", (time.perf_counter() - started) * 1000)
        return result

    def _evaluate(
        self,
        signature: SignatureInput | None,
        message: SignatureInput | None,
        claimed_address: str,
        public_key: SignatureInput | None,
        auth_message: str | None,
    ) -> VerificationResult:
        if signature is None or len(signature) == 0:
            raise SignatureRejected(VerificationFailure.EMPTY_SIGNATURE)
        if message is None or len(message) == 0:
            raise SignatureRejected(VerificationFailure.EMPTY_MESSAGE)

        message_input, parsed = self._read_message(message, auth_message)
        if not parsed.address or parsed.address.lower() != claimed_address.lower():
            raise SignatureRejected(
                VerificationFailure.ADDRESS_MISMATCH,
                f"message address {parsed.address or '<missing>'}",
            )

        try:
            raw_signature = decode_binary(signature)
        except ValueError as err:
            raise SignatureRejected(VerificationFailure.UNDECODABLE_SIGNATURE, str(err)) from err
        key_bytes: bytes | None = None
        if public_key is not None and len(public_key) > 0:
            try:
                key_bytes = decode_binary(public_key)
            except ValueError as err:
                raise SignatureRejected(VerificationFailure.INVALID_PUBLIC_KEY, str(err)) from err

        normalized = normalize_signature(raw_signature, key_bytes)

        if self.config.bind_public_key:
            derived = sui_address(normalized.public_key)
            if derived != claimed_address.lower():
                raise SignatureRejected(VerificationFailure.KEY_ADDRESS_MISMATCH, f"key controls {derived}")

        for name, candidate in iter_candidates(message_input):
            if verify_ed25519(normalized.public_key, candidate, normalized.signature):
                logger.info("Signature for %s verified with candidate %s", claimed_address, name)
                return VerificationResult(valid=True, candidate=name)
            logger.debug("Candidate %s did not verify (%d bytes)", name, len(candidate))

        raise SignatureRejected(VerificationFailure.NO_CANDIDATE_MATCHED)

    def _read_message(
        self,
        message: SignatureInput,
        auth_message: str | None,
    ) -> tuple[MessageInput, AuthorizationMessage]:
        text_form = message if isinstance(message, str) else None
        try:
            raw: bytes | None = decode_binary(message)
        except ValueError:
            if text_form is None:
                raise SignatureRejected(VerificationFailure.UNDECODABLE_MESSAGE, "invalid byte array")
            raw = None

        decoded_text: str | None = None
        if raw is not None:
            try:
                decoded_text = raw.decode("utf-8")
            except UnicodeDecodeError:
                decoded_text = None
        if decoded_text is None:
            decoded_text = auth_message or ""

        parsed = parse_authorization_message(decoded_text)
        canonical = parsed.canonical(self.config.auth_message_header) if parsed.fields else None
        return MessageInput(raw=raw, text_form=text_form, canonical=canonical), parsed
