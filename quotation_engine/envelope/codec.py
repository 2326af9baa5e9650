"""Storage encoding and the symmetric side payload of a quotation.

Line items are stored as Base64 over canonical JSON. That is a storage
encoding, not access control. The sensitive payload (cost breakdown, margin
and internal notes) is XOR-enciphered with a caller-held hex key; the server
keeps only ``sha256(key)`` and checks a presented key against it before
decrypting.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import string
from decimal import Decimal
from typing import Any, List

from quotation_engine.errors import InvalidKeyError, MalformedEnvelopeError, ValidationError


KEY_BYTES = 32
MIN_KEY_BYTES = 16
_HEX_DIGITS = set(string.hexdigits)
HASH_ALGORITHMS = ("sha256", "sha512", "md5")
DEFAULT_HASH_ALGORITHM = "sha256"


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return format(value, "f")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def encode_line_items(line_items: List[dict]) -> str:
    raw = canonical_json(list(line_items or [])).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_line_items(blob: str | None) -> List[dict]:
    if not isinstance(blob, str) or not blob.strip():
        raise MalformedEnvelopeError(details="line items blob is empty")
    try:
        raw = base64.b64decode(blob.strip(), validate=True)
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        # UnicodeDecodeError and JSONDecodeError are both ValueError.
        raise MalformedEnvelopeError(details=str(exc)) from exc
    if not isinstance(decoded, list):
        raise MalformedEnvelopeError(details="line items blob does not hold a list")
    return decoded


def encode_text(text: str) -> str:
    return base64.b64encode(str(text).encode("utf-8")).decode("ascii")


def decode_text(blob: str | None) -> str:
    if not isinstance(blob, str) or not blob.strip():
        raise MalformedEnvelopeError(details="base64 text is empty")
    try:
        return base64.b64decode(blob.strip(), validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise MalformedEnvelopeError(details=str(exc)) from exc


def generate_key() -> str:
    return secrets.token_hex(KEY_BYTES)


def is_valid_key(key: str | None) -> bool:
    if not isinstance(key, str):
        return False
    if len(key) < MIN_KEY_BYTES * 2 or len(key) % 2:
        return False
    return all(ch in _HEX_DIGITS for ch in key)


def _key_bytes(key: str) -> bytes:
    if not is_valid_key(key):
        raise InvalidKeyError(details="key must be a hex string of at least 16 bytes")
    return bytes.fromhex(key)


def digest(data: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    name = str(algorithm or DEFAULT_HASH_ALGORITHM).strip().lower()
    if name not in HASH_ALGORITHMS:
        raise ValidationError(
            code="hash_algorithm_invalid",
            message_key="hash_algorithm_invalid",
            payload={"supported": list(HASH_ALGORITHMS)},
        )
    return hashlib.new(name, str(data).encode("utf-8")).hexdigest()


def digest_matches(data: str, expected: str | None, algorithm: str = DEFAULT_HASH_ALGORITHM) -> bool:
    computed = digest(data, algorithm)
    if not expected:
        return False
    return hmac.compare_digest(computed.encode("ascii"), str(expected).strip().lower().encode("utf-8"))


def key_digest(key: str) -> str:
    return digest(key)


def _xor(data: bytes, key: bytes) -> bytes:
    key_len = len(key)
    return bytes(byte ^ key[idx % key_len] for idx, byte in enumerate(data))


def encrypt(payload: str, key: str) -> str:
    return _xor(str(payload).encode("utf-8"), _key_bytes(key)).hex()


def decrypt(ciphertext: str, key: str) -> str:
    key_raw = _key_bytes(key)
    try:
        data = bytes.fromhex(str(ciphertext or ""))
        return _xor(data, key_raw).decode("utf-8")
    except ValueError as exc:
        raise MalformedEnvelopeError(details=str(exc)) from exc


def encrypt_json(payload: Any, key: str) -> str:
    return encrypt(canonical_json(payload), key)


def decrypt_json(ciphertext: str, key: str) -> Any:
    text = decrypt(ciphertext, key)
    try:
        return json.loads(text)
    except ValueError as exc:
        raise MalformedEnvelopeError(details=str(exc)) from exc


def key_matches(presented_key: str | None, stored_digest: str | None) -> bool:
    if not presented_key or not stored_digest:
        return False
    return hmac.compare_digest(key_digest(presented_key), str(stored_digest))


def decrypt_with_digest_check(ciphertext: str, presented_key: str | None, stored_digest: str | None) -> Any:
    if not key_matches(presented_key, stored_digest):
        raise InvalidKeyError(details="presented key does not match stored digest")
    return decrypt_json(ciphertext, str(presented_key))
