from __future__ import annotations

import logging
from typing import Any, List, Mapping

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from quotation_engine.envelope.codec import canonical_json, decode_line_items
from quotation_engine.errors import MalformedEnvelopeError, ValidationError
from quotation_engine.workflow.pricing import format_amount


LOGGER = logging.getLogger("quotation_engine.signature")

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


def generate_key_pair() -> tuple[str, str]:
    """Return ``(public_pem, private_pem)`` for a fresh RSA-2048 key."""
    private_key = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_SIZE)
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return public_pem.decode("ascii"), private_pem.decode("ascii")


def canonical_data(quote_number: str, rfq_id: int, total_amount: Any, line_items: List[dict]) -> str:
    return canonical_json(
        {
            "quoteNumber": str(quote_number),
            "rfqId": int(rfq_id),
            "totalAmount": format_amount(total_amount),
            "lineItems": list(line_items or []),
        }
    )


def sign(data: str, private_key_pem: str) -> str:
    try:
        private_key = serialization.load_pem_private_key(str(private_key_pem).encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ValidationError(code="private_key_invalid", message_key="private_key_invalid") from exc
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ValidationError(code="private_key_invalid", message_key="private_key_invalid")
    signature = private_key.sign(data.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return signature.hex()


def verify(data: str, signature_hex: str | None, public_key_pem: str | None) -> bool:
    if not signature_hex or not public_key_pem:
        return False
    try:
        public_key = serialization.load_pem_public_key(str(public_key_pem).encode("ascii"))
        public_key.verify(
            bytes.fromhex(str(signature_hex)),
            str(data).encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True
    except InvalidSignature:
        return False
    except (ValueError, TypeError, UnicodeError) as exc:
        LOGGER.info("signature_verify_unreadable_input", extra={"reason": str(exc)})
        return False


def verify_quotation(quotation: Mapping[str, Any]) -> bool:
    try:
        line_items = decode_line_items(quotation.get("line_items"))
    except MalformedEnvelopeError:
        return False
    data = canonical_data(
        quotation.get("quote_number") or "",
        int(quotation.get("rfq_id") or 0),
        quotation.get("total_amount") or "0",
        line_items,
    )
    return verify(data, quotation.get("digital_signature"), quotation.get("public_key"))
