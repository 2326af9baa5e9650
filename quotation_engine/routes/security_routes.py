"""Envelope and signature primitives exposed for client-side tooling.

Vendors use these to re-sign revised terms and buyers to check a digest or
signature outside the quotation flow. Identity is optional here; nothing is
persisted.
"""

import logging
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from quotation_engine.envelope import codec, signature
from quotation_engine.errors import ValidationError
from quotation_engine.policies import resolve_principal
from quotation_engine.ui_strings import success_message


LOGGER = logging.getLogger("quotation_engine.security_tools")

security_bp = Blueprint("security_tools", __name__, url_prefix="/api/security")


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _text(payload: Dict[str, Any], field_name: str, *, required: bool = True) -> str | None:
    value = payload.get(field_name)
    if isinstance(value, (dict, list)) or (required and value in (None, "")):
        raise ValidationError(
            code="data_required",
            message_key="data_required",
            payload={"field": field_name},
        )
    if value is None or value == "":
        return None
    return str(value)


def _log_use(tool: str) -> None:
    principal = resolve_principal()
    LOGGER.info(
        "security_tool_used",
        extra={"tool": tool, "user_id": principal.user_id if principal else None},
    )


@security_bp.route("/base64/encode", methods=["POST"])
def base64_encode_api():
    data = _text(_json_body(), "data")
    encoded = codec.encode_text(data)
    _log_use("base64_encode")
    return jsonify({"input": data, "encoded": encoded, "length": {"original": len(data), "encoded": len(encoded)}}), 200


@security_bp.route("/base64/decode", methods=["POST"])
def base64_decode_api():
    data = _text(_json_body(), "data")
    decoded = codec.decode_text(data)
    _log_use("base64_decode")
    return jsonify({"encoded": data, "decoded": decoded, "length": {"encoded": len(data), "decoded": len(decoded)}}), 200


@security_bp.route("/xor/encrypt", methods=["POST"])
def xor_encrypt_api():
    payload = _json_body()
    data = _text(payload, "data")
    key = (_text(payload, "key", required=False) or "").strip() or codec.generate_key()
    encrypted = codec.encrypt(data, key)
    _log_use("xor_encrypt")
    return jsonify({"input": data, "encrypted": encrypted, "key": key, "key_hash": codec.key_digest(key)}), 200


@security_bp.route("/xor/decrypt", methods=["POST"])
def xor_decrypt_api():
    payload = _json_body()
    data = _text(payload, "data")
    key = _text(payload, "key").strip()
    decrypted = codec.decrypt(data, key)
    _log_use("xor_decrypt")
    return jsonify({"encrypted": data, "decrypted": decrypted}), 200


@security_bp.route("/hash/generate", methods=["POST"])
def hash_generate_api():
    payload = _json_body()
    data = _text(payload, "data")
    algorithm = _text(payload, "algorithm", required=False) or codec.DEFAULT_HASH_ALGORITHM
    hashed = codec.digest(data, algorithm)
    _log_use("hash_generate")
    return jsonify({"input": data, "hash": hashed, "algorithm": algorithm.strip().lower()}), 200


@security_bp.route("/hash/verify", methods=["POST"])
def hash_verify_api():
    payload = _json_body()
    data = _text(payload, "data")
    expected = _text(payload, "hash")
    algorithm = _text(payload, "algorithm", required=False) or codec.DEFAULT_HASH_ALGORITHM
    computed = codec.digest(data, algorithm)
    _log_use("hash_verify")
    return jsonify(
        {
            "input": data,
            "provided_hash": expected,
            "computed_hash": computed,
            "is_match": codec.digest_matches(data, expected, algorithm),
            "algorithm": algorithm.strip().lower(),
        }
    ), 200


@security_bp.route("/signature/create", methods=["POST"])
def signature_create_api():
    """Sign ``data`` with the caller's private key, or with a throwaway pair.

    A generated private key is never returned, so such a signature only
    demonstrates verification against the returned public key.
    """
    payload = _json_body()
    data = _text(payload, "data")
    private_key = _text(payload, "private_key", required=False)
    public_key = None
    if private_key is None:
        public_key, private_key = signature.generate_key_pair()
    signed = signature.sign(data, private_key)
    _log_use("signature_create")
    return jsonify({"data": data, "signature": signed, "public_key": public_key, "algorithm": "RSA-SHA256"}), 200


@security_bp.route("/signature/verify", methods=["POST"])
def signature_verify_api():
    payload = _json_body()
    data = _text(payload, "data")
    signature_hex = _text(payload, "signature").strip()
    public_key = _text(payload, "public_key")
    is_valid = signature.verify(data, signature_hex, public_key)
    _log_use("signature_verify")
    return jsonify(
        {
            "data": data,
            "signature": signature_hex,
            "is_valid": is_valid,
            "message": success_message("signature_valid" if is_valid else "signature_invalid"),
        }
    ), 200
