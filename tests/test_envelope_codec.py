import base64
import hashlib
import unittest

from quotation_engine.envelope import codec
from quotation_engine.errors import InvalidKeyError, MalformedEnvelopeError, ValidationError


class LineItemEncodingTest(unittest.TestCase):
    def test_decode_restores_encoded_line_items(self) -> None:
        items = [
            {"description": "Cabo 2mm", "quantity": 3, "unit_price": 12.5},
            {"description": "Conector", "quantity": 10, "unit_price": 0.75, "sku": "CN-01"},
        ]
        blob = codec.encode_line_items(items)

        self.assertEqual(codec.decode_line_items(blob), items)

    def test_encoding_is_deterministic_regardless_of_key_order(self) -> None:
        first = codec.encode_line_items([{"quantity": 1, "unit_price": 2, "description": "A"}])
        second = codec.encode_line_items([{"description": "A", "unit_price": 2, "quantity": 1}])

        self.assertEqual(first, second)

    def test_decode_rejects_invalid_base64(self) -> None:
        with self.assertRaises(MalformedEnvelopeError):
            codec.decode_line_items("@@not-base64@@")

    def test_decode_rejects_non_json_and_non_list_payloads(self) -> None:
        not_json = base64.b64encode(b"plain text").decode("ascii")
        not_list = base64.b64encode(b'{"quantity": 1}').decode("ascii")
        bad_utf8 = base64.b64encode(b"\xff\xfe\xfd").decode("ascii")

        for blob in (not_json, not_list, bad_utf8, ""):
            with self.subTest(blob=blob):
                with self.assertRaises(MalformedEnvelopeError):
                    codec.decode_line_items(blob)


class SymmetricEnvelopeTest(unittest.TestCase):
    def test_generated_key_is_32_bytes_of_hex(self) -> None:
        key = codec.generate_key()

        self.assertEqual(len(key), 64)
        self.assertTrue(codec.is_valid_key(key))
        self.assertNotEqual(key, codec.generate_key())

    def test_is_valid_key_requires_hex_of_at_least_16_bytes(self) -> None:
        self.assertTrue(codec.is_valid_key("ab" * 16))
        self.assertFalse(codec.is_valid_key("ab" * 15))
        self.assertFalse(codec.is_valid_key("zz" * 16))
        self.assertFalse(codec.is_valid_key("abc" * 11))
        self.assertFalse(codec.is_valid_key(None))

    def test_decrypt_recovers_plaintext(self) -> None:
        key = codec.generate_key()
        payload = "margem 18% | notas internas: fornecedor preferencial"

        ciphertext = codec.encrypt(payload, key)

        self.assertNotEqual(ciphertext, payload)
        self.assertEqual(codec.decrypt(ciphertext, key), payload)

    def test_encrypt_rejects_malformed_key(self) -> None:
        with self.assertRaises(InvalidKeyError):
            codec.encrypt("data", "not-a-key")

    def test_key_digest_is_sha256_hex(self) -> None:
        key = codec.generate_key()
        self.assertEqual(codec.key_digest(key), hashlib.sha256(key.encode("utf-8")).hexdigest())

    def test_digest_check_guards_decryption(self) -> None:
        key = codec.generate_key()
        sensitive = {"costBreakdown": [{"quantity": 1}], "profitMargin": 12, "internalNotes": "x"}
        ciphertext = codec.encrypt_json(sensitive, key)
        digest = codec.key_digest(key)

        self.assertEqual(codec.decrypt_with_digest_check(ciphertext, key, digest), sensitive)

        with self.assertRaises(InvalidKeyError) as ctx:
            codec.decrypt_with_digest_check(ciphertext, codec.generate_key(), digest)
        self.assertNotIn(digest, str(ctx.exception))
        self.assertNotIn(digest, str(ctx.exception.payload))

        with self.assertRaises(InvalidKeyError):
            codec.decrypt_with_digest_check(ciphertext, None, digest)


class DigestAndTextTest(unittest.TestCase):
    def test_digest_supports_listed_algorithms_only(self) -> None:
        self.assertEqual(codec.digest("QT-1", "sha512"), hashlib.sha512(b"QT-1").hexdigest())
        with self.assertRaises(ValidationError) as ctx:
            codec.digest("QT-1", "sha1")
        self.assertEqual(ctx.exception.code, "hash_algorithm_invalid")

    def test_digest_matches_is_false_for_empty_or_non_ascii_input(self) -> None:
        self.assertTrue(codec.digest_matches("a", codec.digest("a")))
        self.assertFalse(codec.digest_matches("a", None))
        self.assertFalse(codec.digest_matches("a", "não é hash"))

    def test_decode_text_rejects_bad_utf8(self) -> None:
        with self.assertRaises(MalformedEnvelopeError):
            codec.decode_text(base64.b64encode(b"\xff\xfe").decode("ascii"))


if __name__ == "__main__":
    unittest.main()
