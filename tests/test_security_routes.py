import hashlib
import unittest

from quotation_engine import create_app
from quotation_engine.config import Config
from quotation_engine.db import close_db
from quotation_engine.envelope import codec, signature
from tests.helpers.temp_db import TempDbSandbox


class SecurityToolsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="http_security_tools")
        self.app = create_app(self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=True))
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _post(self, path: str, body: dict, status: int = 200) -> dict:
        response = self.client.post(f"/api/security/{path}", json=body)
        self.assertEqual(response.status_code, status, msg=response.get_data(as_text=True))
        return response.get_json()

    def test_base64_round_trip_without_identity(self) -> None:
        encoded = self._post("base64/encode", {"data": "Cotação 42"})
        self.assertEqual(encoded["encoded"], codec.encode_text("Cotação 42"))
        self.assertEqual(encoded["length"]["original"], 10)

        decoded = self._post("base64/decode", {"data": encoded["encoded"]})
        self.assertEqual(decoded["decoded"], "Cotação 42")

    def test_base64_decode_rejects_invalid_input(self) -> None:
        body = self._post("base64/decode", {"data": "not base64!"}, status=422)
        self.assertEqual(body["error"], "malformed_envelope")
        missing = self._post("base64/encode", {}, status=400)
        self.assertEqual(missing["error"], "data_required")
        self.assertEqual(missing["field"], "data")

    def test_xor_generates_key_and_decrypts(self) -> None:
        encrypted = self._post("xor/encrypt", {"data": "margem 18%"})
        self.assertTrue(codec.is_valid_key(encrypted["key"]))
        self.assertEqual(encrypted["key_hash"], hashlib.sha256(encrypted["key"].encode("utf-8")).hexdigest())

        decrypted = self._post("xor/decrypt", {"data": encrypted["encrypted"], "key": encrypted["key"]})
        self.assertEqual(decrypted["decrypted"], "margem 18%")

    def test_xor_rejects_malformed_keys(self) -> None:
        bad = self._post("xor/encrypt", {"data": "x", "key": "short"}, status=400)
        self.assertEqual(bad["error"], "invalid_key")
        missing = self._post("xor/decrypt", {"data": "00"}, status=400)
        self.assertEqual(missing["field"], "key")

    def test_hash_generate_and_verify(self) -> None:
        generated = self._post("hash/generate", {"data": "QT-1"})
        self.assertEqual(generated["algorithm"], "sha256")
        self.assertEqual(generated["hash"], hashlib.sha256(b"QT-1").hexdigest())

        sha512 = self._post("hash/generate", {"data": "QT-1", "algorithm": "SHA512"})
        self.assertEqual(sha512["hash"], hashlib.sha512(b"QT-1").hexdigest())

        match = self._post("hash/verify", {"data": "QT-1", "hash": generated["hash"].upper()})
        self.assertTrue(match["is_match"])
        mismatch = self._post("hash/verify", {"data": "QT-2", "hash": generated["hash"]})
        self.assertFalse(mismatch["is_match"])

        unsupported = self._post("hash/generate", {"data": "QT-1", "algorithm": "crc32"}, status=400)
        self.assertEqual(unsupported["error"], "hash_algorithm_invalid")

    def test_signature_create_and_verify_with_generated_pair(self) -> None:
        created = self._post("signature/create", {"data": "termos"})
        self.assertIn("PUBLIC KEY", created["public_key"])
        self.assertNotIn("private_key", created)

        body = {"data": "termos", "signature": created["signature"], "public_key": created["public_key"]}
        self.assertTrue(self._post("signature/verify", body)["is_valid"])
        body["data"] = "termos alterados"
        self.assertFalse(self._post("signature/verify", body)["is_valid"])

    def test_signature_create_with_vendor_key_matches_service(self) -> None:
        public_key, private_key = signature.generate_key_pair()
        data = signature.canonical_data("QT-1", 10, "250.00", [{"quantity": 1, "unit_price": 250}])

        created = self._post("signature/create", {"data": data, "private_key": private_key})

        self.assertIsNone(created["public_key"])
        self.assertTrue(signature.verify(data, created["signature"], public_key))

    def test_signature_create_rejects_unreadable_private_key(self) -> None:
        body = self._post("signature/create", {"data": "x", "private_key": "not a pem"}, status=400)
        self.assertEqual(body["error"], "private_key_invalid")

    def test_signature_verify_requires_every_field(self) -> None:
        body = self._post("signature/verify", {"data": "x", "signature": "00"}, status=400)
        self.assertEqual(body["field"], "public_key")


if __name__ == "__main__":
    unittest.main()
