from __future__ import annotations

import unittest

from workforce.services.crypto import EncryptionFailure, FieldCipher, run_startup_self_test

KEY = "0123456789abcdef0123456789abcdef"
OTHER_KEY = "fedcba9876543210fedcba9876543210"


class FieldCipherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cipher = FieldCipher(KEY)

    def test_round_trip(self) -> None:
        token = self.cipher.encrypt("12345678Z")
        assert token is not None
        iv_hex, cipher_hex = token.split(":")
        self.assertEqual(len(iv_hex), 32)
        self.assertEqual(len(cipher_hex) % 32, 0)
        self.assertEqual(self.cipher.decrypt(token), "12345678Z")

    def test_round_trip_non_ascii(self) -> None:
        token = self.cipher.encrypt("ES91 2100 0418 4502 0005 1332 · Núñez")
        self.assertEqual(self.cipher.decrypt(token), "ES91 2100 0418 4502 0005 1332 · Núñez")

    def test_iv_is_fresh_per_call(self) -> None:
        self.assertNotEqual(self.cipher.encrypt("same value"), self.cipher.encrypt("same value"))

    def test_null_and_empty_values(self) -> None:
        self.assertIsNone(self.cipher.encrypt(None))
        self.assertIsNone(self.cipher.encrypt(""))
        self.assertIsNone(self.cipher.decrypt(None))
        self.assertIsNone(self.cipher.decrypt(""))

    def test_legacy_plaintext_passes_through(self) -> None:
        self.assertEqual(self.cipher.decrypt("12345678Z"), "12345678Z")

    def test_malformed_token_returns_none(self) -> None:
        with self.assertLogs("workforce.crypto", level="WARNING"):
            self.assertIsNone(self.cipher.decrypt(f"{KEY}:garbage"))
        self.assertIsNone(self.cipher.decrypt("abcd:0011"))

    def test_tampered_ciphertext_returns_none(self) -> None:
        token = self.cipher.encrypt("12345678Z")
        assert token is not None
        iv_hex, cipher_hex = token.split(":")
        self.assertIsNone(self.cipher.decrypt(f"{iv_hex}:{cipher_hex[:-2]}"))

    def test_wrong_key_never_yields_plaintext(self) -> None:
        token = FieldCipher(OTHER_KEY).encrypt("12345678Z")
        self.assertNotEqual(self.cipher.decrypt(token), "12345678Z")

    def test_invalid_key_length_fails_encrypt(self) -> None:
        cipher = FieldCipher("too-short")
        self.assertFalse(cipher.key_is_valid)
        with self.assertRaises(EncryptionFailure):
            cipher.encrypt("12345678Z")

    def test_invalid_key_decrypt_returns_none(self) -> None:
        token = self.cipher.encrypt("12345678Z")
        self.assertIsNone(FieldCipher("").decrypt(token))

    def test_self_test(self) -> None:
        self.assertTrue(self.cipher.self_test())
        self.assertFalse(FieldCipher("x" * 31).self_test())

    def test_startup_self_test_aborts_on_bad_key(self) -> None:
        run_startup_self_test(self.cipher)
        with self.assertRaises(RuntimeError):
            run_startup_self_test(FieldCipher("x" * 16))


if __name__ == "__main__":
    unittest.main()
