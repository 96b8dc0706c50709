"""Tests for X25519 key agreement and AES-GCM share encryption."""

import unittest

from secaggplus.crypto import (
    X25519_KEY_SIZE,
    ECKeyPair,
    compute_shared_secret,
    decrypt_share,
    derive_share_encryption_key,
    encrypt_share,
)
from secaggplus.errors import DecryptionFailure, InvalidParameters
from secaggplus.masking import HKDF_INFO_SHARE_ENCRYPTION, hkdf_sha256


class KeyAgreementTests(unittest.TestCase):
    def test_key_sizes(self):
        kp = ECKeyPair.generate()
        self.assertEqual(len(kp.private_key_bytes), X25519_KEY_SIZE)
        self.assertEqual(len(kp.public_key_bytes), X25519_KEY_SIZE)

    def test_fresh_keys(self):
        self.assertNotEqual(ECKeyPair.generate().public_key_bytes, ECKeyPair.generate().public_key_bytes)

    def test_shared_secret_symmetry(self):
        a = ECKeyPair.generate()
        b = ECKeyPair.generate()
        ab = compute_shared_secret(a.private_key_bytes, b.public_key_bytes)
        ba = compute_shared_secret(b.private_key_bytes, a.public_key_bytes)
        self.assertEqual(ab, ba)
        self.assertEqual(len(ab), 32)

    def test_different_peers_different_secrets(self):
        a, b, c = ECKeyPair.generate(), ECKeyPair.generate(), ECKeyPair.generate()
        self.assertNotEqual(
            compute_shared_secret(a.private_key_bytes, b.public_key_bytes),
            compute_shared_secret(a.private_key_bytes, c.public_key_bytes),
        )

    def test_malformed_public_key(self):
        a = ECKeyPair.generate()
        with self.assertRaises(InvalidParameters):
            compute_shared_secret(a.private_key_bytes, b"\x01" * 5)


class ShareEncryptionTests(unittest.TestCase):
    def setUp(self):
        a = ECKeyPair.generate()
        b = ECKeyPair.generate()
        self.secret = compute_shared_secret(a.private_key_bytes, b.public_key_bytes)

    def test_key_derivation(self):
        key = derive_share_encryption_key(self.secret)
        self.assertEqual(len(key), 32)
        self.assertEqual(key, hkdf_sha256(self.secret, 32, HKDF_INFO_SHARE_ENCRYPTION))

    def test_encrypt_decrypt(self):
        plaintext = b"share payload bytes"
        payload = encrypt_share(plaintext, self.secret)
        self.assertEqual(len(payload), 12 + len(plaintext) + 16)
        self.assertEqual(decrypt_share(payload, self.secret), plaintext)

    def test_nonce_is_fresh(self):
        self.assertNotEqual(encrypt_share(b"x", self.secret), encrypt_share(b"x", self.secret))

    def test_wrong_secret(self):
        payload = encrypt_share(b"data", self.secret)
        with self.assertRaises(DecryptionFailure):
            decrypt_share(payload, b"\x00" * 32)

    def test_tampered_ciphertext(self):
        payload = bytearray(encrypt_share(b"data", self.secret))
        payload[14] ^= 0x01
        with self.assertRaises(DecryptionFailure):
            decrypt_share(bytes(payload), self.secret)

    def test_short_payload(self):
        with self.assertRaises(DecryptionFailure):
            decrypt_share(b"\x00" * 27, self.secret)


if __name__ == "__main__":
    unittest.main()
