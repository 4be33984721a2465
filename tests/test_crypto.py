"""Tests for payload encryption helpers."""

from __future__ import annotations

import hashlib
import hmac
import unittest

from intuneforge.common.constants import IV_SIZE, KEY_SIZE, MAC_KEY_SIZE
from intuneforge.core.crypto import (
    build_payload,
    compute_mac,
    decrypt_data,
    encrypt_data,
    generate_encryption_material,
    split_payload,
    verify_mac,
)
from intuneforge.utils import CryptoError, IntegrityError


class TestCrypto(unittest.TestCase):
    def setUp(self) -> None:
        self.material = generate_encryption_material()

    def test_material_sizes(self) -> None:
        self.assertEqual(len(self.material.encryption_key), KEY_SIZE)
        self.assertEqual(len(self.material.mac_key), MAC_KEY_SIZE)
        self.assertEqual(len(self.material.iv), IV_SIZE)

    def test_material_is_fresh(self) -> None:
        other = generate_encryption_material()
        self.assertNotEqual(self.material.encryption_key, other.encryption_key)
        self.assertNotEqual(self.material.mac_key, other.mac_key)
        self.assertNotEqual(self.material.iv, other.iv)

    def test_encrypt_decrypt(self) -> None:
        data = b"hello intune"
        ciphertext = encrypt_data(data, self.material.encryption_key, self.material.iv)
        self.assertEqual(len(ciphertext) % 16, 0)
        self.assertEqual(
            decrypt_data(ciphertext, self.material.encryption_key, self.material.iv), data
        )

    def test_empty_input_pads_to_one_block(self) -> None:
        ciphertext = encrypt_data(b"", self.material.encryption_key, self.material.iv)
        self.assertEqual(len(ciphertext), 16)

    def test_payload_layout(self) -> None:
        ciphertext = encrypt_data(b"x" * 100, self.material.encryption_key, self.material.iv)
        payload = build_payload(ciphertext, self.material.iv, self.material.mac_key)
        mac, iv, body = split_payload(payload)
        self.assertEqual(iv, self.material.iv)
        self.assertEqual(body, ciphertext)
        expected = hmac.new(self.material.mac_key, iv + ciphertext, hashlib.sha256).digest()
        self.assertEqual(mac, expected)

    def test_tampered_payload_fails_mac(self) -> None:
        ciphertext = encrypt_data(b"x" * 100, self.material.encryption_key, self.material.iv)
        payload = bytearray(build_payload(ciphertext, self.material.iv, self.material.mac_key))
        payload[-1] ^= 0xFF
        with self.assertRaises(IntegrityError):
            verify_mac(self.material.mac_key, bytes(payload[32:]), bytes(payload[:32]))

    def test_short_payload(self) -> None:
        with self.assertRaises(IntegrityError):
            split_payload(b"\x00" * 47)

    def test_short_key_raises_crypto_error(self) -> None:
        with self.assertRaises(CryptoError):
            encrypt_data(b"x", b"short", self.material.iv)

    def test_bad_mac_key_raises_crypto_error(self) -> None:
        with self.assertRaises(CryptoError):
            compute_mac("not bytes", b"data")


if __name__ == "__main__":
    unittest.main()
