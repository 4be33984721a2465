"""AES-256-CBC encryption and HMAC-SHA256 logic for .intunewin payloads."""

import base64
import hashlib
import hmac as std_hmac
import secrets

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..common.constants import IV_SIZE, KEY_SIZE, MAC_KEY_SIZE, MAC_SIZE
from ..common.types import EncryptionMaterial
from ..utils import CryptoError, IntegrityError


def b64(data: bytes) -> str:
    """Standard base64 with padding, as text."""
    return base64.b64encode(data).decode("ascii")


def generate_encryption_material() -> EncryptionMaterial:
    """
    Generate a fresh key, MAC key and IV from the OS random source.

    Returns:
        New EncryptionMaterial (32-byte key, 32-byte MAC key, 16-byte IV)

    Raises:
        CryptoError: If the random source fails
    """
    try:
        return EncryptionMaterial(
            encryption_key=secrets.token_bytes(KEY_SIZE),
            mac_key=secrets.token_bytes(MAC_KEY_SIZE),
            iv=secrets.token_bytes(IV_SIZE),
        )
    except Exception as exc:
        raise CryptoError("Failed to generate encryption material.") from exc


def encrypt_data(data: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Encrypt data using AES-256-CBC with PKCS#7 padding.

    Args:
        data: Plaintext bytes
        key: 32-byte AES key
        iv: 16-byte initialization vector

    Returns:
        Ciphertext (always a non-empty multiple of 16 bytes)
    """
    try:
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(data) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()
    except Exception as exc:
        raise CryptoError("Encryption failed.") from exc


def decrypt_data(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Decrypt AES-256-CBC data and strip PKCS#7 padding.

    Args:
        ciphertext: Encrypted bytes
        key: 32-byte AES key
        iv: 16-byte initialization vector

    Returns:
        Decrypted data

    Raises:
        IntegrityError: If the key is wrong or the data is corrupted
    """
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except Exception as exc:
        raise IntegrityError(
            "Decryption failed. Wrong key or corrupted data."
        ) from exc


def compute_mac(mac_key: bytes, data: bytes) -> bytes:
    """
    Compute HMAC-SHA256 over data.

    Args:
        mac_key: 32-byte MAC key
        data: Bytes to authenticate

    Returns:
        32-byte MAC
    """
    try:
        signer = hmac.HMAC(mac_key, hashes.SHA256())
        signer.update(data)
        return signer.finalize()
    except Exception as exc:
        raise CryptoError("MAC computation failed.") from exc


def verify_mac(mac_key: bytes, data: bytes, expected: bytes) -> None:
    """
    Check an HMAC-SHA256 value.

    Raises:
        IntegrityError: If the MAC does not match
    """
    verifier = hmac.HMAC(mac_key, hashes.SHA256())
    verifier.update(data)
    try:
        verifier.verify(expected)
    except InvalidSignature as exc:
        raise IntegrityError("Payload MAC does not match.") from exc


def file_digest(data: bytes) -> str:
    """Base64 SHA-256 digest of data."""
    return b64(hashlib.sha256(data).digest())


def build_payload(ciphertext: bytes, iv: bytes, mac_key: bytes) -> bytes:
    """
    Assemble the upload payload: MAC (32) || IV (16) || ciphertext.

    The MAC covers IV || ciphertext.
    """
    layer1 = iv + ciphertext
    return compute_mac(mac_key, layer1) + layer1


def split_payload(payload: bytes) -> tuple:
    """
    Split a payload into (mac, iv, ciphertext).

    Raises:
        IntegrityError: If the payload is too short
    """
    if len(payload) < MAC_SIZE + IV_SIZE:
        raise IntegrityError("Payload too short to be encrypted.")
    return (
        payload[:MAC_SIZE],
        payload[MAC_SIZE:MAC_SIZE + IV_SIZE],
        payload[MAC_SIZE + IV_SIZE:],
    )


def constant_time_equal(left: str, right: str) -> bool:
    """Compare two base64 strings without leaking timing."""
    return std_hmac.compare_digest(left.encode("ascii"), right.encode("ascii"))
