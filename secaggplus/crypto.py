"""X25519 key agreement and AES-GCM share transport.

Keys are carried as 32-byte raw byte strings for cross-platform
compatibility with Android (JCA X25519) and iOS (CryptoKit Curve25519).

Encrypted share wire format::

    nonce (12 bytes) || ciphertext || GCM tag (16 bytes)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .errors import DecryptionFailure, InvalidParameters
from .masking import HKDF_INFO_SHARE_ENCRYPTION, hkdf_sha256

X25519_KEY_SIZE = 32

_AES_GCM_NONCE_SIZE = 12
_AES_GCM_TAG_SIZE = 16


@dataclass
class ECKeyPair:
    """An X25519 key pair for ECDH key exchange."""

    private_key_bytes: bytes  # 32-byte raw private key
    public_key_bytes: bytes  # 32-byte raw public key

    @classmethod
    def generate(cls) -> "ECKeyPair":
        """Generate a fresh X25519 key pair."""
        private_key = X25519PrivateKey.generate()
        priv_bytes = private_key.private_bytes(
            Encoding.Raw,
            PrivateFormat.Raw,
            NoEncryption(),
        )
        pub_bytes = private_key.public_key().public_bytes(
            Encoding.Raw,
            PublicFormat.Raw,
        )
        return cls(private_key_bytes=priv_bytes, public_key_bytes=pub_bytes)


def compute_shared_secret(my_private_raw: bytes, peer_public_raw: bytes) -> bytes:
    """Return the raw 32-byte X25519 shared secret.

    No KDF is applied here: the pairwise mask and the share-encryption key
    are each derived from this value with their own HKDF info string.
    """
    try:
        private_key = X25519PrivateKey.from_private_bytes(bytes(my_private_raw))
        peer_public = X25519PublicKey.from_public_bytes(bytes(peer_public_raw))
        return private_key.exchange(peer_public)
    except ValueError as exc:
        raise InvalidParameters(f"ECDH key agreement failed: {exc}") from exc


def derive_share_encryption_key(shared_secret: bytes) -> bytes:
    """AES-256 key = HKDF-SHA256(shared_secret, info="secagg-share-encryption")."""
    return hkdf_sha256(shared_secret, 32, HKDF_INFO_SHARE_ENCRYPTION)


def encrypt_share(plaintext: bytes, shared_secret: bytes) -> bytes:
    """Encrypt a serialized share with AES-256-GCM under the pairwise secret.

    A fresh random 12-byte nonce is prepended to ``ciphertext || tag``.
    """
    nonce = os.urandom(_AES_GCM_NONCE_SIZE)
    aesgcm = AESGCM(derive_share_encryption_key(shared_secret))
    # AESGCM.encrypt returns ciphertext || tag (16 bytes appended).
    return nonce + aesgcm.encrypt(nonce, plaintext, None)


def decrypt_share(payload: bytes, shared_secret: bytes) -> bytes:
    """Decrypt a payload produced by :func:`encrypt_share`.

    Raises :class:`DecryptionFailure` if the payload is too short or the
    authentication tag does not verify.
    """
    if len(payload) < _AES_GCM_NONCE_SIZE + _AES_GCM_TAG_SIZE:
        raise DecryptionFailure(f"Encrypted data too short ({len(payload)} bytes)")

    nonce = payload[:_AES_GCM_NONCE_SIZE]
    ct_with_tag = payload[_AES_GCM_NONCE_SIZE:]
    aesgcm = AESGCM(derive_share_encryption_key(shared_secret))
    try:
        return aesgcm.decrypt(nonce, ct_with_tag, None)
    except InvalidTag as exc:
        raise DecryptionFailure("AES-GCM authentication failed") from exc
