"""Deterministic mask streams for SecAgg+.

Two pseudorandom streams are produced here and both must be bit-identical
on every platform (Python, Android, iOS, server):

* the **self-mask** PRG, ``SHA-256(seed || counter_be32)`` truncated to a
  big-endian uint32 and reduced ``mod mod_range``;
* the **pairwise mask**, an HKDF-SHA256 expansion of the ECDH shared secret
  with ``info = "secagg-pairwise-mask" || round context``.

Masks live in the ``mod_range`` domain (default ``2**32``), which has nothing
to do with the Mersenne field used for Shamir sharing.
"""

from __future__ import annotations

import hashlib
import struct
from typing import List, Optional, Sequence

from cryptography.hazmat.primitives import hashes, hmac

# Default mod range matching Flower: 2^32 for integer-mod masking.
SECAGG_PLUS_MOD_RANGE = 1 << 32

# Standardized HKDF info strings. All platforms MUST use these exact bytes.
HKDF_INFO_PAIRWISE_MASK = b"secagg-pairwise-mask"
HKDF_INFO_SHARE_ENCRYPTION = b"secagg-share-encryption"

# Update vectors are carried as 4-byte big-endian unsigned integers.
_CHUNK_BYTES = 4
_SHA256_LEN = 32
_UINT32 = struct.Struct(">I")


# ---------------------------------------------------------------------------
# Element encoding / decoding (mod_range, not the Mersenne field)
# ---------------------------------------------------------------------------


def bytes_to_int_elements(data: bytes) -> List[int]:
    """Convert raw bytes into big-endian uint32 elements.

    A trailing partial group is zero-padded.
    """
    elements: List[int] = []
    for i in range(0, len(data), _CHUNK_BYTES):
        chunk = data[i : i + _CHUNK_BYTES]
        if len(chunk) < _CHUNK_BYTES:
            chunk = chunk + b"\x00" * (_CHUNK_BYTES - len(chunk))
        elements.append(_UINT32.unpack(chunk)[0])
    return elements


def int_elements_to_bytes(elements: Sequence[int], original_size: Optional[int] = None) -> bytes:
    """Convert uint32 elements back to bytes, truncated to *original_size*."""
    out = b"".join(_UINT32.pack(e % (1 << 32)) for e in elements)
    if original_size is not None:
        out = out[:original_size]
    return out


# ---------------------------------------------------------------------------
# Self-mask PRG
# ---------------------------------------------------------------------------


def pseudo_rand_gen(seed: bytes, mod_range: int, count: int) -> List[int]:
    """SHA-256 counter mode PRG. Cross-platform compatible with server/Android/iOS.

    For each index i in [0, count), computes SHA-256(seed || i.to_bytes(4, 'big')),
    takes the first 4 bytes as a big-endian uint32, and mods by *mod_range*.
    """
    seed = bytes(seed)
    masks: List[int] = []
    for i in range(count):
        h = hashlib.sha256(seed + i.to_bytes(4, "big")).digest()
        masks.append(int.from_bytes(h[:4], "big") % mod_range)
    return masks


# ---------------------------------------------------------------------------
# HKDF-SHA256
# ---------------------------------------------------------------------------


def _hmac_sha256(key: bytes, data: bytes) -> bytes:
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(data)
    return mac.finalize()


def hkdf_sha256(
    ikm: bytes,
    length: int,
    info: bytes,
    salt: Optional[bytes] = None,
) -> bytes:
    """RFC 5869 HKDF-SHA256 (extract, then expand) returning *length* bytes.

    ``salt=None`` means 32 zero bytes.  The expand block counter is a single
    byte taken mod 256, so outputs longer than 255 blocks continue the way
    the Android client does instead of failing.
    """
    if length < 0:
        raise ValueError("length must be >= 0")
    prk = _hmac_sha256(salt if salt is not None else b"\x00" * _SHA256_LEN, ikm)

    blocks = (length + _SHA256_LEN - 1) // _SHA256_LEN
    okm = bytearray()
    t = b""
    for i in range(1, blocks + 1):
        t = _hmac_sha256(prk, t + info + bytes([i & 0xFF]))
        okm += t
    return bytes(okm[:length])


# ---------------------------------------------------------------------------
# Pairwise masks
# ---------------------------------------------------------------------------


def derive_pairwise_mask(
    shared_secret: bytes,
    count: int,
    mod_range: int = SECAGG_PLUS_MOD_RANGE,
    context: bytes = b"",
) -> List[int]:
    """Derive a pairwise mask vector from a raw ECDH shared secret.

    ``HKDF-SHA256(shared_secret, info="secagg-pairwise-mask" || context)`` is
    expanded to ``4 * count`` bytes and read as big-endian uint32 words, each
    reduced ``mod mod_range``.  *context* is the UTF-8 round id, so masks
    never repeat across rounds.  Both peers of a pair derive the same vector.
    """
    derived = hkdf_sha256(shared_secret, count * _CHUNK_BYTES, HKDF_INFO_PAIRWISE_MASK + context)
    return [
        _UINT32.unpack_from(derived, i * _CHUNK_BYTES)[0] % mod_range for i in range(count)
    ]
