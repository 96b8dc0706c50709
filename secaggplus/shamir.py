"""Shamir secret sharing over the Mersenne prime field GF(2^127 - 1).

The field size, the Horner evaluation order and the share wire format are
shared with the server and the Android/iOS clients, so shares produced here
can be reconstructed anywhere::

    [4-byte BE index][16-byte BE value][4-byte BE modulus length][modulus bytes]
"""

from __future__ import annotations

import logging
import secrets
import struct
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .errors import InsufficientShares, InvalidParameters

logger = logging.getLogger(__name__)

# Mersenne prime 2^127 - 1, matching the server field_size.
DEFAULT_FIELD_SIZE = (1 << 127) - 1

# Share values are always written as 16 big-endian bytes.
SHARE_VALUE_BYTES = 16

_HEADER = struct.Struct(">I")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShamirShare:
    """One evaluation point ``(index, value)`` of a sharing polynomial."""

    index: int
    value: int
    modulus: int = DEFAULT_FIELD_SIZE

    def to_bytes(self) -> bytes:
        mod_bytes = _int_to_min_bytes(self.modulus)
        value = self.value % (1 << (SHARE_VALUE_BYTES * 8))
        return (
            _HEADER.pack(self.index)
            + value.to_bytes(SHARE_VALUE_BYTES, "big")
            + _HEADER.pack(len(mod_bytes))
            + mod_bytes
        )

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> Tuple["ShamirShare", int]:
        """Parse one share starting at *offset*; return it and the next offset."""
        fixed = 4 + SHARE_VALUE_BYTES + 4
        if len(data) - offset < fixed:
            raise InvalidParameters(
                f"Share payload too short: {len(data) - offset} bytes, need at least {fixed}"
            )
        index = _HEADER.unpack_from(data, offset)[0]
        offset += 4
        value = int.from_bytes(data[offset : offset + SHARE_VALUE_BYTES], "big")
        offset += SHARE_VALUE_BYTES
        mod_len = _HEADER.unpack_from(data, offset)[0]
        offset += 4
        if len(data) - offset < mod_len:
            raise InvalidParameters(
                f"Share modulus truncated: expected {mod_len} bytes, got {len(data) - offset}"
            )
        modulus = int.from_bytes(data[offset : offset + mod_len], "big")
        offset += mod_len
        if modulus < 2:
            raise InvalidParameters(f"Invalid share modulus {modulus}")
        return cls(index=index, value=value, modulus=modulus), offset


def _int_to_min_bytes(value: int) -> bytes:
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


# ---------------------------------------------------------------------------
# Field helpers (pure functions, no I/O)
# ---------------------------------------------------------------------------


def mod_inverse(a: int, m: int) -> int:
    """Modular multiplicative inverse via extended Euclidean algorithm."""

    def _extended_gcd(a: int, b: int) -> Tuple[int, int, int]:
        if a == 0:
            return b, 0, 1
        gcd, x1, y1 = _extended_gcd(b % a, a)
        return gcd, y1 - (b // a) * x1, x1

    gcd, x, _ = _extended_gcd(a % m, m)
    if gcd != 1:
        raise InvalidParameters(f"Modular inverse does not exist for {a} mod {m}")
    return x % m


def _evaluate_polynomial(coefficients: List[int], x: int, modulus: int) -> int:
    """Evaluate polynomial at *x* using Horner's method in GF(*modulus*)."""
    result = coefficients[-1]
    for i in range(len(coefficients) - 2, -1, -1):
        result = (result * x + coefficients[i]) % modulus
    return result


# ---------------------------------------------------------------------------
# Split / reconstruct
# ---------------------------------------------------------------------------


def generate_shares(
    secret: int,
    threshold: int,
    total_shares: int,
    modulus: int = DEFAULT_FIELD_SIZE,
) -> List[ShamirShare]:
    """Split *secret* into *total_shares* Shamir shares.

    Any *threshold* shares are sufficient to reconstruct the secret.
    Share ``i`` (1-based) is the polynomial evaluated at ``x = i``.
    """
    if threshold < 1 or threshold > total_shares:
        raise InvalidParameters(
            f"threshold must be in [1, total_shares], got t={threshold} n={total_shares}"
        )
    if not 0 <= secret < modulus:
        raise InvalidParameters("secret must be in [0, field_size)")

    # Constant term is the secret; the rest are uniform field elements.
    coefficients = [secret]
    for _ in range(threshold - 1):
        coefficients.append(secrets.randbelow(modulus))

    return [
        ShamirShare(index=x, value=_evaluate_polynomial(coefficients, x, modulus), modulus=modulus)
        for x in range(1, total_shares + 1)
    ]


def reconstruct_secret(shares: Sequence[ShamirShare]) -> int:
    """Reconstruct the secret via Lagrange interpolation at ``x = 0``.

    Passing fewer than ``threshold`` shares does not fail: the result is
    simply unrelated to the secret.
    """
    if len(shares) < 2:
        raise InsufficientShares(
            f"Need at least 2 shares for reconstruction, got {len(shares)}"
        )

    modulus = shares[0].modulus
    if any(s.modulus != modulus for s in shares):
        raise InvalidParameters("All shares must use the same modulus")
    indices = [s.index for s in shares]
    if len(set(indices)) != len(indices):
        raise InvalidParameters(f"Duplicate share indices: {sorted(indices)}")

    result = 0
    for i, share_i in enumerate(shares):
        numerator = 1
        denominator = 1
        for j, share_j in enumerate(shares):
            if i != j:
                numerator = (numerator * (0 - share_j.index)) % modulus
                denominator = (denominator * (share_i.index - share_j.index)) % modulus

        lagrange_coeff = (numerator * mod_inverse(denominator, modulus)) % modulus
        result = (result + share_i.value * lagrange_coeff) % modulus

    return result


split = generate_shares
reconstruct = reconstruct_secret


def split_multiple(
    secrets_list: Sequence[int],
    threshold: int,
    total_shares: int,
    modulus: int = DEFAULT_FIELD_SIZE,
) -> List[List[ShamirShare]]:
    """Share several secrets at once, grouped per participant.

    Returns *total_shares* bundles; bundle ``i`` holds participant ``i + 1``'s
    share of every secret, in the order of *secrets_list*.
    """
    per_secret = [generate_shares(s, threshold, total_shares, modulus) for s in secrets_list]
    return [[shares[p] for shares in per_secret] for p in range(total_shares)]


def reconstruct_multiple(bundles: Sequence[Sequence[ShamirShare]]) -> List[int]:
    """Inverse of :func:`split_multiple`: one reconstructed value per secret."""
    if not bundles:
        return []
    num_secrets = len(bundles[0])
    if any(len(b) != num_secrets for b in bundles):
        raise InvalidParameters("All share bundles must carry the same number of shares")
    return [reconstruct_secret([b[k] for b in bundles]) for k in range(num_secrets)]


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def serialize_shares(shares: Sequence[ShamirShare]) -> bytes:
    """Serialize a list of shares (count-prefixed) for network transmission."""
    buf = bytearray(_HEADER.pack(len(shares)))
    for s in shares:
        buf += s.to_bytes()
    return bytes(buf)


def deserialize_shares(data: bytes) -> List[ShamirShare]:
    """Deserialize a share bundle produced by :func:`serialize_shares`."""
    if len(data) < 4:
        raise InvalidParameters("Share bundle too short")
    count = _HEADER.unpack_from(data, 0)[0]
    offset = 4
    shares: List[ShamirShare] = []
    for _ in range(count):
        share, offset = ShamirShare.from_bytes(data, offset)
        shares.append(share)
    if offset != len(data):
        logger.debug("Ignoring %d trailing bytes after share bundle", len(data) - offset)
    return shares
