"""
secaggplus — client-side Secure Aggregation (SecAgg+) for federated learning.

A coordinating server learns only the sum of the participants' model
updates, and the round survives clients dropping out.  The package holds the
protocol engine only; the transport to the server is supplied by the caller
through :class:`secaggplus.round.Transport`.
"""

from __future__ import annotations

__version__ = "1.0.0"

from .client import SecAggPlusClient, Stage, generate_seed, seed_from_shares
from .config import SecAggPlusConfig
from .crypto import (
    ECKeyPair,
    compute_shared_secret,
    decrypt_share,
    derive_share_encryption_key,
    encrypt_share,
)
from .errors import (
    DecryptionFailure,
    InsufficientShares,
    InvalidParameters,
    MissingSharedSecret,
    ProtocolStateError,
    SecAggError,
)
from .masking import (
    HKDF_INFO_PAIRWISE_MASK,
    HKDF_INFO_SHARE_ENCRYPTION,
    SECAGG_PLUS_MOD_RANGE,
    bytes_to_int_elements,
    derive_pairwise_mask,
    hkdf_sha256,
    int_elements_to_bytes,
    pseudo_rand_gen,
)
from .quantization import bytes_to_quantized, dequantize, quantize, quantized_to_bytes
from .round import RoundResult, SecAggRound, Transport, verification_tag
from .shamir import (
    DEFAULT_FIELD_SIZE,
    ShamirShare,
    deserialize_shares,
    generate_shares,
    reconstruct,
    reconstruct_multiple,
    reconstruct_secret,
    serialize_shares,
    split,
    split_multiple,
)

__all__ = [
    "__version__",
    # client
    "SecAggPlusClient",
    "SecAggPlusConfig",
    "Stage",
    "generate_seed",
    "seed_from_shares",
    # round driver
    "SecAggRound",
    "RoundResult",
    "Transport",
    "verification_tag",
    # errors
    "SecAggError",
    "ProtocolStateError",
    "InvalidParameters",
    "InsufficientShares",
    "DecryptionFailure",
    "MissingSharedSecret",
    # shamir
    "DEFAULT_FIELD_SIZE",
    "ShamirShare",
    "generate_shares",
    "reconstruct_secret",
    "split",
    "reconstruct",
    "split_multiple",
    "reconstruct_multiple",
    "serialize_shares",
    "deserialize_shares",
    # masking
    "SECAGG_PLUS_MOD_RANGE",
    "HKDF_INFO_PAIRWISE_MASK",
    "HKDF_INFO_SHARE_ENCRYPTION",
    "pseudo_rand_gen",
    "hkdf_sha256",
    "derive_pairwise_mask",
    "bytes_to_int_elements",
    "int_elements_to_bytes",
    # crypto
    "ECKeyPair",
    "compute_shared_secret",
    "derive_share_encryption_key",
    "encrypt_share",
    "decrypt_share",
    # quantization
    "quantize",
    "dequantize",
    "quantized_to_bytes",
    "bytes_to_quantized",
]
