"""Client-side SecAgg+ state machine.

Implements the 4-stage protocol from Bonawitz et al., aligned with the
server's ``SecAggProtocol`` and the Android/iOS clients:

  1. **Setup** -- generate an X25519 key pair and a self-mask seed, publish
     the public key.
  2. **Share keys** -- compute one ECDH shared secret per peer, Shamir-share
     the seed, encrypt each peer's share with AES-256-GCM under a key derived
     from the pairwise secret, and collect the peers' shares of their seeds.
  3. **Masked upload** -- add/subtract pairwise masks (they cancel in the
     aggregate) and add the self-mask, all ``mod mod_range``.
  4. **Unmask** -- reveal the held shares of dropped peers' seeds so the
     server can rebuild their self-masks.

Example::

    client = SecAggPlusClient(config)

    # Stage 1
    my_pub = client.get_public_key()
    # ... exchange via server ...

    # Stage 2
    client.receive_peer_public_keys(peer_keys)
    encrypted = client.generate_encrypted_shares()
    # ... deliver encrypted[peer_idx] to each peer via server ...
    client.receive_encrypted_shares(shares_from_peers)

    # Stage 3
    masked = client.mask_model_update(raw_update_bytes)
    # ... upload masked ...

    # Stage 4
    revealed = client.reveal_shares_for_dropped(dropped)  # or client.complete()

A client serves exactly one round and must not be shared between threads.
"""

from __future__ import annotations

import enum
import logging
import secrets
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .config import SecAggPlusConfig
from .crypto import ECKeyPair, compute_shared_secret, decrypt_share, encrypt_share
from .errors import (
    DecryptionFailure,
    InvalidParameters,
    MissingSharedSecret,
    ProtocolStateError,
)
from .masking import (
    bytes_to_int_elements,
    derive_pairwise_mask,
    int_elements_to_bytes,
    pseudo_rand_gen,
)
from .quantization import quantize, quantized_to_bytes
from .shamir import ShamirShare, generate_shares, reconstruct_secret

logger = logging.getLogger(__name__)

SEED_BYTES = 32


class Stage(enum.Enum):
    """Protocol stages for the SecAgg+ state machine."""

    SETUP = "setup"
    SHARE_KEYS = "share_keys"
    COLLECT_MASKED_VECTORS = "collect_masked_vectors"
    UNMASK = "unmask"
    COMPLETED = "completed"


@dataclass
class _SessionState:
    """Per-round secrets and peer material owned by one client."""

    seed: bytearray
    key_pair: ECKeyPair
    peer_public_keys: Dict[int, bytes] = field(default_factory=dict)
    shared_secrets: Dict[int, bytes] = field(default_factory=dict)
    own_shares: Dict[int, ShamirShare] = field(default_factory=dict)
    encrypted_outgoing: Dict[int, bytes] = field(default_factory=dict)
    received_shares: Dict[int, ShamirShare] = field(default_factory=dict)

    def wipe(self) -> None:
        for i in range(len(self.seed)):
            self.seed[i] = 0
        self.key_pair = ECKeyPair(private_key_bytes=b"", public_key_bytes=self.key_pair.public_key_bytes)
        self.shared_secrets.clear()
        self.own_shares.clear()
        self.encrypted_outgoing.clear()
        self.received_shares.clear()


def generate_seed(field_size: int) -> bytearray:
    """Draw a self-mask seed as a uniform field element in 32 big-endian bytes.

    Keeping the seed inside the field means the value rebuilt from Shamir
    shares is the seed itself, so the server can regenerate the self-mask.
    """
    return bytearray(secrets.randbelow(field_size).to_bytes(SEED_BYTES, "big"))


def seed_from_shares(shares: Sequence[ShamirShare]) -> bytes:
    """Rebuild a client's 32-byte self-mask seed from revealed shares."""
    return reconstruct_secret(shares).to_bytes(SEED_BYTES, "big")


class SecAggPlusClient:
    """Client-side SecAgg+ state machine for a single round.

    Stage transitions are strictly forward; every operation raises
    :class:`~secaggplus.errors.ProtocolStateError` when called out of order.
    """

    def __init__(self, config: SecAggPlusConfig) -> None:
        self.config = config
        self._session = _SessionState(
            seed=generate_seed(config.field_size),
            key_pair=ECKeyPair.generate(),
        )
        self._stage = Stage.SETUP

    @property
    def stage(self) -> Stage:
        """Current protocol stage."""
        return self._stage

    def _require_stage(self, operation: str, expected: Stage) -> None:
        if self._stage is not expected:
            raise ProtocolStateError(operation, expected, self._stage)

    def _finish(self) -> None:
        self._stage = Stage.COMPLETED
        self._session.wipe()

    @property
    def peer_indices(self) -> List[int]:
        """Sorted indices of peers this client holds a shared secret with."""
        return sorted(self._session.shared_secrets)

    # ------------------------------------------------------------------
    # Stage 1: Setup
    # ------------------------------------------------------------------

    def get_public_key(self) -> bytes:
        """Return this client's 32-byte raw X25519 public key.

        The public key is not secret and is kept when the round completes, so
        this stays readable in every stage, COMPLETED included.
        """
        return bytes(self._session.key_pair.public_key_bytes)

    # ------------------------------------------------------------------
    # Stage 2: Share Keys
    # ------------------------------------------------------------------

    def receive_peer_public_keys(self, peer_keys: Mapping[int, bytes]) -> None:
        """Store peers' public keys and compute one ECDH shared secret per peer.

        *peer_keys* maps peer index (1-based) to a raw public key.  An entry
        for this client's own index is ignored.
        """
        self._require_stage("receive_peer_public_keys", Stage.SETUP)

        n = self.config.total_clients
        bad = [idx for idx in peer_keys if not 1 <= idx <= n]
        if bad:
            raise InvalidParameters(f"Peer indices out of range [1, {n}]: {sorted(bad)}")

        session = self._session
        session.peer_public_keys.clear()
        session.shared_secrets.clear()
        for idx, pub_key in peer_keys.items():
            if idx == self.config.my_index:
                continue
            session.peer_public_keys[idx] = bytes(pub_key)
            session.shared_secrets[idx] = compute_shared_secret(
                session.key_pair.private_key_bytes,
                pub_key,
            )

        logger.debug("Computed %d ECDH shared secrets", len(session.shared_secrets))
        self._stage = Stage.SHARE_KEYS

    def generate_encrypted_shares(self) -> Dict[int, bytes]:
        """Shamir-share the self-mask seed and encrypt one share per peer.

        Returns a dict mapping peer index -> ``nonce || ciphertext || tag``.
        Calling it again in the same stage returns the same payloads.
        """
        self._require_stage("generate_encrypted_shares", Stage.SHARE_KEYS)
        session = self._session
        if session.own_shares:
            return dict(session.encrypted_outgoing)

        seed_int = int.from_bytes(session.seed, "big")
        shares = generate_shares(
            secret=seed_int,
            threshold=self.config.threshold,
            total_shares=self.config.total_clients,
            modulus=self.config.field_size,
        )
        session.own_shares = {s.index: s for s in shares}

        for share in shares:
            if share.index == self.config.my_index:
                continue
            shared_secret = session.shared_secrets.get(share.index)
            if shared_secret is None:
                continue
            session.encrypted_outgoing[share.index] = encrypt_share(share.to_bytes(), shared_secret)

        logger.debug("Generated %d encrypted shares", len(session.encrypted_outgoing))
        return dict(session.encrypted_outgoing)

    def receive_encrypted_shares(self, shares: Mapping[int, bytes]) -> None:
        """Decrypt the seed shares peers encrypted for this client.

        *shares* maps sender index -> encrypted payload.  A payload that
        cannot be decrypted, or comes from a peer without a shared secret, is
        logged and skipped; the stage advances regardless.
        """
        self._require_stage("receive_encrypted_shares", Stage.SHARE_KEYS)
        session = self._session

        for sender_idx, encrypted in shares.items():
            try:
                session.received_shares[sender_idx] = self._open_share(sender_idx, encrypted)
            except MissingSharedSecret as exc:
                logger.warning("%s, skipping share", exc)
            except DecryptionFailure as exc:
                logger.warning("Failed to decrypt share from peer %d: %s", sender_idx, exc)

        logger.debug("Received %d decrypted shares from peers", len(session.received_shares))
        self._stage = Stage.COLLECT_MASKED_VECTORS

    def _open_share(self, sender_idx: int, encrypted: bytes) -> ShamirShare:
        shared_secret = self._session.shared_secrets.get(sender_idx)
        if shared_secret is None:
            raise MissingSharedSecret(sender_idx)
        plaintext = decrypt_share(encrypted, shared_secret)
        try:
            share, _ = ShamirShare.from_bytes(plaintext)
        except InvalidParameters as exc:
            raise DecryptionFailure(f"malformed share: {exc}", sender_idx) from exc
        if share.index != self.config.my_index:
            raise DecryptionFailure(
                f"share addressed to index {share.index}, expected {self.config.my_index}",
                sender_idx,
            )
        if share.modulus != self.config.field_size:
            raise DecryptionFailure(f"share uses unexpected modulus {share.modulus}", sender_idx)
        return share

    # ------------------------------------------------------------------
    # Stage 3: Masked upload
    # ------------------------------------------------------------------

    def mask_model_update(self, update_bytes: bytes) -> bytes:
        """Apply pairwise masks and the self-mask to a raw update.

        The update is read as big-endian uint32 elements.  For each peer the
        pairwise mask is **added** when ``my_index > peer_index`` and
        **subtracted** otherwise, so every pair cancels in the aggregate.
        The self-mask from the seed is then added.  All arithmetic is
        ``mod mod_range``; the result has the byte length of the input.
        """
        self._require_stage("mask_model_update", Stage.COLLECT_MASKED_VECTORS)

        mod = self.config.mod_range
        my_idx = self.config.my_index
        masked = [e % mod for e in bytes_to_int_elements(update_bytes)]
        n = len(masked)

        context = self.config.round_id.encode("utf-8")
        for peer_idx, shared_secret in sorted(self._session.shared_secrets.items()):
            pairwise_mask = derive_pairwise_mask(shared_secret, n, mod, context)
            if my_idx > peer_idx:
                masked = [(m + p) % mod for m, p in zip(masked, pairwise_mask)]
            else:
                masked = [(m - p) % mod for m, p in zip(masked, pairwise_mask)]

        self_mask = pseudo_rand_gen(self._session.seed, mod, n)
        masked = [(m + s) % mod for m, s in zip(masked, self_mask)]

        self._stage = Stage.UNMASK
        logger.debug(
            "Masked model update: %d elements, %d pairwise masks",
            n,
            len(self._session.shared_secrets),
        )
        return int_elements_to_bytes(masked, len(update_bytes))

    def mask_float_update(self, values: Iterable[float]) -> bytes:
        """Clip, stochastic-quantize and mask a float update vector."""
        quantized = quantize(list(values), self.config.clipping_range, self.config.target_range)
        return self.mask_model_update(quantized_to_bytes(quantized))

    # ------------------------------------------------------------------
    # Stage 4: Unmask
    # ------------------------------------------------------------------

    def reveal_shares_for_dropped(self, dropped_indices: Iterable[int]) -> Dict[int, bytes]:
        """Reveal the held share of each dropped peer's seed.

        Returns a dict mapping dropped peer index -> serialized share.  A
        dropped peer whose share this client never received is logged and
        omitted.
        """
        self._require_stage("reveal_shares_for_dropped", Stage.UNMASK)

        dropped = list(dropped_indices)
        revealed: Dict[int, bytes] = {}
        for idx in dropped:
            share = self._session.received_shares.get(idx)
            if share is None:
                logger.warning("No share for dropped peer %d", idx)
                continue
            revealed[idx] = share.to_bytes()

        logger.debug("Revealed %d shares for %d dropped peers", len(revealed), len(dropped))
        self._finish()
        return revealed

    def complete(self) -> None:
        """Finish the round when no peer dropped."""
        self._require_stage("complete", Stage.UNMASK)
        self._finish()

    def get_own_share(self, peer_index: int) -> Optional[ShamirShare]:
        """Return this client's own outgoing share for *peer_index*.

        ``None`` until shares have been generated.  After COMPLETED the shares
        are wiped and every index answers ``None``; the call never raises.
        """
        return self._session.own_shares.get(peer_index)
