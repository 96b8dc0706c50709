"""Local SecAgg+ rounds with an in-memory coordinator.

Runs N :class:`~secaggplus.client.SecAggPlusClient` instances concurrently
in one event loop, optionally dropping some of them after the share-keys
stage, then rebuilds the dropped clients' seeds from the shares survivors
reveal.  The simulator can see every client's secrets, so it also checks
that the survivors' masked vectors add up to the sum of their quantized
updates.  Used by the ``secaggplus simulate`` command, the benchmark and the
end-to-end tests.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .client import SecAggPlusClient, seed_from_shares
from .config import SecAggPlusConfig
from .errors import InvalidParameters
from .masking import bytes_to_int_elements, derive_pairwise_mask, pseudo_rand_gen
from .quantization import quantize, quantized_to_bytes
from .round import SecAggRound, verification_tag
from .shamir import ShamirShare

logger = logging.getLogger(__name__)


class SimulatedClient(SecAggPlusClient):
    """A client whose round secrets stay readable, for local simulation only.

    A real client never exposes its seed or pairwise secrets.  The simulator
    needs them to check the aggregate the way an all-seeing server could.
    Once the round has completed the seed reads as zeros and no secrets remain.
    """

    @property
    def seed(self) -> bytes:
        """This client's 32-byte self-mask seed."""
        return bytes(self._session.seed)

    def shared_secrets(self) -> Dict[int, bytes]:
        """Raw ECDH secrets by peer index."""
        return dict(self._session.shared_secrets)


class _Phase:
    """Collects one submission per expected participant, then releases everyone."""

    def __init__(self, expected: Iterable[int]) -> None:
        self.expected = set(expected)
        self.submissions: Dict[int, Any] = {}
        self._done = asyncio.Event()

    async def submit(self, index: int, payload: Any) -> Dict[int, Any]:
        self.submissions[index] = payload
        if self.expected.issubset(self.submissions):
            self._done.set()
        await self._done.wait()
        return self.submissions


class InMemoryCoordinator:
    """A :class:`~secaggplus.round.Transport` that routes payloads between local clients.

    Must be created inside the event loop that runs the clients.
    """

    def __init__(self, total_clients: int, dropouts: Iterable[int] = ()) -> None:
        self.total_clients = total_clients
        self.dropouts = sorted(set(dropouts))
        everyone = range(1, total_clients + 1)
        survivors = [i for i in everyone if i not in self.dropouts]
        self._keys = _Phase(everyone)
        self._shares = _Phase(everyone)
        self._masked = _Phase(survivors)
        self.tags: Dict[int, str] = {}
        self.revealed: Dict[int, Dict[int, bytes]] = {}

    @property
    def masked_updates(self) -> Dict[int, bytes]:
        return dict(self._masked.submissions)

    async def exchange_public_keys(self, my_index: int, public_key: bytes) -> Dict[int, bytes]:
        return dict(await self._keys.submit(my_index, public_key))

    async def exchange_encrypted_shares(
        self, my_index: int, outgoing: Dict[int, bytes]
    ) -> Dict[int, bytes]:
        everything = await self._shares.submit(my_index, outgoing)
        return {
            sender: payloads[my_index]
            for sender, payloads in everything.items()
            if my_index in payloads
        }

    async def submit_masked_update(self, my_index: int, masked: bytes, tag: str) -> List[int]:
        self.tags[my_index] = tag
        await self._masked.submit(my_index, masked)
        return list(self.dropouts)

    async def submit_revealed_shares(self, my_index: int, revealed: Dict[int, bytes]) -> None:
        self.revealed[my_index] = dict(revealed)

    def shares_for(self, dropped_index: int) -> List[ShamirShare]:
        """All shares of *dropped_index*'s seed revealed so far, in survivor order."""
        return [
            ShamirShare.from_bytes(by_dropped[dropped_index])[0]
            for _, by_dropped in sorted(self.revealed.items())
            if dropped_index in by_dropped
        ]

    def recover_seed(self, dropped_index: int, threshold: int) -> Optional[bytes]:
        """Rebuild a dropped client's seed from *threshold* revealed shares."""
        shares = self.shares_for(dropped_index)
        # Interpolation needs two points even when the threshold is 1.
        need = max(threshold, 2)
        if len(shares) < need:
            logger.warning(
                "Only %d share(s) revealed for client %d, threshold is %d",
                len(shares),
                dropped_index,
                threshold,
            )
            return None
        return seed_from_shares(shares[:need])


@dataclass
class SimulationReport:
    """What happened in a simulated round."""

    total_clients: int
    threshold: int
    vector_length: int
    dropped: List[int]
    survivors: List[int]
    revealed_counts: Dict[int, int] = field(default_factory=dict)
    seeds_recovered: Dict[int, bool] = field(default_factory=dict)
    aggregate_matches: Optional[bool] = None
    aggregate: Optional[List[float]] = None
    tags_valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_clients": self.total_clients,
            "threshold": self.threshold,
            "vector_length": self.vector_length,
            "dropped": self.dropped,
            "survivors": self.survivors,
            "revealed_counts": {str(k): v for k, v in self.revealed_counts.items()},
            "seeds_recovered": {str(k): v for k, v in self.seeds_recovered.items()},
            "aggregate_matches": self.aggregate_matches,
            "tags_valid": self.tags_valid,
        }


async def _run_until_dropout(
    client: SecAggPlusClient,
    coordinator: InMemoryCoordinator,
) -> None:
    """Take part in key and share exchange, then vanish."""
    idx = client.config.my_index
    peer_keys = await coordinator.exchange_public_keys(idx, client.get_public_key())
    client.receive_peer_public_keys(peer_keys)
    incoming = await coordinator.exchange_encrypted_shares(idx, client.generate_encrypted_shares())
    client.receive_encrypted_shares(incoming)
    logger.info("Simulated dropout of client %d after share keys", idx)


async def run_simulation(
    configs: Sequence[SecAggPlusConfig],
    updates: Dict[int, List[float]],
    dropouts: Iterable[int] = (),
) -> SimulationReport:
    """Run one round for every config, with *dropouts* leaving after share keys."""
    if not configs:
        raise InvalidParameters("Need at least one client")
    first = configs[0]
    n = first.total_clients
    dropped = sorted(set(dropouts))
    if any(not 1 <= d <= n for d in dropped):
        raise InvalidParameters(f"Dropout indices must be in [1, {n}], got {dropped}")
    survivors = [c.my_index for c in configs if c.my_index not in dropped]

    coordinator = InMemoryCoordinator(n, dropped)
    clients = {c.my_index: SimulatedClient(c) for c in configs}
    true_seeds = {i: c.seed for i, c in clients.items()}
    quantized = {
        i: quantize(updates[i], first.clipping_range, first.target_range) for i in clients
    }

    tasks = []
    for idx, client in clients.items():
        if idx in dropped:
            tasks.append(_run_until_dropout(client, coordinator))
        else:
            round_ = SecAggRound(client.config, coordinator, client=client)
            tasks.append(round_.run(quantized_to_bytes(quantized[idx])))
    await asyncio.gather(*tasks)

    length = len(next(iter(updates.values()))) if updates else 0
    report = SimulationReport(
        total_clients=n,
        threshold=first.threshold,
        vector_length=length,
        dropped=dropped,
        survivors=survivors,
    )
    for d in dropped:
        report.revealed_counts[d] = len(coordinator.shares_for(d))
        recovered = coordinator.recover_seed(d, first.threshold)
        report.seeds_recovered[d] = recovered == true_seeds[d]

    mod = first.mod_range
    total = [0] * length
    for idx, masked in coordinator.masked_updates.items():
        if coordinator.tags.get(idx) != verification_tag(first.session_id, masked):
            logger.warning("Verification tag mismatch for client %d", idx)
            report.tags_valid = False
        self_mask = pseudo_rand_gen(true_seeds[idx], mod, length)
        elements = bytes_to_int_elements(masked)
        total = [(t + e - s) % mod for t, e, s in zip(total, elements, self_mask)]
    context = first.round_id.encode("utf-8")
    for d in dropped:
        # A dropped client never completes, so its shared secrets are still held.
        for s, secret in clients[d].shared_secrets().items():
            if s in dropped:
                continue
            mask = derive_pairwise_mask(secret, length, mod, context)
            sign = -1 if s > d else 1
            total = [(t + sign * m) % mod for t, m in zip(total, mask)]

    expected = [sum(quantized[i][j] for i in survivors) % mod for j in range(length)]
    report.aggregate_matches = total == expected
    # Each survivor contributes one -C shift to the dequantized sum.
    clip, target = first.clipping_range, first.target_range
    scale = (2.0 * clip) / target if target else 0.0
    report.aggregate = [t * scale - len(survivors) * clip for t in total]
    return report


def simulate_round(
    total_clients: int,
    threshold: int,
    vector_length: int = 16,
    dropouts: Iterable[int] = (),
    session_id: str = "sim-session",
    round_id: str = "sim-round",
    rng_seed: Optional[int] = None,
    **config_overrides: Any,
) -> SimulationReport:
    """Build configs and random float updates, then run :func:`run_simulation`."""
    rng = random.Random(rng_seed)
    configs = [
        SecAggPlusConfig(
            session_id=session_id,
            round_id=round_id,
            threshold=threshold,
            total_clients=total_clients,
            my_index=i,
            **config_overrides,
        )
        for i in range(1, total_clients + 1)
    ]
    clip = configs[0].clipping_range
    updates = {
        c.my_index: [rng.uniform(-clip, clip) for _ in range(vector_length)] for c in configs
    }
    return asyncio.run(run_simulation(configs, updates, dropouts))
