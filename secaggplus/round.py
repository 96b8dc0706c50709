"""Async driver that walks one :class:`SecAggPlusClient` through a round.

The engine never talks to the network.  Everything it needs from the
coordination server is expressed by the :class:`Transport` protocol below;
the HTTP implementation lives with the caller.  Waiting for peers (and any
timeout on that wait) is the transport's business.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from .client import SecAggPlusClient
from .config import SecAggPlusConfig

logger = logging.getLogger(__name__)


def verification_tag(session_id: str, masked: bytes) -> str:
    """Hex SHA-256 over ``session_id`` (UTF-8) followed by the masked bytes.

    Sent with every masked upload so the server can detect a payload that
    was altered or attributed to the wrong session.
    """
    digest = hashlib.sha256()
    digest.update(session_id.encode("utf-8"))
    digest.update(masked)
    return digest.hexdigest()


class Transport(Protocol):
    """Byte-payload contract between the engine and the coordination server."""

    async def exchange_public_keys(self, my_index: int, public_key: bytes) -> Dict[int, bytes]:
        """Publish this client's key; return every participant's key by index."""
        ...

    async def exchange_encrypted_shares(
        self, my_index: int, outgoing: Dict[int, bytes]
    ) -> Dict[int, bytes]:
        """Deliver ``outgoing[peer]`` to each peer; return shares addressed to us by sender."""
        ...

    async def submit_masked_update(
        self, my_index: int, masked: bytes, tag: str
    ) -> List[int]:
        """Upload the masked vector and its :func:`verification_tag`.

        Returns the indices the server reports as dropped.
        """
        ...

    async def submit_revealed_shares(self, my_index: int, revealed: Dict[int, bytes]) -> None:
        """Send the shares of dropped peers' seeds to the server."""
        ...


@dataclass
class RoundResult:
    """Outcome of one client's round."""

    session_id: str
    round_id: str
    my_index: int
    masked_update: bytes
    verification_tag: str = ""
    dropped: List[int] = field(default_factory=list)
    revealed_for: List[int] = field(default_factory=list)
    peers: int = 0


class SecAggRound:
    """Run the four SecAgg+ stages for one client against a :class:`Transport`.

    Structural errors raised by the client propagate; there is no retry.
    """

    def __init__(
        self,
        config: SecAggPlusConfig,
        transport: Transport,
        client: Optional[SecAggPlusClient] = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.client = client or SecAggPlusClient(config)

    async def run(self, update_bytes: bytes) -> RoundResult:
        """Mask *update_bytes* and carry the client through to COMPLETED."""
        cfg = self.config
        client = self.client
        logger.info(
            "SecAgg+: client %d joining session %s round %s",
            cfg.my_index,
            cfg.session_id,
            cfg.round_id,
        )

        peer_keys = await self.transport.exchange_public_keys(
            cfg.my_index, client.get_public_key()
        )
        client.receive_peer_public_keys(peer_keys)

        outgoing = client.generate_encrypted_shares()
        incoming = await self.transport.exchange_encrypted_shares(cfg.my_index, outgoing)
        client.receive_encrypted_shares(incoming)

        masked = client.mask_model_update(update_bytes)
        tag = verification_tag(cfg.session_id, masked)
        dropped = await self.transport.submit_masked_update(cfg.my_index, masked, tag)

        result = RoundResult(
            session_id=cfg.session_id,
            round_id=cfg.round_id,
            my_index=cfg.my_index,
            masked_update=masked,
            verification_tag=tag,
            dropped=sorted(dropped),
            peers=len(client.peer_indices),
        )
        if dropped:
            revealed = client.reveal_shares_for_dropped(dropped)
            await self.transport.submit_revealed_shares(cfg.my_index, revealed)
            result.revealed_for = sorted(revealed)
            logger.info(
                "SecAgg+: client %d revealed %d share(s) for dropped peers %s",
                cfg.my_index,
                len(revealed),
                result.dropped,
            )
        else:
            client.complete()
        logger.info("SecAgg+: client %d completed round %s", cfg.my_index, cfg.round_id)
        return result
