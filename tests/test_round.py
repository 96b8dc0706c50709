"""Tests for secaggplus.round — the async round driver."""

from __future__ import annotations

import asyncio
import hashlib

import pytest

from secaggplus.client import SecAggPlusClient, Stage, seed_from_shares
from secaggplus.config import SecAggPlusConfig
from secaggplus.errors import ProtocolStateError
from secaggplus.round import RoundResult, SecAggRound, verification_tag
from secaggplus.shamir import ShamirShare
from secaggplus.simulation import InMemoryCoordinator


def _config(n=3, threshold=2, my_index=1):
    return SecAggPlusConfig(
        session_id="sess",
        round_id="round-1",
        threshold=threshold,
        total_clients=n,
        my_index=my_index,
    )


class _ScriptedTransport:
    """Plays the server for one real client against simulated peers."""

    def __init__(self, me: SecAggPlusClient, peers: dict, dropped=()):
        self.me = me
        self.peers = peers
        self.dropped = list(dropped)
        self.calls: list[str] = []
        self.masked = None
        self.tag = None
        self.revealed = None

    async def exchange_public_keys(self, my_index, public_key):
        self.calls.append("keys")
        keys = {idx: p.get_public_key() for idx, p in self.peers.items()}
        keys[my_index] = public_key
        for p in self.peers.values():
            p.receive_peer_public_keys(keys)
        return keys

    async def exchange_encrypted_shares(self, my_index, outgoing):
        self.calls.append("shares")
        peer_out = {idx: p.generate_encrypted_shares() for idx, p in self.peers.items()}
        for idx, p in self.peers.items():
            incoming = {s: e[idx] for s, e in peer_out.items() if idx in e}
            incoming[my_index] = outgoing[idx]
            p.receive_encrypted_shares(incoming)
        return {s: e[my_index] for s, e in peer_out.items()}

    async def submit_masked_update(self, my_index, masked, tag):
        self.calls.append("masked")
        self.masked = masked
        self.tag = tag
        return list(self.dropped)

    async def submit_revealed_shares(self, my_index, revealed):
        self.calls.append("revealed")
        self.revealed = revealed


class TestSecAggRound:
    @pytest.mark.asyncio
    async def test_run_without_dropouts(self):
        me = SecAggPlusClient(_config(my_index=1))
        peers = {i: SecAggPlusClient(_config(my_index=i)) for i in (2, 3)}
        transport = _ScriptedTransport(me, peers)

        result = await SecAggRound(me.config, transport, client=me).run(b"\x00" * 16)

        assert isinstance(result, RoundResult)
        assert transport.calls == ["keys", "shares", "masked"]
        assert result.masked_update == transport.masked
        assert len(result.masked_update) == 16
        assert result.dropped == []
        assert result.revealed_for == []
        assert result.peers == 2
        assert me.stage is Stage.COMPLETED

    @pytest.mark.asyncio
    async def test_run_sends_verification_tag(self):
        me = SecAggPlusClient(_config(my_index=1))
        peers = {i: SecAggPlusClient(_config(my_index=i)) for i in (2, 3)}
        transport = _ScriptedTransport(me, peers)

        result = await SecAggRound(me.config, transport, client=me).run(b"\x00" * 8)

        expected = hashlib.sha256(b"sess" + result.masked_update).hexdigest()
        assert result.verification_tag == expected
        assert transport.tag == expected

    @pytest.mark.asyncio
    async def test_run_reveals_for_dropped(self):
        me = SecAggPlusClient(_config(my_index=1))
        peers = {i: SecAggPlusClient(_config(my_index=i)) for i in (2, 3)}
        transport = _ScriptedTransport(me, peers, dropped=[3])
        dropped_seed = bytes(peers[3]._session.seed)

        result = await SecAggRound(me.config, transport, client=me).run(b"\x00" * 8)

        assert transport.calls == ["keys", "shares", "masked", "revealed"]
        assert result.dropped == [3]
        assert result.revealed_for == [3]
        assert me.stage is Stage.COMPLETED

        # Client 2 survives too; its share plus ours rebuild client 3's seed.
        peers[2].mask_model_update(b"\x00" * 8)
        other = peers[2].reveal_shares_for_dropped([3])
        shares = [
            ShamirShare.from_bytes(transport.revealed[3])[0],
            ShamirShare.from_bytes(other[3])[0],
        ]
        assert seed_from_shares(shares) == dropped_seed

    @pytest.mark.asyncio
    async def test_builds_its_own_client(self):
        cfg = _config(n=2, my_index=2)

        class _Solo:
            async def exchange_public_keys(self, my_index, public_key):
                return {my_index: public_key}

            async def exchange_encrypted_shares(self, my_index, outgoing):
                assert outgoing == {}
                return {}

            async def submit_masked_update(self, my_index, masked, tag):
                return []

            async def submit_revealed_shares(self, my_index, revealed):
                raise AssertionError("nothing dropped")

        round_ = SecAggRound(cfg, _Solo())
        result = await round_.run(b"\x00\x00\x00\x05")
        assert result.peers == 0
        assert round_.client.stage is Stage.COMPLETED

    @pytest.mark.asyncio
    async def test_client_reuse_raises(self):
        me = SecAggPlusClient(_config(my_index=1))
        peers = {i: SecAggPlusClient(_config(my_index=i)) for i in (2, 3)}
        await SecAggRound(me.config, _ScriptedTransport(me, peers), client=me).run(b"\x00" * 4)

        fresh_peers = {i: SecAggPlusClient(_config(my_index=i)) for i in (2, 3)}
        with pytest.raises(ProtocolStateError):
            await SecAggRound(
                me.config, _ScriptedTransport(me, fresh_peers), client=me
            ).run(b"\x00" * 4)


class TestVerificationTag:
    def test_known_digests(self):
        # SHA-256 of the empty string and of "abc".
        assert verification_tag("", b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )
        assert verification_tag("ab", b"c") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_session_id_prefixes_masked_bytes(self):
        masked = b"\x01\x02\x03\x04"
        assert verification_tag("sess", masked) == hashlib.sha256(b"sess\x01\x02\x03\x04").hexdigest()
        assert verification_tag("sess", masked) != verification_tag("other", masked)

    def test_session_id_is_utf8(self):
        assert verification_tag("é", b"") == hashlib.sha256("é".encode("utf-8")).hexdigest()


class TestInMemoryCoordinator:
    @pytest.mark.asyncio
    async def test_all_clients_agree(self):
        coordinator = InMemoryCoordinator(3)
        rounds = [
            SecAggRound(_config(my_index=i), coordinator) for i in (1, 2, 3)
        ]
        results = await asyncio.gather(*(r.run(b"\x00" * 12) for r in rounds))

        assert sorted(coordinator.masked_updates) == [1, 2, 3]
        assert all(r.dropped == [] for r in results)
        assert all(r.peers == 2 for r in results)
