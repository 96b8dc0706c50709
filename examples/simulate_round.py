#!/usr/bin/env python3
"""Run a SecAgg+ round for five in-process clients, one of which drops out.

Demonstrates the full client workflow:
1. Build each client's config from a server session payload
2. Drive every client through the four stages with SecAggRound
3. Drop one client after share keys
4. Rebuild the dropped client's seed from the survivors' revealed shares

Usage:
    pip install secaggplus
    python simulate_round.py
"""

import asyncio
import logging
import sys

from secaggplus import SecAggPlusConfig, SecAggRound, quantize, quantized_to_bytes
from secaggplus.simulation import InMemoryCoordinator, SimulatedClient

SESSION = {
    "session_id": "demo-session",
    "round_id": "round-1",
    "threshold": 3,
    "total_clients": 5,
    "clipping_range": 3.0,
    "target_range": 1 << 16,
}
DROPPED = 4


async def run():
    coordinator = InMemoryCoordinator(SESSION["total_clients"], dropouts=[DROPPED])
    clients = {}
    for idx in range(1, SESSION["total_clients"] + 1):
        config = SecAggPlusConfig.from_session_info(SESSION, my_index=idx)
        clients[idx] = SimulatedClient(config)
    true_seed = clients[DROPPED].seed

    # --- Steps 1-2: every survivor runs a full round ---
    tasks = []
    for idx, client in clients.items():
        if idx == DROPPED:
            continue
        update = [0.01 * idx] * 16
        raw = quantized_to_bytes(quantize(update, client.config.clipping_range, client.config.target_range))
        tasks.append(SecAggRound(client.config, coordinator, client=client).run(raw))

    # --- Step 3: the dropped client only exchanges keys and shares ---
    async def dropout():
        c = clients[DROPPED]
        keys = await coordinator.exchange_public_keys(DROPPED, c.get_public_key())
        c.receive_peer_public_keys(keys)
        incoming = await coordinator.exchange_encrypted_shares(DROPPED, c.generate_encrypted_shares())
        c.receive_encrypted_shares(incoming)
        print(f"Client {DROPPED} went offline after share keys.")

    results = await asyncio.gather(dropout(), *tasks)
    for r in results[1:]:
        print(f"Client {r.my_index}: uploaded {len(r.masked_update)} bytes, revealed shares for {r.revealed_for}")

    # --- Step 4: server-side seed recovery ---
    recovered = coordinator.recover_seed(DROPPED, SESSION["threshold"])
    if recovered != true_seed:
        print("Seed recovery FAILED.")
        sys.exit(1)
    print(f"\nRecovered client {DROPPED}'s seed from {len(coordinator.shares_for(DROPPED))} revealed shares.")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(run())


if __name__ == "__main__":
    main()
