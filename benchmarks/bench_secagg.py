# pip install secaggplus
import asyncio
import time

from secaggplus import SecAggPlusConfig, quantize, split, reconstruct
from secaggplus.masking import derive_pairwise_mask, pseudo_rand_gen
from secaggplus.simulation import run_simulation

VECTOR_LENGTH = 100_000

# --- 1. Mask streams ---
print("=== Mask streams ===")
t0 = time.perf_counter()
pseudo_rand_gen(b"\x01" * 32, 1 << 32, VECTOR_LENGTH)
prg_ms = (time.perf_counter() - t0) * 1000
t1 = time.perf_counter()
derive_pairwise_mask(b"\x02" * 32, VECTOR_LENGTH, 1 << 32, b"bench-round")
hkdf_ms = (time.perf_counter() - t1) * 1000
print(f"  self-mask PRG: {prg_ms:.0f}ms for {VECTOR_LENGTH} elements")
print(f"  pairwise mask: {hkdf_ms:.0f}ms for {VECTOR_LENGTH} elements\n")

# --- 2. Shamir ---
print("=== Shamir (t=3, n=10) ===")
t2 = time.perf_counter()
for _ in range(1000):
    shares = split(123456789, 3, 10)
    reconstruct(shares[:3])
print(f"  1000 split+reconstruct: {(time.perf_counter() - t2) * 1000:.0f}ms\n")

# --- 3. Quantization ---
print("=== Quantization ===")
values = [((i % 200) - 100) / 50.0 for i in range(VECTOR_LENGTH)]
t3 = time.perf_counter()
quantize(values, 3.0, 1 << 16)
print(f"  quantize: {(time.perf_counter() - t3) * 1000:.0f}ms for {VECTOR_LENGTH} values\n")

# --- 4. Full rounds ---
print("=== Full rounds (length 1000) ===")
for n, dropouts in [(5, []), (10, []), (10, [2, 7])]:
    configs = [
        SecAggPlusConfig(
            session_id="bench", round_id="r1", threshold=n // 2 + 1, total_clients=n, my_index=i
        )
        for i in range(1, n + 1)
    ]
    updates = {c.my_index: values[:1000] for c in configs}
    tr = time.perf_counter()
    report = asyncio.run(run_simulation(configs, updates, dropouts))
    ms = (time.perf_counter() - tr) * 1000
    recovered = sum(report.seeds_recovered.values())
    print(f"  n={n:<3} dropped={len(dropouts)} recovered={recovered} | {ms:.0f}ms")

print("Done.")
