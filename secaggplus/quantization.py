"""Quantization pipeline (float <-> integer) for SecAgg+.

Pipeline: clip to ``[-C, C]`` -> shift to ``[0, 2C]`` -> scale to ``[0, R]``
-> stochastic round -> (mask mod ``mod_range``) -> dequantize.

Stochastic rounding keeps the expected quantization error at zero, so the
rounding bias of individual clients does not accumulate in the aggregate.
"""

from __future__ import annotations

import math
import random
from typing import List, Optional, Sequence

from .masking import bytes_to_int_elements, int_elements_to_bytes


def _stochastic_round(values: Sequence[float], rng: Optional[random.Random] = None) -> List[int]:
    """Stochastic rounding: ``ceil(x)`` with probability ``x - floor(x)``.

    Matches the Flower SecAgg+ stochastic rounding implementation.
    """
    draw = (rng or random).random
    result: List[int] = []
    for v in values:
        c = math.ceil(v)
        # Probability of rounding down = ceil(v) - v
        if draw() < (c - v):
            result.append(c - 1)
        else:
            result.append(c)
    return result


def quantize(
    values: Sequence[float],
    clipping_range: float,
    target_range: int,
    rng: Optional[random.Random] = None,
) -> List[int]:
    """Stochastic quantize floats to integers in ``[0, target_range]``.

    Follows the Flower SecAgg+ quantization scheme:
      1. Clip values to ``[-clipping_range, +clipping_range]``
      2. Shift to ``[0, 2 * clipping_range]``
      3. Scale to ``[0, target_range]``
      4. Stochastic round to integers

    A zero clipping or target range yields all zeros.  The inverse is
    :func:`dequantize`.
    """
    if not values:
        return []
    if clipping_range == 0 or target_range == 0:
        return [0] * len(values)

    quantizer = target_range / (2.0 * clipping_range)
    pre_quantized = [
        (max(-clipping_range, min(clipping_range, v)) + clipping_range) * quantizer
        for v in values
    ]
    # Guard against float overshoot at the top of the range.
    return [min(q, target_range) for q in _stochastic_round(pre_quantized, rng)]


def dequantize(
    quantized: Sequence[int],
    clipping_range: float,
    target_range: int,
) -> List[float]:
    """Reverse :func:`quantize` -- map integers back to floats in
    ``[-clipping_range, +clipping_range]``.
    """
    if not quantized:
        return []
    if clipping_range == 0 or target_range == 0:
        return [0.0] * len(quantized)

    scale = (2.0 * clipping_range) / target_range
    shift = -clipping_range
    return [q * scale + shift for q in quantized]


def quantized_to_bytes(quantized: Sequence[int]) -> bytes:
    """Pack quantized integers as the big-endian uint32 raw-update layout."""
    return int_elements_to_bytes(quantized)


def bytes_to_quantized(data: bytes, count: Optional[int] = None) -> List[int]:
    """Unpack a (masked or unmasked) uint32 update, keeping the first *count* elements."""
    elements = bytes_to_int_elements(data)
    return elements if count is None else elements[:count]
