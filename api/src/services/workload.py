"""
Synthetic workload used by the load endpoint.

Two pieces of deliberately pointless work:
- a nested busy-wait loop whose cost grows with N*log2(N)
- a digit payload generator producing a fixed, deterministic byte string

Both functions are pure and share no state, so concurrent requests can run
them independently.
"""

import math

from shared.tracing import trace_function

DEFAULT_BURN_ITERATIONS = 10000
DEFAULT_PAYLOAD_LENGTH = 19999


def inner_bound(times: int) -> int:
    """
    Number of inner iterations executed per outer iteration.

    The base-2 logarithm of ``times`` truncated toward zero. Non-positive
    counts have no bound and yield 0.
    """
    if times <= 0:
        return 0
    return int(math.log2(times))


@trace_function("burn_cpu")
def burn_cpu(times: int = DEFAULT_BURN_ITERATIONS) -> None:
    """
    Consume CPU time proportional to times * log2(times).

    Runs ``inner_bound(times)`` empty iterations for each of ``times`` outer
    iterations. Produces nothing; the only observable effect is elapsed time.

    Args:
        times: Outer iteration count
    """
    inner = inner_bound(times)
    for _ in range(times):
        for _ in range(inner):
            pass


@trace_function("generate_payload")
def generate_payload(length: int = DEFAULT_PAYLOAD_LENGTH) -> bytes:
    """
    Build the digit payload returned by the load endpoint.

    Byte ``i`` (counting from 1) is the ASCII digit of ``i % 10``, so the
    payload reads ``1234567890123...``.

    Args:
        length: Number of bytes to produce

    Returns:
        Freshly built payload
    """
    buffer = bytearray()
    for i in range(1, length + 1):
        buffer.append(ord("0") + i % 10)
    return bytes(buffer)
