"""Seeded pseudo-random values for reproducible rotation.

``deterministic_random`` is a contract, not an implementation detail: the same
seed string always maps to the same value in ``[0, 1)`` on every platform and
interpreter run (unlike ``hash()``, which is salted per process).
"""

from __future__ import annotations

_DJB2_SEED = 5381
_MASK_32 = 0xFFFFFFFF
_SCALE = float(1 << 32)


def djb2_hash(seed: str) -> int:
    """32-bit unsigned DJB2 over the UTF-16 code units of ``seed``."""
    value = _DJB2_SEED
    encoded = seed.encode("utf-16-le")
    for index in range(0, len(encoded), 2):
        unit = encoded[index] | (encoded[index + 1] << 8)
        value = ((value << 5) + value + unit) & _MASK_32
    return value


def deterministic_random(seed: str) -> float:
    return djb2_hash(seed) / _SCALE


def rotation_seed(target_date: object, code: str) -> str:
    return f"{target_date}-{code}"


__all__ = ["deterministic_random", "djb2_hash", "rotation_seed"]
