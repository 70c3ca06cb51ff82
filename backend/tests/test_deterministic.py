from __future__ import annotations

from inspection_core.deterministic import deterministic_random, djb2_hash, rotation_seed


def test_djb2_known_values() -> None:
    assert djb2_hash("") == 5381
    assert djb2_hash("a") == 177670
    assert djb2_hash("ab") == 177670 * 33 + 98


def test_djb2_wraps_to_32_bits() -> None:
    value = djb2_hash("2026-03-16-D-12" * 8)
    assert 0 <= value <= 0xFFFFFFFF


def test_djb2_hashes_utf16_code_units() -> None:
    assert djb2_hash("周") == (5381 * 33 + ord("周")) & 0xFFFFFFFF
    # a character outside the BMP contributes its two surrogate halves
    assert djb2_hash("\U0001F600") == ((5381 * 33 + 0xD83D) * 33 + 0xDE00) & 0xFFFFFFFF


def test_deterministic_random_is_stable_and_bounded() -> None:
    seeds = [rotation_seed(f"2026-03-{day:02d}", code) for day in range(2, 21) for code in ("D-2", "D-3", "D-4")]
    values = [deterministic_random(seed) for seed in seeds]

    assert values == [deterministic_random(seed) for seed in seeds]
    assert all(0.0 <= value < 1.0 for value in values)
    assert len(set(values)) > len(values) // 2


def test_rotation_seed_format() -> None:
    assert rotation_seed("2026-03-16", "D-3") == "2026-03-16-D-3"
