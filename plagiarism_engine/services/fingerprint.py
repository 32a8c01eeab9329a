import hashlib
from functools import lru_cache
from typing import Iterator, Set, Tuple

import numpy as np

from plagiarism_engine.config import BAND_WIDTH, MINHASH_SEED, NUM_HASHES, SHINGLE_SIZE
from plagiarism_engine.models.documents import NormalizedDoc, Sketch

# Universal hashing modulo a Mersenne prime; a * x stays below 2**62 so uint64 never overflows.
PRIME = (1 << 31) - 1
MAX_HASH = PRIME  # sentinel: larger than any reduced hash value
_CHUNK = 4096


def shingles(doc: NormalizedDoc, k: int = SHINGLE_SIZE) -> Set[Tuple[str, ...]]:
    """Distinct k-word windows. Documents shorter than k words are a single shingle."""
    words = doc.words
    if not words:
        return set()
    if len(words) < k:
        return {tuple(words)}
    return {tuple(words[i:i + k]) for i in range(len(words) - k + 1)}


def _hash_shingle(shingle: Tuple[str, ...]) -> int:
    digest = hashlib.blake2b(" ".join(shingle).encode("utf-8"), digest_size=4).digest()
    return int.from_bytes(digest, "big", signed=False) % PRIME


@lru_cache(maxsize=16)
def _coefficients(num_hashes: int, seed: int) -> Tuple[np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    a = rng.integers(1, PRIME, size=num_hashes, dtype=np.uint64)
    b = rng.integers(0, PRIME, size=num_hashes, dtype=np.uint64)
    return a, b


def fingerprint(
    doc: NormalizedDoc,
    k: int = SHINGLE_SIZE,
    num_hashes: int = NUM_HASHES,
    seed: int = MINHASH_SEED,
) -> Sketch:
    """
    Min-hash signature of the document's shingle set.

    Position i holds min over shingles of h_i(shingle), where
    h_i(x) = (a_i * x + b_i) mod PRIME. Two sketches agree at a position
    with probability equal to the Jaccard similarity of the shingle sets.
    """
    if num_hashes <= 0:
        raise ValueError("num_hashes must be positive")
    grams = shingles(doc, k)
    if not grams:
        return empty_sketch(num_hashes)

    a, b = _coefficients(num_hashes, seed)
    values = np.fromiter((_hash_shingle(g) for g in grams), dtype=np.uint64, count=len(grams))
    signature = np.full(num_hashes, MAX_HASH, dtype=np.uint64)
    for i in range(0, len(values), _CHUNK):
        chunk = values[i:i + _CHUNK]
        hashed = (a[:, None] * chunk[None, :] + b[:, None]) % np.uint64(PRIME)
        np.minimum(signature, hashed.min(axis=1), out=signature)
    return tuple(int(v) for v in signature)


def empty_sketch(num_hashes: int = NUM_HASHES) -> Sketch:
    return (MAX_HASH,) * num_hashes


def is_empty_sketch(sketch: Sketch) -> bool:
    return all(v == MAX_HASH for v in sketch)


def estimate_similarity(a: Sketch, b: Sketch) -> float:
    """Estimated Jaccard similarity in [0, 1]: share of agreeing signature positions."""
    if len(a) != len(b) or not a:
        return 0.0
    if is_empty_sketch(a) or is_empty_sketch(b):
        return 0.0
    matches = sum(1 for x, y in zip(a, b) if x == y)
    return matches / len(a)


def bands(sketch: Sketch, width: int = BAND_WIDTH) -> Iterator[Tuple[int, Tuple[int, ...]]]:
    """(band number, band values) for each contiguous slice; a short tail forms its own band."""
    if width <= 0:
        raise ValueError("band width must be positive")
    for n, start in enumerate(range(0, len(sketch), width)):
        yield n, tuple(sketch[start:start + width])
