import pytest

from plagiarism_engine.services.fingerprint import (
    MAX_HASH,
    bands,
    estimate_similarity,
    fingerprint,
    is_empty_sketch,
    shingles,
)
from plagiarism_engine.utils.text_utils import normalize
from tests.sample_texts import ESSAY, FOX, OTHER_ESSAY, numbered_text


def test_fingerprint_is_deterministic():
    first = fingerprint(normalize(ESSAY))
    second = fingerprint(normalize(ESSAY))
    assert first == second
    assert len(first) == 64
    assert all(0 <= v < MAX_HASH for v in first)


def test_fingerprint_ignores_case_and_punctuation():
    assert fingerprint(normalize(ESSAY)) == fingerprint(normalize(ESSAY.upper().replace(",", "")))


def test_sketch_size_follows_num_hashes():
    assert len(fingerprint(normalize(ESSAY), num_hashes=128)) == 128


def test_short_document_is_one_shingle():
    doc = normalize("Too short.")
    assert shingles(doc, k=5) == {("too", "short")}
    assert not is_empty_sketch(fingerprint(doc))


def test_shingles_slide_over_words():
    doc = normalize("a b c d e f")
    assert shingles(doc, k=5) == {("a", "b", "c", "d", "e"), ("b", "c", "d", "e", "f")}


def test_empty_document_gets_empty_sketch():
    sketch = fingerprint(normalize("   "))
    assert is_empty_sketch(sketch)
    assert estimate_similarity(sketch, sketch) == 0.0


def test_identical_documents_estimate_one():
    sketch = fingerprint(normalize(FOX))
    assert estimate_similarity(sketch, sketch) == 1.0


def test_estimate_tracks_overlap():
    base = numbered_text(200)
    near = base.replace("word199", "different")
    unrelated = numbered_text(200, prefix="term")
    a = fingerprint(normalize(base))
    assert estimate_similarity(a, fingerprint(normalize(near))) > 0.7
    assert estimate_similarity(a, fingerprint(normalize(unrelated))) < 0.1
    assert estimate_similarity(a, fingerprint(normalize(OTHER_ESSAY))) < 0.1


def test_mismatched_sketch_lengths_do_not_compare():
    doc = normalize(ESSAY)
    assert estimate_similarity(fingerprint(doc, num_hashes=32), fingerprint(doc)) == 0.0


def test_bands_partition_the_sketch():
    sketch = fingerprint(normalize(ESSAY))
    parts = list(bands(sketch, 4))
    assert len(parts) == 16
    assert [n for n, _ in parts] == list(range(16))
    assert sum((band for _, band in parts), ()) == sketch


def test_bands_reject_non_positive_width():
    with pytest.raises(ValueError):
        list(bands((1, 2, 3), 0))
