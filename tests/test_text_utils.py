import pytest

from plagiarism_engine.utils.text_utils import content_hash, find_phrase, normalize, tokenize_words
from tests.sample_texts import ESSAY, FOX


def test_fox_sentence_counts():
    doc = normalize(FOX)
    assert len(doc.words) == 9
    assert len(doc.sentences) == 1
    assert doc.words[0] == "the"


def test_lowercases_and_strips_punctuation():
    doc = normalize("Hello, World!  How   are you?")
    assert doc.words == ("hello", "world", "how", "are", "you")
    assert doc.sentences == (("hello", "world"), ("how", "are", "you"))


def test_trailing_words_without_terminator_form_a_sentence():
    doc = normalize("First sentence here. and then some more")
    assert doc.sentences == (("first", "sentence", "here"), ("and", "then", "some", "more"))


def test_terminator_runs_do_not_make_empty_sentences():
    doc = normalize("Really?!... Yes!!! ...")
    assert doc.sentences == (("really",), ("yes",))


def test_word_spans_point_into_raw_text():
    text = "  Mixed CASE, words; and \"quotes\"."
    doc = normalize(text)
    for word, (start, end) in zip(doc.words, doc.word_spans):
        assert text[start:end].lower() == word


def test_sentence_span_covers_sentence_words():
    doc = normalize("One two three. Four five six!")
    start, end = doc.sentence_span(1)
    assert doc.raw_text[start:end] == "Four five six"


@pytest.mark.parametrize("text", ["", "   \n\t  ", "...!?"])
def test_empty_input_yields_empty_doc(text):
    doc = normalize(text)
    assert doc.is_empty
    assert doc.words == ()
    assert doc.sentences == ()
    assert doc.text == ""


@pytest.mark.parametrize("text", [FOX, ESSAY, "Hello, World!  How   are you?", "no terminator at all", ""])
def test_normalize_is_idempotent(text):
    once = normalize(text)
    twice = normalize(once.text)
    assert twice.words == once.words
    assert twice.sentences == once.sentences


def test_content_hash_ignores_case_and_punctuation():
    assert content_hash(normalize("Hello world.")) == content_hash(normalize("hello, WORLD!"))
    assert content_hash(normalize("Hello world.")) != content_hash(normalize("Hello there."))


def test_find_phrase_respects_bounds():
    words = tokenize_words("in conclusion we win. in conclusion again")
    phrase = tokenize_words("in conclusion")
    assert find_phrase(words, phrase) == [0, 4]
    assert find_phrase(words, phrase, 0, 4) == [0]
    assert find_phrase(words, ()) == []
