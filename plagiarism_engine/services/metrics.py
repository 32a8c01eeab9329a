import re
from datetime import datetime, timezone

from nltk import FreqDist

from plagiarism_engine.models.documents import NormalizedDoc
from plagiarism_engine.models.schemas import AnalysisResult

_VOWEL_GROUP = re.compile(r"[aeiouy]+")


def count_syllables(word: str) -> int:
    """Vowel-group approximation; every word has at least one syllable."""
    return max(1, len(_VOWEL_GROUP.findall(word.lower())))


def flesch_reading_ease(words, sentence_count: int) -> float:
    if not words or sentence_count == 0:
        return 0.0
    words_per_sentence = len(words) / sentence_count
    syllables_per_word = sum(count_syllables(w) for w in words) / len(words)
    return 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word


def analyze(doc: NormalizedDoc) -> AnalysisResult:
    """Objective text statistics. An empty document gives all-zero metrics."""
    now = datetime.now(timezone.utc)
    words = doc.words
    if not words:
        return AnalysisResult(text_length=len(doc.raw_text), processed_at=now)

    vocabulary = FreqDist(words)
    sentence_count = len(doc.sentence_bounds)
    return AnalysisResult(
        text_length=len(doc.raw_text),
        word_count=len(words),
        unique_words=vocabulary.B(),
        average_word_length=round(sum(len(w) for w in words) / len(words), 2),
        sentence_count=sentence_count,
        average_sentence_length=round(len(words) / sentence_count, 2),
        readability_score=round(flesch_reading_ease(words, sentence_count), 2),
        lexical_diversity=round(vocabulary.B() / len(words), 4),
        processed_at=now,
    )
