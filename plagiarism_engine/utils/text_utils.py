import hashlib
import re
from typing import List, Optional, Tuple

from nltk.tokenize import RegexpTokenizer

from plagiarism_engine.models.documents import NormalizedDoc, Span

# Word runs, or runs of sentence terminators. Everything else is dropped.
_TOKENIZER = RegexpTokenizer(r"\w+|[.!?]+")
_TERMINATOR = re.compile(r"[.!?]+")


def normalize(raw_text: str) -> NormalizedDoc:
    """
    Lower-case and tokenize ``raw_text`` into words and sentences.

    Every word keeps its span in the original text so later stages can
    report offsets that highlight the submission as the student wrote it.
    Punctuation other than ``.``, ``!`` and ``?`` is discarded; a run of
    terminators closes the current sentence. Words after the last
    terminator form a final sentence.
    """
    raw_text = raw_text or ""
    words: List[str] = []
    spans: List[Span] = []
    bounds: List[Tuple[int, int]] = []
    sentence_start = 0

    for start, end in _TOKENIZER.span_tokenize(raw_text):
        token = raw_text[start:end]
        if _TERMINATOR.fullmatch(token):
            if len(words) > sentence_start:
                bounds.append((sentence_start, len(words)))
                sentence_start = len(words)
            continue
        words.append(token.lower())
        spans.append((start, end))

    if len(words) > sentence_start:
        bounds.append((sentence_start, len(words)))

    return NormalizedDoc(
        raw_text=raw_text,
        words=tuple(words),
        word_spans=tuple(spans),
        sentence_bounds=tuple(bounds),
    )


def tokenize_words(text: str) -> Tuple[str, ...]:
    return normalize(text).words


def content_hash(doc: NormalizedDoc) -> str:
    """SHA-256 of the normalized text; equal for texts that differ only in case/punctuation."""
    return hashlib.sha256(doc.text.encode("utf-8")).hexdigest()


def find_phrase(words: Tuple[str, ...], phrase: Tuple[str, ...], start: int = 0, end: Optional[int] = None) -> List[int]:
    """Word indices in ``words[start:end]`` where ``phrase`` begins."""
    if end is None:
        end = len(words)
    n = len(phrase)
    if n == 0:
        return []
    hits = []
    for i in range(start, end - n + 1):
        if words[i:i + n] == phrase:
            hits.append(i)
    return hits
