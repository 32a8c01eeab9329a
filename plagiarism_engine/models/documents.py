from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple

from plagiarism_engine.models.schemas import SourceMetadata

Span = Tuple[int, int]          # [start, end) character offsets into raw_text
Sketch = Tuple[int, ...]        # min-hash signature


@dataclass(frozen=True)
class NormalizedDoc:
    raw_text: str
    words: Tuple[str, ...]                   # lower-cased word tokens
    word_spans: Tuple[Span, ...]             # word i -> span in raw_text
    sentence_bounds: Tuple[Tuple[int, int], ...]  # sentence j -> [first word, last word + 1)

    @property
    def sentences(self) -> Tuple[Tuple[str, ...], ...]:
        return tuple(self.words[a:b] for a, b in self.sentence_bounds)

    @property
    def text(self) -> str:
        """Canonical normalized rendering: one terminator per sentence."""
        return " ".join(" ".join(s) + "." for s in self.sentences)

    @property
    def is_empty(self) -> bool:
        return not self.words

    def char_span(self, first_word: int, last_word: int) -> Span:
        """Raw-text span covering words [first_word, last_word)."""
        return self.word_spans[first_word][0], self.word_spans[last_word - 1][1]

    def sentence_span(self, index: int) -> Span:
        a, b = self.sentence_bounds[index]
        return self.char_span(a, b)

    def excerpt(self, span: Span) -> str:
        return self.raw_text[span[0]:span[1]]


@dataclass(frozen=True)
class CorpusEntry:
    submission_id: int
    scope_key: str
    doc: NormalizedDoc
    sketch: Sketch
    content_hash: str
    source: SourceMetadata = field(default_factory=SourceMetadata)
    active: bool = True


@dataclass(frozen=True)
class CheckJob:
    """Unit of work handed to a worker."""
    submission_id: int
    attempt_id: str
    text: str
    scope_key: str
    source: SourceMetadata
