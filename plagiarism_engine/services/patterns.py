import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from nltk import FreqDist

from plagiarism_engine import config
from plagiarism_engine.models.documents import NormalizedDoc
from plagiarism_engine.models.schemas import PatternKind, SuspiciousPattern
from plagiarism_engine.services.corpus_index import CorpusIndex
from plagiarism_engine.utils.text_utils import find_phrase, tokenize_words

logger = logging.getLogger(__name__)


@dataclass
class DetectorSettings:
    repetition_threshold: float = config.REPETITION_THRESHOLD
    min_sentence_words: int = config.MIN_SENTENCE_WORDS
    rarity_threshold: float = config.RARITY_THRESHOLD
    min_corpus_documents: int = config.MIN_CORPUS_DOCUMENTS
    long_word_length: int = config.LONG_WORD_LENGTH
    vocabulary_cluster_density: float = config.VOCABULARY_CLUSTER_DENSITY
    style_window: int = config.STYLE_WINDOW
    style_z_threshold: float = config.STYLE_Z_THRESHOLD
    common_phrases: Tuple[str, ...] = field(default_factory=lambda: tuple(config.COMMON_PHRASES))
    common_phrase_confidence: float = config.COMMON_PHRASE_CONFIDENCE
    min_confidence: float = config.MIN_PATTERN_CONFIDENCE


@dataclass
class DetectionContext:
    """What a detector may consult besides the document itself."""
    settings: DetectorSettings
    index: Optional[CorpusIndex] = None
    scope_key: str = "global"
    exclude_id: Optional[int] = None


def _pattern(kind: PatternKind, doc: NormalizedDoc, span, confidence: float, description: str) -> SuspiciousPattern:
    start, end = span
    return SuspiciousPattern(
        type=kind,
        confidence=round(max(0.0, min(1.0, float(confidence))), 4),
        description=description,
        text_segment=doc.raw_text[start:end],
        start_index=start,
        end_index=end,
    )


# ---- repetitive structure ----
def detect_repetitive_structure(doc: NormalizedDoc, ctx: DetectionContext) -> List[SuspiciousPattern]:
    """Later sentences that nearly duplicate an earlier one; confidence is the token similarity."""
    s = ctx.settings
    sentences = doc.sentences
    patterns = []
    for j in range(1, len(sentences)):
        if len(sentences[j]) < s.min_sentence_words:
            continue
        matcher = SequenceMatcher(None, autojunk=False)
        matcher.set_seq2(sentences[j])
        best_ratio, best_i = 0.0, None
        for i in range(j):
            if len(sentences[i]) < s.min_sentence_words:
                continue
            matcher.set_seq1(sentences[i])
            if matcher.real_quick_ratio() < s.repetition_threshold:
                continue
            if matcher.quick_ratio() < s.repetition_threshold:
                continue
            ratio = matcher.ratio()
            if ratio > best_ratio:
                best_ratio, best_i = ratio, i
        if best_i is not None and best_ratio >= s.repetition_threshold:
            patterns.append(_pattern(
                PatternKind.REPETITIVE_STRUCTURE,
                doc,
                doc.sentence_span(j),
                best_ratio,
                f"Sentence {j + 1} repeats sentence {best_i + 1} ({best_ratio:.0%} token overlap)",
            ))
    return patterns


# ---- unusual vocabulary ----
def _rare_word_test(ctx: DetectionContext) -> Tuple[Callable[[str], bool], str]:
    s = ctx.settings
    index = ctx.index
    documents = 0
    if index is not None:
        documents = index.size(ctx.scope_key)
        if ctx.exclude_id is not None:
            own = index.get(ctx.exclude_id)
            if own is not None and own.active and own.scope_key == ctx.scope_key:
                documents -= 1

    if index is None or documents < s.min_corpus_documents:
        return (lambda w: len(w) >= s.long_word_length), f"longer than {s.long_word_length - 1} letters"

    own_words = set()
    if ctx.exclude_id is not None:
        own = index.get(ctx.exclude_id)
        if own is not None and own.active and own.scope_key == ctx.scope_key:
            own_words = set(own.doc.words)

    def is_rare(word: str) -> bool:
        if word.isdigit():
            return False
        df = index.document_frequency(word, ctx.scope_key) - (1 if word in own_words else 0)
        return df / documents < s.rarity_threshold

    return is_rare, f"used by under {s.rarity_threshold:.0%} of {documents} submissions"


def detect_unusual_vocabulary(doc: NormalizedDoc, ctx: DetectionContext) -> List[SuspiciousPattern]:
    """Sentences dense with words the rest of the corpus rarely uses."""
    s = ctx.settings
    if doc.is_empty:
        return []
    is_rare, rule = _rare_word_test(ctx)
    patterns = []
    for j, sentence in enumerate(doc.sentences):
        if not sentence:
            continue
        rare = FreqDist(w for w in sentence if is_rare(w))
        count = rare.N()
        if count < 2:
            continue
        density = count / len(sentence)
        if density < s.vocabulary_cluster_density:
            continue
        shown = ", ".join(w for w, _ in rare.most_common(5))
        patterns.append(_pattern(
            PatternKind.UNUSUAL_VOCABULARY,
            doc,
            doc.sentence_span(j),
            2 * density,
            f"{count} of {len(sentence)} words {rule}: {shown}",
        ))
    return patterns


# ---- inconsistent style ----
def detect_inconsistent_style(doc: NormalizedDoc, ctx: DetectionContext) -> List[SuspiciousPattern]:
    """Sentences whose length departs sharply from the preceding ones (rolling z-score)."""
    s = ctx.settings
    lengths = np.array([len(x) for x in doc.sentences], dtype=float)
    if len(lengths) < s.style_window + 1:
        return []
    patterns = []
    for j in range(s.style_window, len(lengths)):
        window = lengths[j - s.style_window:j]
        mean = float(window.mean())
        std = max(float(window.std()), 1.0)
        z = abs(lengths[j] - mean) / std
        if z < s.style_z_threshold:
            continue
        patterns.append(_pattern(
            PatternKind.INCONSISTENT_STYLE,
            doc,
            doc.sentence_span(j),
            z / (2 * s.style_z_threshold),
            f"Sentence {j + 1} has {int(lengths[j])} words against a running average of {mean:.1f} (z={z:.1f})",
        ))
    return patterns


# ---- common phrases ----
def detect_common_phrases(doc: NormalizedDoc, ctx: DetectionContext) -> List[SuspiciousPattern]:
    """Exact occurrences of stock phrases, matched within a sentence."""
    s = ctx.settings
    phrases = [(p, tokenize_words(p)) for p in s.common_phrases]
    patterns = []
    for a, b in doc.sentence_bounds:
        for phrase, tokens in phrases:
            for i in find_phrase(doc.words, tokens, a, b):
                patterns.append(_pattern(
                    PatternKind.COMMON_PHRASES,
                    doc,
                    doc.char_span(i, i + len(tokens)),
                    s.common_phrase_confidence,
                    f"Common phrase: \"{phrase}\"",
                ))
    return patterns


DETECTORS: Dict[PatternKind, Callable[[NormalizedDoc, DetectionContext], List[SuspiciousPattern]]] = {
    PatternKind.REPETITIVE_STRUCTURE: detect_repetitive_structure,
    PatternKind.UNUSUAL_VOCABULARY: detect_unusual_vocabulary,
    PatternKind.INCONSISTENT_STYLE: detect_inconsistent_style,
    PatternKind.COMMON_PHRASES: detect_common_phrases,
}


class PatternDetector:
    """
    Runs every registered heuristic in turn. Each kind reports on its own,
    so overlapping spans from different kinds are all kept.
    """

    def __init__(
        self,
        settings: Optional[DetectorSettings] = None,
        index: Optional[CorpusIndex] = None,
        kinds: Optional[List[PatternKind]] = None,
    ) -> None:
        self.settings = settings or DetectorSettings()
        self.index = index
        self.kinds = list(kinds) if kinds is not None else list(DETECTORS)

    def detect(
        self,
        doc: NormalizedDoc,
        *,
        scope_key: str = "global",
        exclude_id: Optional[int] = None,
    ) -> List[SuspiciousPattern]:
        if doc.is_empty:
            return []
        ctx = DetectionContext(self.settings, self.index, scope_key, exclude_id)
        found: List[SuspiciousPattern] = []
        for kind in self.kinds:
            found.extend(DETECTORS[kind](doc, ctx))
        kept = [p for p in found if p.confidence >= self.settings.min_confidence]
        logger.debug("Pattern detection: %d found, %d kept", len(found), len(kept))
        return kept
