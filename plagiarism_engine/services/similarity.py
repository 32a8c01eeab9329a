import logging
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Sequence

from plagiarism_engine.config import EXCLUDE_SAME_STUDENT, SCORE_MODE, SIMILARITY_THRESHOLD
from plagiarism_engine.models.documents import NormalizedDoc, Sketch
from plagiarism_engine.models.schemas import MatchedSource, SuspiciousPattern
from plagiarism_engine.services.corpus_index import CorpusIndex
from plagiarism_engine.services.fingerprint import estimate_similarity

logger = logging.getLogger(__name__)

TOP_SOURCES_WEIGHTED = 3
SOURCE_WEIGHT = 0.6
PATTERN_WEIGHT = 0.4


def longest_common_run(a: Sequence[str], b: Sequence[str]):
    """(start in a, start in b, length) of the longest common contiguous word run."""
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    match = matcher.find_longest_match(0, len(a), 0, len(b))
    return match.a, match.b, match.size


def score(
    target_doc: NormalizedDoc,
    target_sketch: Sketch,
    candidate_ids: Iterable[int],
    index: CorpusIndex,
    target_id: Optional[int] = None,
    *,
    threshold: float = SIMILARITY_THRESHOLD,
    student_id: Optional[str] = None,
    exclude_same_student: bool = EXCLUDE_SAME_STUDENT,
) -> List[MatchedSource]:
    """
    Estimate similarity to each candidate and report those at or above
    ``threshold`` percent, most similar first (ties by ascending id).
    """
    matches: List[MatchedSource] = []
    scored = 0
    for cid in candidate_ids:
        if target_id is not None and cid == target_id:
            continue
        entry = index.get(cid)
        if entry is None or not entry.active:
            continue
        if exclude_same_student and student_id and entry.source.student_id == student_id:
            continue

        scored += 1
        similarity = round(estimate_similarity(target_sketch, entry.sketch) * 100, 2)
        if similarity < threshold:
            continue

        spans = {}
        i, j, size = longest_common_run(target_doc.words, entry.doc.words)
        if size > 0:
            start, end = target_doc.char_span(i, i + size)
            src_start, src_end = entry.doc.char_span(j, j + size)
            spans = dict(
                matched_text=target_doc.raw_text[start:end],
                source_text=entry.doc.raw_text[src_start:src_end],
                start_index=start,
                end_index=end,
                source_start_index=src_start,
                source_end_index=src_end,
                source_length=len(entry.doc.raw_text),
            )
        matches.append(MatchedSource(
            source_id=cid,
            similarity=similarity,
            matched_text=spans.pop("matched_text", ""),
            source_text=spans.pop("source_text", ""),
            student_id=entry.source.student_id,
            course_name=entry.source.course_name,
            assignment_title=entry.source.assignment_title,
            submission_date=entry.source.submission_date,
            **spans,
        ))

    matches.sort(key=lambda m: (-m.similarity, m.source_id))
    logger.debug("Scored %d candidates, %d above %.1f%%", scored, len(matches), threshold)
    return matches


def overall_similarity(
    matches: Sequence[MatchedSource],
    patterns: Sequence[SuspiciousPattern] = (),
    mode: str = SCORE_MODE,
) -> float:
    """
    ``max``: highest reported source similarity, 0 with no sources.
    ``weighted``: mean of the top three sources weighted 0.6 plus mean
    pattern confidence (as a percentage) weighted 0.4, capped at 100.
    """
    if mode == "max":
        return max((m.similarity for m in matches), default=0.0)
    if mode != "weighted":
        raise ValueError(f"unknown score mode {mode!r}")

    total = 0.0
    if matches:
        top = sorted((m.similarity for m in matches), reverse=True)[:TOP_SOURCES_WEIGHTED]
        total += sum(top) / len(top) * SOURCE_WEIGHT
    if patterns:
        total += sum(p.confidence for p in patterns) / len(patterns) * 100 * PATTERN_WEIGHT
    return round(min(total, 100.0), 2)
