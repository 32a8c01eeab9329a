from typing import List, Optional

from plagiarism_engine.config import SCORE_MODE
from plagiarism_engine.models.documents import NormalizedDoc
from plagiarism_engine.models.schemas import (
    AnalysisResult,
    CheckStatus,
    MatchedSource,
    PlagiarismResult,
    SuspiciousPattern,
)
from plagiarism_engine.services.errors import InvariantViolation
from plagiarism_engine.services.similarity import overall_similarity


def _check_span(start: Optional[int], end: Optional[int], length: int, what: str) -> None:
    if start is None and end is None:
        return
    if start is None or end is None or not (0 <= start <= end <= length):
        raise InvariantViolation(f"{what} span ({start}, {end}) outside text of length {length}")


def assemble(
    submission_id: int,
    doc: NormalizedDoc,
    matches: List[MatchedSource],
    patterns: List[SuspiciousPattern],
    analysis: AnalysisResult,
    *,
    mode: str = SCORE_MODE,
) -> PlagiarismResult:
    """Merge stage outputs into the final report, refusing any out-of-bounds offset."""
    length = len(doc.raw_text)
    for m in matches:
        _check_span(m.start_index, m.end_index, length, f"match with {m.source_id}")
        if m.source_start_index is not None or m.source_end_index is not None:
            if m.source_length is None:
                raise InvariantViolation(f"source {m.source_id} span carries no source text length")
            _check_span(m.source_start_index, m.source_end_index, m.source_length, f"source {m.source_id}")
    for p in patterns:
        _check_span(p.start_index, p.end_index, length, f"{p.type.value} pattern")

    return PlagiarismResult(
        submission_id=submission_id,
        similarity_score=overall_similarity(matches, patterns, mode),
        matched_sources=list(matches),
        suspicious_patterns=list(patterns),
        analysis_results=analysis,
        status=CheckStatus.COMPLETED,
    )
