import logging
import time
from typing import Optional, Tuple

from plagiarism_engine import config
from plagiarism_engine.models.documents import CheckJob, CorpusEntry
from plagiarism_engine.models.schemas import PlagiarismResult
from plagiarism_engine.services.corpus_index import CorpusIndex
from plagiarism_engine.services.errors import JobTimeoutError
from plagiarism_engine.services.fingerprint import fingerprint
from plagiarism_engine.services.metrics import analyze
from plagiarism_engine.services.patterns import PatternDetector
from plagiarism_engine.services.report import assemble
from plagiarism_engine.services.similarity import score
from plagiarism_engine.utils.text_utils import content_hash, normalize

logger = logging.getLogger(__name__)


class CheckPipeline:
    """
    The synchronous body of one check: normalize, fingerprint, look up
    candidates, score, detect patterns, compute metrics, assemble.

    Runs inside a worker thread. ``deadline`` is a ``time.monotonic()``
    value; it is checked between stages so an overdue job stops early.
    Nothing is written to the corpus here; the caller publishes the
    returned entry once the check is recorded as completed.
    """

    def __init__(
        self,
        index: CorpusIndex,
        detector: Optional[PatternDetector] = None,
        *,
        shingle_size: int = config.SHINGLE_SIZE,
        num_hashes: int = config.NUM_HASHES,
        seed: int = config.MINHASH_SEED,
        threshold: float = config.SIMILARITY_THRESHOLD,
        score_mode: str = config.SCORE_MODE,
        exclude_same_student: bool = config.EXCLUDE_SAME_STUDENT,
    ) -> None:
        self.index = index
        self.detector = detector or PatternDetector(index=index)
        self.shingle_size = shingle_size
        self.num_hashes = num_hashes
        self.seed = seed
        self.threshold = threshold
        self.score_mode = score_mode
        self.exclude_same_student = exclude_same_student

    def run(self, job: CheckJob, deadline: Optional[float] = None) -> Tuple[PlagiarismResult, Optional[CorpusEntry]]:
        def checkpoint(stage: str) -> None:
            if deadline is not None and time.monotonic() > deadline:
                raise JobTimeoutError(f"check for submission {job.submission_id} exceeded its deadline during {stage}")

        doc = normalize(job.text)
        checkpoint("normalize")

        if doc.is_empty:
            logger.info("Submission %s has no words; reporting empty analysis", job.submission_id)
            result = assemble(job.submission_id, doc, [], [], analyze(doc), mode=self.score_mode)
            return result, None

        sketch = fingerprint(doc, k=self.shingle_size, num_hashes=self.num_hashes, seed=self.seed)
        checkpoint("fingerprint")

        # raises CorpusUnavailableError once the index is closed
        candidate_ids = self.index.candidates(sketch, job.scope_key)
        checkpoint("candidate lookup")

        matches = score(
            doc,
            sketch,
            candidate_ids,
            self.index,
            job.submission_id,
            threshold=self.threshold,
            student_id=job.source.student_id,
            exclude_same_student=self.exclude_same_student,
        )
        checkpoint("scoring")

        patterns = self.detector.detect(doc, scope_key=job.scope_key, exclude_id=job.submission_id)
        checkpoint("pattern detection")

        analysis = analyze(doc)
        result = assemble(job.submission_id, doc, matches, patterns, analysis, mode=self.score_mode)
        checkpoint("assembly")

        entry = CorpusEntry(
            submission_id=job.submission_id,
            scope_key=job.scope_key,
            doc=doc,
            sketch=sketch,
            content_hash=content_hash(doc),
            source=job.source,
        )
        logger.info(
            "Submission %s: %d candidates, %d matches, %d patterns, score %.1f",
            job.submission_id, len(candidate_ids), len(matches), len(patterns), result.similarity_score,
        )
        return result, entry
