import logging
import threading
from collections import Counter
from typing import Dict, List, Optional, Set, Tuple

from plagiarism_engine.config import BAND_WIDTH, CORPUS_SCOPE
from plagiarism_engine.models.documents import CorpusEntry, Sketch
from plagiarism_engine.models.schemas import Scope
from plagiarism_engine.services.errors import CorpusUnavailableError
from plagiarism_engine.services.fingerprint import bands, is_empty_sketch

logger = logging.getLogger(__name__)

BandKey = Tuple[str, int, Tuple[int, ...]]  # (scope key, band number, band values)


def scope_key(scope: Scope, mode: str = CORPUS_SCOPE) -> str:
    """Corpus partition a submission is compared within."""
    if mode == "assignment" and scope.assignment_id is not None:
        return f"assignment:{scope.assignment_id}"
    if mode in ("assignment", "course") and scope.course_id is not None:
        return f"course:{scope.course_id}"
    if mode not in ("assignment", "course", "global"):
        raise ValueError(f"unknown corpus scope {mode!r}")
    return "global"


class CorpusIndex:
    """
    In-memory LSH index over min-hash sketches.

    Each sketch is cut into bands of ``band_width`` values; submissions
    that share a band within the same scope become candidates for each
    other. Postings lists only ever grow. An entry becomes visible to
    readers when it is published into ``_entries`` after its postings are
    written, and candidates are checked against the published entry, so a
    reader sees either the old or the new state of a submission and stale
    postings left by a rebuilt entry are ignored.

    Writers are serialized per submission id; readers take no locks.
    """

    def __init__(self, band_width: int = BAND_WIDTH) -> None:
        self.band_width = int(band_width)
        self._entries: Dict[int, CorpusEntry] = {}
        self._postings: Dict[BandKey, List[int]] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._doc_freq: Dict[str, Counter] = {}
        self._doc_count: Counter = Counter()
        self._stats_lock = threading.Lock()
        self._closed = False

    # ---- Write ----
    def index(self, entry: CorpusEntry) -> bool:
        """Add or rebuild an entry. Returns False when the same content is already indexed."""
        self._check_open()
        if entry.doc.is_empty or is_empty_sketch(entry.sketch):
            logger.info("Skipping corpus entry for submission %s: no words", entry.submission_id)
            return False

        with self._lock_for(entry.submission_id):
            current = self._entries.get(entry.submission_id)
            if (
                current is not None
                and current.active
                and current.content_hash == entry.content_hash
                and current.scope_key == entry.scope_key
                and current.sketch == entry.sketch
            ):
                return False

            for n, band in bands(entry.sketch, self.band_width):
                self._postings.setdefault((entry.scope_key, n, band), []).append(entry.submission_id)
            self._move_stats(current, entry)
            self._entries[entry.submission_id] = entry

        if current is None:
            logger.info("Indexed submission %s in %s", entry.submission_id, entry.scope_key)
        else:
            logger.info("Rebuilt corpus entry for submission %s", entry.submission_id)
        return True

    def withdraw(self, submission_id: int) -> bool:
        """Deactivate a submission; it stops being a candidate and leaves the word statistics."""
        self._check_open()
        with self._lock_for(submission_id):
            current = self._entries.get(submission_id)
            if current is None or not current.active:
                return False
            replacement = CorpusEntry(
                submission_id=current.submission_id,
                scope_key=current.scope_key,
                doc=current.doc,
                sketch=current.sketch,
                content_hash=current.content_hash,
                source=current.source,
                active=False,
            )
            self._move_stats(current, replacement)
            self._entries[submission_id] = replacement
        logger.info("Withdrew submission %s from the corpus", submission_id)
        return True

    # ---- Read ----
    def candidates(self, sketch: Sketch, scope: str) -> List[int]:
        """Submission ids sharing at least one band with ``sketch`` inside ``scope``, ascending."""
        self._check_open()
        if not sketch or is_empty_sketch(sketch):
            return []

        query_bands = list(bands(sketch, self.band_width))
        hits: Set[int] = set()
        for n, band in query_bands:
            hits.update(tuple(self._postings.get((scope, n, band), ())))

        found = []
        for sid in hits:
            entry = self._entries.get(sid)
            if entry is None or not entry.active or entry.scope_key != scope:
                continue
            entry_bands = dict(bands(entry.sketch, self.band_width))
            if any(entry_bands.get(n) == band for n, band in query_bands):
                found.append(sid)
        return sorted(found)

    def get(self, submission_id: int) -> Optional[CorpusEntry]:
        self._check_open()
        return self._entries.get(submission_id)

    def size(self, scope: str) -> int:
        return self._doc_count.get(scope, 0)

    def document_frequency(self, word: str, scope: str) -> int:
        self._check_open()
        counts = self._doc_freq.get(scope)
        return counts.get(word, 0) if counts else 0

    def __len__(self) -> int:
        return sum(1 for e in list(self._entries.values()) if e.active)

    def close(self) -> None:
        self._closed = True

    # ---- internals ----
    def _check_open(self) -> None:
        if self._closed:
            raise CorpusUnavailableError("corpus index is closed")

    def _lock_for(self, submission_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(submission_id)
            if lock is None:
                lock = self._locks[submission_id] = threading.Lock()
            return lock

    def _move_stats(self, old: Optional[CorpusEntry], new: CorpusEntry) -> None:
        with self._stats_lock:
            if old is not None and old.active:
                self._doc_count[old.scope_key] -= 1
                counts = self._doc_freq.setdefault(old.scope_key, Counter())
                counts.subtract(set(old.doc.words))
                counts += Counter()  # drop non-positive counts
            if new.active:
                self._doc_count[new.scope_key] += 1
                self._doc_freq.setdefault(new.scope_key, Counter()).update(set(new.doc.words))
