import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from plagiarism_engine.models.schemas import CheckStatus, PlagiarismCheck
from plagiarism_engine.services.errors import JobStoreError

logger = logging.getLogger(__name__)


def _same_attempt(current: Optional[PlagiarismCheck], expected: Optional[PlagiarismCheck]) -> bool:
    if expected is None:
        return current is None
    return (
        current is not None
        and current.status == expected.status
        and current.attempt_id == expected.attempt_id
    )


class JobStore(ABC):
    """
    Persistence for check records, one per submission id.

    ``compare_and_set`` is the only write: it replaces the record only if
    the stored one still has the status and attempt id of ``expected``
    (or, with ``expected=None``, if there is no record yet). Every state
    transition goes through it, which totally orders the transitions of a
    submission.
    """

    @abstractmethod
    async def get(self, submission_id: int) -> Optional[PlagiarismCheck]: ...

    @abstractmethod
    async def compare_and_set(
        self,
        submission_id: int,
        expected: Optional[PlagiarismCheck],
        new: PlagiarismCheck,
    ) -> bool: ...

    @abstractmethod
    async def list(
        self,
        course_id: Optional[int] = None,
        assignment_id: Optional[int] = None,
        statuses: Optional[Iterable[CheckStatus]] = None,
    ) -> List[PlagiarismCheck]: ...

    async def close(self) -> None:
        return None


class InMemoryJobStore(JobStore):
    """Dict-backed store. Operations never await, so each runs atomically on the event loop."""

    def __init__(self) -> None:
        self._jobs: Dict[int, PlagiarismCheck] = {}

    async def get(self, submission_id: int) -> Optional[PlagiarismCheck]:
        job = self._jobs.get(submission_id)
        return job.model_copy(deep=True) if job is not None else None

    async def compare_and_set(self, submission_id, expected, new) -> bool:
        if not _same_attempt(self._jobs.get(submission_id), expected):
            logger.debug("Rejected write for submission %s: record changed since it was read", submission_id)
            return False
        self._jobs[submission_id] = new.model_copy(deep=True)
        return True

    async def list(self, course_id=None, assignment_id=None, statuses=None) -> List[PlagiarismCheck]:
        wanted = set(statuses) if statuses is not None else None
        out = []
        for sid in sorted(self._jobs):
            job = self._jobs[sid]
            if course_id is not None and job.scope.course_id != course_id:
                continue
            if assignment_id is not None and job.scope.assignment_id != assignment_id:
                continue
            if wanted is not None and job.status not in wanted:
                continue
            out.append(job.model_copy(deep=True))
        return out


def _to_document(check: PlagiarismCheck) -> dict:
    doc = check.model_dump(mode="json")
    # excluded from API output, but needed to resume the job
    doc["text"] = check.text
    doc["source"] = check.source.model_dump(mode="json")
    doc["_id"] = check.submission_id
    return doc


def _from_document(doc: dict) -> PlagiarismCheck:
    doc = dict(doc)
    doc.pop("_id", None)
    return PlagiarismCheck.model_validate(doc)


class MongoJobStore(JobStore):
    """
    MongoDB-backed store (motor). The submission id is the document ``_id``,
    so inserting a second record for it fails; replacements are filtered on
    status and attempt id, which makes them a compare-and-set.
    """

    def __init__(self, client: AsyncIOMotorClient, database: str, collection: str = "plagiarism_checks") -> None:
        self._client = client
        self._collection: AsyncIOMotorCollection = client[database][collection]

    @classmethod
    def from_uri(cls, uri: str, database: str) -> "MongoJobStore":
        return cls(AsyncIOMotorClient(uri), database)

    async def get(self, submission_id: int) -> Optional[PlagiarismCheck]:
        try:
            doc = await self._collection.find_one({"_id": submission_id})
        except PyMongoError as e:
            raise JobStoreError(f"job store unavailable: {e}") from e
        return _from_document(doc) if doc else None

    async def compare_and_set(self, submission_id, expected, new) -> bool:
        document = _to_document(new)
        try:
            if expected is None:
                try:
                    await self._collection.insert_one(document)
                except DuplicateKeyError:
                    logger.debug("Rejected insert for submission %s: record already exists", submission_id)
                    return False
                return True
            replaced = await self._collection.find_one_and_replace(
                {
                    "_id": submission_id,
                    "status": expected.status.value,
                    "attempt_id": expected.attempt_id,
                },
                document,
            )
        except PyMongoError as e:
            raise JobStoreError(f"job store unavailable: {e}") from e
        if replaced is None:
            logger.debug("Rejected write for submission %s: record changed since it was read", submission_id)
            return False
        return True

    async def list(self, course_id=None, assignment_id=None, statuses=None) -> List[PlagiarismCheck]:
        query: dict = {}
        if course_id is not None:
            query["scope.course_id"] = course_id
        if assignment_id is not None:
            query["scope.assignment_id"] = assignment_id
        if statuses is not None:
            query["status"] = {"$in": [CheckStatus(s).value for s in statuses]}
        try:
            cursor = self._collection.find(query).sort("_id", 1)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise JobStoreError(f"job store unavailable: {e}") from e
        return [_from_document(d) for d in docs]

    async def close(self) -> None:
        self._client.close()
