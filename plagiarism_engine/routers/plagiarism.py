from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from plagiarism_engine.dependencies.engine import get_coordinator
from plagiarism_engine.models.schemas import (
    CheckRequest,
    Message,
    PlagiarismCheck,
    Scope,
    SourceMetadata,
)
from plagiarism_engine.services.coordinator import JobCoordinator
from plagiarism_engine.services.errors import PlagiarismEngineError

router = APIRouter()


@router.post("/plagiarism/checks", response_model=PlagiarismCheck, status_code=202)
async def request_check(
    body: CheckRequest,
    coordinator: JobCoordinator = Depends(get_coordinator),
):
    """
    Queue a plagiarism check for a submission, or return the one already
    pending/processing. Poll the GET endpoint for the report.
    """
    return await coordinator.request_check(
        body.submission_id,
        body.text,
        Scope(course_id=body.course_id, assignment_id=body.assignment_id),
        requested_by=body.requested_by,
        source=SourceMetadata(
            student_id=body.student_id,
            course_name=body.course_name,
            assignment_title=body.assignment_title,
            submission_date=body.submission_date,
        ),
    )


@router.get("/plagiarism/checks/{submission_id}", response_model=PlagiarismCheck)
async def get_result(
    submission_id: int,
    coordinator: JobCoordinator = Depends(get_coordinator),
):
    check = await coordinator.get_result(submission_id)
    if check is None:
        raise HTTPException(status_code=404, detail="No plagiarism check for this submission.")
    return check


@router.get("/plagiarism/checks", response_model=List[PlagiarismCheck])
async def list_checks(
    course_id: Optional[int] = None,
    assignment_id: Optional[int] = None,
    coordinator: JobCoordinator = Depends(get_coordinator),
):
    """Per-submission records for a course or assignment; aggregation is up to the caller."""
    return await coordinator.list_checks(Scope(course_id=course_id, assignment_id=assignment_id))


@router.delete("/plagiarism/corpus/{submission_id}", response_model=Message)
async def withdraw_submission(
    submission_id: int,
    coordinator: JobCoordinator = Depends(get_coordinator),
):
    try:
        removed = await coordinator.withdraw_submission(submission_id)
    except PlagiarismEngineError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail="Submission is not in the comparison corpus.")
    return {"message": f"Submission {submission_id} withdrawn from comparisons."}
