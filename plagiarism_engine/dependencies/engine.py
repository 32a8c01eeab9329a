from fastapi import HTTPException, Request

from plagiarism_engine.services.coordinator import JobCoordinator


async def get_coordinator(request: Request) -> JobCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Plagiarism engine is not running")
    return coordinator
