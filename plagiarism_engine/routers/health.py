from fastapi import APIRouter, Request

from plagiarism_engine.config import MONGODB_URI

router = APIRouter()


@router.get("/")
async def health_check(request: Request):
    coordinator = getattr(request.app.state, "coordinator", None)
    return {
        "status": "ok" if coordinator is not None else "starting",
        "mongodb_uri_present": bool(MONGODB_URI),
        "corpus_size": len(coordinator.index) if coordinator is not None else 0,
        "queue_depth": coordinator.queue_depth if coordinator is not None else 0,
    }
