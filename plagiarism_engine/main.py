import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plagiarism_engine.config import CORS_ORIGINS, LOG_LEVEL, MONGODB_DATABASE, MONGODB_URI
from plagiarism_engine.routers.health import router as health_router
from plagiarism_engine.routers.plagiarism import router as plagiarism_router
from plagiarism_engine.services.coordinator import JobCoordinator
from plagiarism_engine.services.corpus_index import CorpusIndex
from plagiarism_engine.services.job_store import InMemoryJobStore, JobStore, MongoJobStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def build_store() -> JobStore:
    if MONGODB_URI:
        logger.info("Storing plagiarism checks in MongoDB database %s", MONGODB_DATABASE)
        return MongoJobStore.from_uri(MONGODB_URI, MONGODB_DATABASE)
    logger.warning("MONGODB_URI not set; plagiarism checks are kept in memory only.")
    return InMemoryJobStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = build_store()
    index = CorpusIndex()
    coordinator = JobCoordinator(store, index)
    await coordinator.start()
    app.state.coordinator = coordinator
    try:
        yield
    finally:
        app.state.coordinator = None
        await coordinator.stop()
        index.close()
        await store.close()


# Create the FastAPI application instance
app = FastAPI(
    title="Plagiarism Detection Engine",
    description="Asynchronous plagiarism checks for course submissions: similarity, suspicious patterns and text metrics.",
    version="1.0.0",
    redoc_url="/redoc",
    docs_url="/docs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/health", tags=["Health"])
app.include_router(plagiarism_router, prefix="/api", tags=["Plagiarism"])


# A simple root endpoint to confirm the API is running
@app.get("/")
def read_root():
    return {"message": "Welcome to the Plagiarism Detection Engine!"}
