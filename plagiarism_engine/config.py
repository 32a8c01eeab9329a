import os
from dotenv import load_dotenv

# Load environment variables from a .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- HTTP ---
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

# --- Database (optional: job records live in memory when unset) ---
MONGODB_URI = os.getenv("MONGODB_URI", "")
MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "plagiarism_detector")

# --- Fingerprinting ---
SHINGLE_SIZE = int(os.getenv("SHINGLE_SIZE", "5"))
NUM_HASHES = int(os.getenv("NUM_HASHES", "64"))
BAND_WIDTH = int(os.getenv("BAND_WIDTH", "4"))
MINHASH_SEED = int(os.getenv("MINHASH_SEED", "1337"))

# --- Similarity ---
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "15.0"))  # percent
SCORE_MODE = os.getenv("SCORE_MODE", "max")  # "max" or "weighted"
CORPUS_SCOPE = os.getenv("CORPUS_SCOPE", "assignment")  # "assignment", "course" or "global"
EXCLUDE_SAME_STUDENT = _env_bool("EXCLUDE_SAME_STUDENT", True)

# --- Pattern detection ---
RARITY_THRESHOLD = float(os.getenv("RARITY_THRESHOLD", "0.05"))
MIN_CORPUS_DOCUMENTS = int(os.getenv("MIN_CORPUS_DOCUMENTS", "5"))
LONG_WORD_LENGTH = int(os.getenv("LONG_WORD_LENGTH", "13"))
VOCABULARY_CLUSTER_DENSITY = float(os.getenv("VOCABULARY_CLUSTER_DENSITY", "0.3"))
REPETITION_THRESHOLD = float(os.getenv("REPETITION_THRESHOLD", "0.8"))
MIN_SENTENCE_WORDS = int(os.getenv("MIN_SENTENCE_WORDS", "3"))
STYLE_WINDOW = int(os.getenv("STYLE_WINDOW", "5"))
STYLE_Z_THRESHOLD = float(os.getenv("STYLE_Z_THRESHOLD", "2.5"))
COMMON_PHRASE_CONFIDENCE = float(os.getenv("COMMON_PHRASE_CONFIDENCE", "0.9"))
MIN_PATTERN_CONFIDENCE = float(os.getenv("MIN_PATTERN_CONFIDENCE", "0.5"))

_DEFAULT_COMMON_PHRASES = (
    "according to research",
    "studies have shown",
    "it is widely accepted",
    "research indicates",
    "scholars argue",
    "evidence suggests",
    "it can be concluded",
    "in today's society",
    "since the dawn of time",
    "throughout history",
    "at the end of the day",
    "in this day and age",
)
COMMON_PHRASES = tuple(
    p.strip().lower()
    for p in os.getenv("COMMON_PHRASES", ",".join(_DEFAULT_COMMON_PHRASES)).split(",")
    if p.strip()
)

# --- Jobs ---
JOB_TIMEOUT_SECONDS = float(os.getenv("JOB_TIMEOUT_SECONDS", "60"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))
WORKER_COUNT = int(os.getenv("WORKER_COUNT", "4"))
QUEUE_MAXSIZE = int(os.getenv("QUEUE_MAXSIZE", "100"))
