# coursetutor/config.py
"""
Configuration for the course-materials tutoring core.

This file centralizes all tunable parameters for the RAG pipeline.
Deploy-time values can be overridden through environment variables.
"""

import os


# ========== STORAGE ==========

# Root directory for persisted corpora (one JSON blob per corpus)
STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")

# Corpus identifiers double as directory names
CORPUS_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$"


# ========== DOCUMENT PROCESSING ==========

# Chunk configuration (characters, not words)
CHUNK_SIZE = 512
CHUNK_OVERLAP = 50

# Chunks shorter than this are dropped after splitting
MIN_CHUNK_LENGTH = 20

# Separator priority: paragraphs, lines, sentences, words, characters
SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

# Hard ceiling on extracted text per document
MAX_DOCUMENT_CHARACTERS = 500_000

# File upload limits
MAX_FILE_SIZE_MB = 10
ALLOWED_FILE_EXTENSIONS = [".pdf", ".txt", ".md"]


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# Throttling retries for embedding calls (smaller ceiling than generation)
EMBEDDING_MAX_ATTEMPTS = 5


# ========== RETRIEVAL CONFIGURATION ==========

# Chunks handed to the tutor per chat turn
CHAT_TOP_K = 5

# Default for the context query endpoint
TOP_K = 5

# Lecture-context retrieval favors recall over precision
LECTURE_TOP_K = 10
LECTURE_MIN_SIMILARITY = 0.1
LECTURE_QUERY = "programming algorithms data structures problem solving"


# ========== LLM CONFIGURATION ==========

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")

LLM_TEMPERATURE = 0.7
LLM_MAX_TOKENS = 1024

# Per-request deadline enforced by the OpenAI client
LLM_REQUEST_TIMEOUT_SECONDS = float(
    os.getenv("LLM_REQUEST_TIMEOUT_SECONDS", "60")
)

# Throttling retry ceiling for generation requests
GENERATION_MAX_ATTEMPTS = 8

# Exponential backoff with full jitter: uniform(0, min(cap, base * 2^(n-1)))
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 30.0

THROTTLED_HINT = (
    "AI tutor is experiencing high demand. "
    "Please wait 30 seconds and try again."
)


# ========== SERVER ==========

# Used when the app is started with `python -m coursetutor.main`
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))


# ========== OBSERVABILITY ==========

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

METRICS_PATH = os.path.join(STORAGE_DIR, "metrics.json")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. CHUNK_SIZE = 512 characters, CHUNK_OVERLAP = 50:
   - Paragraph-sized chunks keep each embedding focused on one concept
   - Overlap keeps sentences that straddle a boundary retrievable

2. Brute-force cosine scan over a JSON blob per corpus:
   - Trade-off: zero infrastructure, trivially inspectable
   - Limitation: O(corpus) read per query and per append
   - Fine for hundreds to low thousands of chunks per course

3. GENERATION_MAX_ATTEMPTS = 8 with a 30 second cap:
   - Worst case waits stay within a one-minute quota refresh window
   - Full jitter spreads concurrent students across that window

4. Symmetric throttling retry for embeddings:
   - Ingestion of a large PDF is the most likely burst against the quota
   - Non-throttling failures are never retried on either client
"""
