import logging
import time

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from coursetutor.config import (
    EMBEDDING_MODEL,
    LECTURE_QUERY,
    LLM_MODEL,
    MAX_FILE_SIZE_MB,
)
from coursetutor.memory.retriever import retrieve
from coursetutor.memory.store import validate_corpus_id
from coursetutor.models import (
    ChatRequest,
    ContextRequest,
    ContextResponse,
    CorpusInfo,
    DeleteCorpusResponse,
    HealthResponse,
    IngestChunksRequest,
    IngestChunksResponse,
    LectureContextRequest,
    LectureContextResponse,
    MaterialsResponse,
    ProblemContext,
    UploadResponse,
)
from coursetutor.observability.activity import Activity
from coursetutor.services import TutorServices
from coursetutor.streaming import STREAM_HEADERS
from coursetutor.workflow.ingestion import ingest_chunks, ingest_document


logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> TutorServices:
    return request.app.state.services


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


# ============================================================
# HEALTH + METRICS
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(services: TutorServices = Depends(get_services)):

    return HealthResponse(
        status="healthy",
        total_corpora=len(services.store.list_corpora()),
        embedding_model=EMBEDDING_MODEL,
        generation_model=LLM_MODEL,
    )


@router.get("/metrics")
def get_metrics(services: TutorServices = Depends(get_services)):

    return services.metrics.get_metrics()


# ============================================================
# INGEST
# ============================================================

@router.post("/corpora/{corpus_id}/chunks", response_model=IngestChunksResponse)
async def ingest_raw_chunks(
    corpus_id: str,
    payload: IngestChunksRequest,
    request: Request,
    services: TutorServices = Depends(get_services),
):

    validate_corpus_id(corpus_id)

    start_time = time.time()

    stored = await ingest_chunks(
        corpus_id,
        payload.chunks,
        services.embedder,
        services.store,
        source=payload.source,
    )

    services.metrics.record_ingestion(stored)

    services.posthog.track_ingestion(
        distinct_id=_request_id(request),
        corpus_id=corpus_id,
        source=payload.source,
        chunks=stored,
        latency=time.time() - start_time,
    )

    return IngestChunksResponse(corpus_id=corpus_id, chunks_stored=stored)


@router.post("/corpora/{corpus_id}/documents", response_model=UploadResponse)
async def upload_document(
    corpus_id: str,
    request: Request,
    file: UploadFile = File(...),
    services: TutorServices = Depends(get_services),
):

    validate_corpus_id(corpus_id)

    content = await file.read()

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {size_mb:.2f}MB (limit {MAX_FILE_SIZE_MB}MB)",
        )

    filename = file.filename or "document.pdf"

    result = await ingest_document(
        corpus_id,
        filename,
        content,
        services.embedder,
        services.store,
    )

    material = await services.store.save_material(corpus_id, filename, content)

    services.metrics.record_ingestion(result.chunks_stored)

    services.posthog.track_ingestion(
        distinct_id=_request_id(request),
        corpus_id=corpus_id,
        source=filename,
        chunks=result.chunks_stored,
        latency=result.latency_seconds,
    )

    logger.info(
        "Document ingestion complete",
        extra={
            "corpus_id": corpus_id,
            "file_name": filename,
            "chunks_created": result.chunks_created,
            "chunks_stored": result.chunks_stored,
            "size_bytes": material.size_bytes,
        },
    )

    return UploadResponse(
        corpus_id=corpus_id,
        filename=filename,
        chunks_created=result.chunks_stored,
    )


# ============================================================
# QUERY FOR CONTEXT
# ============================================================

@router.post("/corpora/{corpus_id}/context", response_model=ContextResponse)
async def query_context(
    corpus_id: str,
    payload: ContextRequest,
    request: Request,
    services: TutorServices = Depends(get_services),
):

    validate_corpus_id(corpus_id)

    chunks = await retrieve(
        question=payload.query,
        embedder=services.embedder,
        store=services.store,
        corpus_id=corpus_id,
        top_k=payload.top_k,
        min_similarity=payload.min_similarity,
    )

    services.posthog.track_retrieval(
        distinct_id=_request_id(request),
        corpus_id=corpus_id,
        chunks_retrieved=len(chunks),
        min_similarity=payload.min_similarity,
    )

    return ContextResponse(corpus_id=corpus_id, chunks=chunks, count=len(chunks))


@router.post("/lecture-context", response_model=LectureContextResponse)
async def lecture_context(
    payload: LectureContextRequest,
    services: TutorServices = Depends(get_services),
):

    validate_corpus_id(payload.class_id)

    chunks = await services.tutor.lecture_context(
        payload.class_id,
        query=payload.query or LECTURE_QUERY,
    )

    if not chunks:
        return LectureContextResponse(
            context="",
            chunk_count=0,
            message="No lecture notes available or vector store not initialized",
        )

    return LectureContextResponse(
        context="\n\n".join(chunks),
        chunk_count=len(chunks),
    )


# ============================================================
# CORPUS MANAGEMENT
# ============================================================

@router.get("/corpora/{corpus_id}", response_model=CorpusInfo)
async def corpus_info(
    corpus_id: str,
    services: TutorServices = Depends(get_services),
):

    return CorpusInfo(**await services.store.stats(corpus_id))


@router.get("/corpora/{corpus_id}/materials", response_model=MaterialsResponse)
async def list_materials(
    corpus_id: str,
    services: TutorServices = Depends(get_services),
):

    files = await services.store.list_materials(corpus_id)

    return MaterialsResponse(
        corpus_id=corpus_id,
        files=files,
        has_vector_store=await services.store.exists(corpus_id),
        total_files=len(files),
    )


@router.delete("/corpora/{corpus_id}", response_model=DeleteCorpusResponse)
async def delete_corpus(
    corpus_id: str,
    services: TutorServices = Depends(get_services),
):

    await services.store.delete(corpus_id)

    return DeleteCorpusResponse(corpus_id=corpus_id)


# ============================================================
# STREAMED TUTOR CHAT
# ============================================================

@router.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    services: TutorServices = Depends(get_services),
):

    problem = payload.problem_context or ProblemContext()
    query = payload.user_query()

    logger.info(
        "Chat request received",
        extra={"corpus_id": problem.id, "messages": len(payload.messages)},
    )

    services.metrics.record_chat_stream()

    services.posthog.track_chat(
        distinct_id=_request_id(request),
        corpus_id=problem.id,
        question=query,
    )

    return StreamingResponse(
        services.tutor.stream_frames(problem, query),
        media_type="text/event-stream; charset=utf-8",
        headers=STREAM_HEADERS,
    )


# ============================================================
# STUDENT ACTIVITY
# ============================================================

@router.post("/activity")
async def log_activity(
    entry: Activity,
    services: TutorServices = Depends(get_services),
):

    services.activity.log(entry)

    return {"logged": True, "action": entry.action}
