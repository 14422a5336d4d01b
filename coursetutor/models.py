# coursetutor/models.py
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional

from coursetutor.memory.store import MaterialFile


class ProblemContext(BaseModel):
    """The assignment problem a student is chatting about."""
    id: str = "twosum"
    title: str = "Two Sum"
    description: str = "Find two numbers in an array that sum to a target value"


class IngestChunksRequest(BaseModel):
    """Already-extracted text chunks to add to a corpus."""
    chunks: List[str] = Field(..., min_length=1)
    source: Optional[str] = Field(None, max_length=255)

    @field_validator("chunks")
    @classmethod
    def validate_chunks(cls, v):
        """Drop whitespace-only entries; at least one must remain."""
        cleaned = [c for c in v if c and c.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty chunk is required")
        return cleaned


class IngestChunksResponse(BaseModel):
    corpus_id: str
    chunks_stored: int


class UploadResponse(BaseModel):
    """Response after uploading a course document."""
    corpus_id: str
    filename: str
    chunks_created: int
    message: str = "Document uploaded and processed successfully"


class ContextRequest(BaseModel):
    """Query a corpus for grounding context."""
    query: str = Field(..., min_length=1, max_length=2000)
    top_k: int = Field(5, ge=1, le=50)
    min_similarity: float = Field(0.0, ge=-1.0, le=1.0)

    @field_validator("query")
    @classmethod
    def validate_query(cls, v):
        if not v.strip():
            raise ValueError("Query cannot be empty or only whitespace")
        return v.strip()


class ContextResponse(BaseModel):
    corpus_id: str
    chunks: List[str]
    count: int


class LectureContextRequest(BaseModel):
    class_id: str = Field(..., min_length=1)
    query: Optional[str] = None


class LectureContextResponse(BaseModel):
    context: str
    chunk_count: int
    message: Optional[str] = None


class CorpusInfo(BaseModel):
    corpus_id: str
    exists: bool
    chunks: int
    dimension: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MaterialsResponse(BaseModel):
    """Uploaded files kept for a corpus."""
    corpus_id: str
    files: List[MaterialFile]
    has_vector_store: bool
    total_files: int


class DeleteCorpusResponse(BaseModel):
    corpus_id: str
    deleted: bool = True


class ChatRequest(BaseModel):
    """
    Chat turn from the tutoring UI.

    Messages follow the UI message shape: either `parts` with a text part,
    or a plain `text` / `content` field.
    """
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    problem_context: Optional[ProblemContext] = Field(None, alias="problemContext")

    model_config = {"populate_by_name": True}

    def user_query(self) -> str:
        """Text of the last message, or an empty string."""
        if not self.messages:
            return ""

        last = self.messages[-1]

        for part in last.get("parts") or []:
            if part.get("type") == "text":
                return part.get("text") or ""

        return last.get("text") or last.get("content") or ""


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    total_corpora: int
    embedding_model: str
    generation_model: str
