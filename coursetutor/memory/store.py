# coursetutor/memory/store.py

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coursetutor.config import CORPUS_ID_PATTERN, STORAGE_DIR
from coursetutor.errors import (
    EmbeddingDimensionError,
    InvalidCorpusIdError,
    StoreCorruptedError,
)


logger = logging.getLogger(__name__)

_CORPUS_ID_RE = re.compile(CORPUS_ID_PATTERN)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Chunk(BaseModel):
    """A bounded piece of course material and its embedding."""

    model_config = ConfigDict(frozen=True)

    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CorpusStore(BaseModel):
    """Everything ingested for one corpus (an assignment or a class)."""

    model_config = ConfigDict(populate_by_name=True)

    documents: List[Chunk] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")

    @property
    def dimension(self) -> Optional[int]:
        if not self.documents:
            return None
        return len(self.documents[0].embedding)


class MaterialFile(BaseModel):
    """An uploaded source file kept next to its corpus."""

    filename: str
    size_bytes: int
    uploaded_at: datetime


def material_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied name to a bare file name safe to store."""

    name = os.path.basename((filename or "").replace("\\", "/")).strip()

    if name in ("", ".", "..") or name.startswith("."):
        return "document.pdf"

    return name


def validate_corpus_id(corpus_id: str) -> str:

    if not isinstance(corpus_id, str) or ".." in corpus_id:
        raise InvalidCorpusIdError(str(corpus_id))

    if not _CORPUS_ID_RE.match(corpus_id):
        raise InvalidCorpusIdError(corpus_id)

    return corpus_id


class DocumentStore:
    """
    One JSON blob per corpus on local disk.

    Layout:
        <root>/corpora/<corpus_id>/vectors.json
        <root>/corpora/<corpus_id>/materials/<filename>

    Guarantees:
    • load of an unknown corpus returns None, never raises
    • writes are atomic (temp file + os.replace)
    • mutations of the same corpus are serialized within this process
    • a corpus lock lives only while someone holds or awaits it
    • delete is idempotent and removes uploaded materials too

    Every mutation rewrites the whole blob, so cost grows with corpus size.
    """

    _FILENAME = "vectors.json"
    _MATERIALS_DIR = "materials"

    def __init__(self, root: str = STORAGE_DIR):

        self._root = os.path.join(root, "corpora")
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

        os.makedirs(self._root, exist_ok=True)

        logger.info("DocumentStore initialized", extra={"root": self._root})

    # ============================================================
    # PATHS + LOCKS
    # ============================================================

    def _corpus_dir(self, corpus_id: str) -> str:
        return os.path.join(self._root, validate_corpus_id(corpus_id))

    def _corpus_file(self, corpus_id: str) -> str:
        return os.path.join(self._corpus_dir(corpus_id), self._FILENAME)

    def _materials_dir(self, corpus_id: str) -> str:
        return os.path.join(self._corpus_dir(corpus_id), self._MATERIALS_DIR)

    @asynccontextmanager
    async def _corpus_lock(self, corpus_id: str) -> AsyncIterator[None]:

        lock = self._locks.get(corpus_id)

        if lock is None:
            lock = self._locks[corpus_id] = asyncio.Lock()

        self._lock_users[corpus_id] = self._lock_users.get(corpus_id, 0) + 1

        try:
            async with lock:
                yield

        finally:
            self._lock_users[corpus_id] -= 1

            if self._lock_users[corpus_id] == 0:
                del self._lock_users[corpus_id]
                del self._locks[corpus_id]

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def load(self, corpus_id: str) -> Optional[CorpusStore]:

        path = self._corpus_file(corpus_id)

        return await asyncio.to_thread(self._read, corpus_id, path)

    async def exists(self, corpus_id: str) -> bool:

        path = self._corpus_file(corpus_id)

        return await asyncio.to_thread(os.path.isfile, path)

    async def append(self, corpus_id: str, chunks: Sequence[Chunk]) -> CorpusStore:

        path = self._corpus_file(corpus_id)

        async with self._corpus_lock(corpus_id):

            store = await asyncio.to_thread(self._read, corpus_id, path)

            if store is None:
                store = CorpusStore()
                logger.info("Creating corpus store", extra={"corpus_id": corpus_id})

            expected = store.dimension

            for chunk in chunks:

                if expected is None:
                    expected = len(chunk.embedding)

                if len(chunk.embedding) != expected:
                    raise EmbeddingDimensionError(
                        corpus_id, expected, len(chunk.embedding)
                    )

            store.documents.extend(chunks)
            store.updated_at = _utcnow()

            await asyncio.to_thread(self._write, path, store)

        logger.info(
            "Corpus store updated",
            extra={
                "corpus_id": corpus_id,
                "chunks_appended": len(chunks),
                "total_chunks": len(store.documents),
            },
        )

        return store

    async def delete(self, corpus_id: str) -> None:

        directory = self._corpus_dir(corpus_id)

        async with self._corpus_lock(corpus_id):

            if not os.path.isdir(directory):
                return

            await asyncio.to_thread(shutil.rmtree, directory)

        logger.info("Corpus store deleted", extra={"corpus_id": corpus_id})

    async def save_material(
        self, corpus_id: str, filename: Optional[str], content: bytes
    ) -> MaterialFile:
        """Keep the uploaded file; a re-upload under the same name replaces it."""

        name = material_filename(filename)
        path = os.path.join(self._materials_dir(corpus_id), name)

        async with self._corpus_lock(corpus_id):
            await asyncio.to_thread(self._atomic_write, path, content)

        logger.info(
            "Course material saved",
            extra={"corpus_id": corpus_id, "file_name": name, "size_bytes": len(content)},
        )

        return await asyncio.to_thread(self._describe_material, path)

    async def list_materials(self, corpus_id: str) -> List[MaterialFile]:

        directory = self._materials_dir(corpus_id)

        return await asyncio.to_thread(self._scan_materials, directory)

    async def stats(self, corpus_id: str) -> Dict[str, Any]:

        store = await self.load(corpus_id)

        if store is None:
            return {
                "corpus_id": corpus_id,
                "exists": False,
                "chunks": 0,
                "dimension": None,
                "created_at": None,
                "updated_at": None,
            }

        return {
            "corpus_id": corpus_id,
            "exists": True,
            "chunks": len(store.documents),
            "dimension": store.dimension,
            "created_at": store.created_at.isoformat(),
            "updated_at": store.updated_at.isoformat(),
        }

    def list_corpora(self) -> List[str]:

        if not os.path.isdir(self._root):
            return []

        return sorted(
            name for name in os.listdir(self._root)
            if os.path.isfile(os.path.join(self._root, name, self._FILENAME))
        )

    # ============================================================
    # DISK I/O (runs in worker threads)
    # ============================================================

    def _read(self, corpus_id: str, path: str) -> Optional[CorpusStore]:

        if not os.path.isfile(path):
            return None

        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()

        try:
            return CorpusStore.model_validate_json(raw)

        except (ValidationError, json.JSONDecodeError) as e:

            logger.error(
                "Corpus store is corrupted",
                extra={"corpus_id": corpus_id, "path": path, "error": str(e)},
            )

            raise StoreCorruptedError(
                f"Corpus store for {corpus_id} could not be parsed",
                {"corpus_id": corpus_id, "path": path},
            ) from e

    def _write(self, path: str, store: CorpusStore) -> None:

        data = store.model_dump_json(by_alias=True, indent=2).encode("utf-8")

        self._atomic_write(path, data)

    def _atomic_write(self, path: str, data: bytes) -> None:

        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, path)

        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _describe_material(self, path: str) -> MaterialFile:

        info = os.stat(path)

        return MaterialFile(
            filename=os.path.basename(path),
            size_bytes=info.st_size,
            uploaded_at=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
        )

    def _scan_materials(self, directory: str) -> List[MaterialFile]:

        if not os.path.isdir(directory):
            return []

        # Dotfiles are in-flight temp writes
        return [
            self._describe_material(os.path.join(directory, name))
            for name in sorted(os.listdir(directory))
            if not name.startswith(".")
            and os.path.isfile(os.path.join(directory, name))
        ]
