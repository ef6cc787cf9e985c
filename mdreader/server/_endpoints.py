"""API endpoints for the mdreader server."""

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from mdreader import __version__
from mdreader.errors import InvalidInputError, NotFoundError
from mdreader.models.document import Annotation, Collection
from mdreader.server._state import ServerState, get_state
from mdreader.server.models import (
    AnnotationCreateRequest,
    AnnotationListResponse,
    AnnotationModel,
    AnnotationUpdateRequest,
    BulkMembershipRequest,
    BulkMembershipResponse,
    CollectionCreateRequest,
    CollectionDocumentsResponse,
    CollectionListResponse,
    CollectionModel,
    CollectionUpdateRequest,
    ConfigResponse,
    DocumentListResponse,
    DocumentModel,
    DocumentUpdateRequest,
    DocumentUpdateResponse,
    FacetCount,
    HealthResponse,
    IndexResponse,
    MembershipRequest,
    MessageResponse,
    MultiUploadResponse,
    SearchResponse,
    StatsResponse,
    UploadResponse,
    WatchDirectoryRequest,
    WatchDirectoryResponse,
)
from mdreader.utils import to_relative_path

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_EXTENSIONS = (".md",)


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _require_param(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InvalidInputError(f"{name} query parameter is required")
    return value


def _stats(state: ServerState) -> StatsResponse:
    stats = state.db.get_stats()
    return StatsResponse(
        total_documents=stats["documents"],
        total_words=stats["total_words"],
        total_annotations=stats["annotations"],
        total_collections=stats["collections"],
        last_indexed_at=stats["last_indexed_at"],
        db_size=stats["db_size"],
        watch_directory=state.config.watch_directory,
        watching=state.coordinator.is_watching,
    )


def _config_response(state: ServerState) -> ConfigResponse:
    return ConfigResponse(
        watch_directory=state.config.watch_directory,
        upload_directory=str(state.config.upload_directory()),
        extensions=state.config.watch.extensions,
        ignore_dirs=state.config.watch.ignore_dirs,
        debounce_ms=state.config.watch.debounce_ms,
        watching=state.coordinator.is_watching,
        state=state.coordinator.state.value,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", message="Markdown Reader API is running", version=__version__)


@router.get("/stats", response_model=StatsResponse)
def stats(state: ServerState = Depends(get_state)):
    return _stats(state)


@router.get("/tags", response_model=List[FacetCount])
def tags(state: ServerState = Depends(get_state)):
    return state.db.tag_counts()


@router.get("/topics", response_model=List[FacetCount])
def topics(state: ServerState = Depends(get_state)):
    return state.db.topic_counts()


@router.get("/search", response_model=SearchResponse)
def search(
    q: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    tags: Optional[str] = None,
    topics: Optional[str] = None,
    content_type: Optional[str] = Query(None, alias="contentType"),
    date_from: Optional[int] = Query(None, alias="dateFrom"),
    date_to: Optional[int] = Query(None, alias="dateTo"),
    state: ServerState = Depends(get_state),
):
    if q is None or not q.strip():
        raise InvalidInputError('Query parameter "q" is required')
    limit = state.config.search.default_limit if limit is None else limit

    page = state.search.search(
        q,
        tags=_split_csv(tags),
        topics=_split_csv(topics),
        content_type=content_type,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return SearchResponse(
        query=page.query,
        total=page.total,
        limit=limit,
        offset=offset,
        results=page.results,
    )


@router.post("/index", response_model=IndexResponse)
def reindex(state: ServerState = Depends(get_state)):
    summary = state.coordinator.index_existing_files()
    return IndexResponse(message="Indexing complete", summary=summary, stats=_stats(state))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.get("/documents", response_model=DocumentListResponse)
def list_documents(limit: int = 100, offset: int = 0, state: ServerState = Depends(get_state)):
    if limit < 1 or offset < 0:
        raise InvalidInputError("limit must be positive and offset must not be negative")
    documents = state.db.list_documents(limit=limit, offset=offset)
    total = state.db.get_stats()["documents"]
    return DocumentListResponse(total=total, limit=limit, offset=offset, documents=documents)


@router.get("/document", response_model=DocumentModel)
def get_document(path: Optional[str] = None, state: ServerState = Depends(get_state)):
    path = _require_param(path, "path")
    document = state.db.get_document(path)
    if document is None:
        raise NotFoundError(f"Document not found: {path}")
    return document


@router.put("/document", response_model=DocumentUpdateResponse)
def update_document(request: DocumentUpdateRequest, state: ServerState = Depends(get_state)):
    if not request.path.strip():
        raise InvalidInputError("path is required")
    document = state.coordinator.write_file(request.path, request.content, must_exist=True)
    return DocumentUpdateResponse(message="Document saved successfully", document=document)


@router.delete("/document", response_model=MessageResponse)
def delete_document(path: Optional[str] = None, state: ServerState = Depends(get_state)):
    path = _require_param(path, "path")
    if not state.coordinator.remove_file(path):
        raise NotFoundError(f"Document not found: {path}")
    return MessageResponse(message=f"Document removed from index: {path}")


@router.get("/documents/collections", response_model=CollectionListResponse)
def document_collections(
    document_path: Optional[str] = Query(None, alias="documentPath"),
    state: ServerState = Depends(get_state),
):
    document_path = _require_param(document_path, "documentPath")
    return CollectionListResponse(collections=state.db.get_document_collections(document_path))


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


@router.get("/annotations", response_model=AnnotationListResponse)
def list_annotations(
    document_path: Optional[str] = Query(None, alias="documentPath"),
    state: ServerState = Depends(get_state),
):
    document_path = _require_param(document_path, "documentPath")
    return AnnotationListResponse(annotations=state.db.list_annotations(document_path))


@router.post("/annotations", response_model=AnnotationModel, status_code=201)
def create_annotation(request: AnnotationCreateRequest, state: ServerState = Depends(get_state)):
    annotation = Annotation(
        id=request.id or uuid.uuid4().hex,
        document_path=request.document_path,
        selected_text=request.selected_text,
        note=request.note,
        color=request.color,
        start_offset=request.start_offset,
        end_offset=request.end_offset,
    )
    return state.db.create_annotation(annotation)


@router.get("/annotations/{annotation_id}", response_model=AnnotationModel)
def get_annotation(annotation_id: str, state: ServerState = Depends(get_state)):
    annotation = state.db.get_annotation(annotation_id)
    if annotation is None:
        raise NotFoundError(f"Annotation not found: {annotation_id}")
    return annotation


@router.put("/annotations/{annotation_id}", response_model=AnnotationModel)
def update_annotation(
    annotation_id: str,
    request: AnnotationUpdateRequest,
    state: ServerState = Depends(get_state),
):
    return state.db.update_annotation(annotation_id, note=request.note, color=request.color)


@router.delete("/annotations/{annotation_id}", response_model=MessageResponse)
def delete_annotation(annotation_id: str, state: ServerState = Depends(get_state)):
    state.db.delete_annotation(annotation_id)
    return MessageResponse(message=f"Annotation deleted: {annotation_id}")


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


@router.get("/collections", response_model=CollectionListResponse)
def list_collections(state: ServerState = Depends(get_state)):
    return CollectionListResponse(collections=state.db.list_collections())


@router.post("/collections", response_model=CollectionModel, status_code=201)
def create_collection(request: CollectionCreateRequest, state: ServerState = Depends(get_state)):
    collection = Collection(
        id=request.id or uuid.uuid4().hex,
        name=request.name,
        description=request.description,
        color=request.color,
    )
    return state.db.create_collection(collection)


@router.get("/collections/{collection_id}", response_model=CollectionModel)
def get_collection(collection_id: str, state: ServerState = Depends(get_state)):
    collection = state.db.get_collection(collection_id)
    if collection is None:
        raise NotFoundError(f"Collection not found: {collection_id}")
    return collection


@router.put("/collections/{collection_id}", response_model=CollectionModel)
def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    state: ServerState = Depends(get_state),
):
    return state.db.update_collection(
        collection_id,
        name=request.name,
        description=request.description,
        color=request.color,
    )


@router.delete("/collections/{collection_id}", response_model=MessageResponse)
def delete_collection(collection_id: str, state: ServerState = Depends(get_state)):
    state.db.delete_collection(collection_id)
    return MessageResponse(message=f"Collection deleted: {collection_id}")


@router.get("/collections/{collection_id}/documents", response_model=CollectionDocumentsResponse)
def collection_documents(
    collection_id: str,
    limit: int = 100,
    offset: int = 0,
    state: ServerState = Depends(get_state),
):
    if state.db.get_collection(collection_id) is None:
        raise NotFoundError(f"Collection not found: {collection_id}")
    documents = state.db.get_collection_documents(collection_id, limit=limit, offset=offset)
    return CollectionDocumentsResponse(documents=documents)


@router.post("/collections/{collection_id}/documents", response_model=MessageResponse)
def add_collection_document(
    collection_id: str,
    request: MembershipRequest,
    state: ServerState = Depends(get_state),
):
    state.db.add_document_to_collection(request.document_path, collection_id)
    return MessageResponse(message="Document added to collection")


@router.delete("/collections/{collection_id}/documents", response_model=MessageResponse)
def remove_collection_document(
    collection_id: str,
    document_path: Optional[str] = Query(None, alias="documentPath"),
    state: ServerState = Depends(get_state),
):
    document_path = _require_param(document_path, "documentPath")
    state.db.remove_document_from_collection(document_path, collection_id)
    return MessageResponse(message="Document removed from collection")


@router.post("/collections/{collection_id}/documents/bulk", response_model=BulkMembershipResponse)
def bulk_collection_documents(
    collection_id: str,
    request: BulkMembershipRequest,
    state: ServerState = Depends(get_state),
):
    if not request.document_paths:
        raise InvalidInputError("documentPaths array is required")
    if request.action == "add":
        result = state.db.add_documents_to_collection(request.document_paths, collection_id)
        return BulkMembershipResponse(
            message=f"{result['added']} documents added to collection",
            requested=result["requested"],
            added=result["added"],
        )
    if state.db.get_collection(collection_id) is None:
        raise NotFoundError(f"Collection not found: {collection_id}")
    result = state.db.remove_documents_from_collection(request.document_paths, collection_id)
    return BulkMembershipResponse(
        message=f"{result['removed']} documents removed from collection",
        requested=result["requested"],
        removed=result["removed"],
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@router.get("/config", response_model=ConfigResponse)
def get_config(state: ServerState = Depends(get_state)):
    return _config_response(state)


@router.post("/config/watch-directory", response_model=WatchDirectoryResponse)
def set_watch_directory(request: WatchDirectoryRequest, state: ServerState = Depends(get_state)):
    if not request.directory.strip():
        raise InvalidInputError("directory is required")
    summary = state.coordinator.reconfigure(request.directory)
    if state.config_path is not None:
        state.config.save(state.config_path)
    return WatchDirectoryResponse(
        message="Watch directory updated",
        watch_directory=state.config.watch_directory,
        summary=summary,
    )


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def _upload_target(state: ServerState, filename: Optional[str]) -> str:
    """Document key an uploaded file is stored under."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    if not name:
        raise InvalidInputError("No file uploaded")
    if PurePosixPath(name).suffix.lower() not in UPLOAD_EXTENSIONS:
        raise InvalidInputError(f"Only .md files are allowed: {name}")
    upload_dir = Path(state.config.upload_directory())
    rel_dir = to_relative_path(state.coordinator.root, upload_dir)
    if rel_dir is None:
        raise InvalidInputError("Upload directory must be inside the watch directory")
    return name if rel_dir in ("", ".") else f"{rel_dir}/{name}"


async def _store_upload(state: ServerState, upload: UploadFile):
    rel_path = _upload_target(state, upload.filename)
    data = await upload.read()
    document = await run_in_threadpool(state.coordinator.write_file, rel_path, data, False)
    logger.info(f"Uploaded {upload.filename} -> {rel_path}")
    return rel_path, document


@router.post("/upload", response_model=UploadResponse)
async def upload_file(file: UploadFile = File(...), state: ServerState = Depends(get_state)):
    rel_path, document = await _store_upload(state, file)
    return UploadResponse(
        message="File uploaded and indexed successfully",
        filename=PurePosixPath(rel_path).name,
        path=rel_path,
        document=document,
    )


@router.post("/upload/multiple", response_model=MultiUploadResponse)
async def upload_files(files: List[UploadFile] = File(...), state: ServerState = Depends(get_state)):
    # Validate every name before anything is written
    for upload in files:
        _upload_target(state, upload.filename)

    stored = [await _store_upload(state, upload) for upload in files]
    return MultiUploadResponse(
        message=f"{len(stored)} files uploaded and indexed",
        files=[rel_path for rel_path, _ in stored],
        documents=[document for _, document in stored],
    )
