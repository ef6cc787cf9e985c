"""Request/Response models for the HTTP API (camelCase on the wire)."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(ApiModel):
    message: str


class HealthResponse(ApiModel):
    status: str
    message: str
    version: str


class StatsResponse(ApiModel):
    total_documents: int
    total_words: int
    total_annotations: int
    total_collections: int
    last_indexed_at: Optional[int] = None
    db_size: int
    watch_directory: str
    watching: bool


class FacetCount(ApiModel):
    name: str
    count: int


# Documents
class DocumentSummaryModel(ApiModel):
    path: str
    title: str
    tags: List[str]
    topics: List[str]
    content_type: str
    word_count: int
    modified_at: int


class DocumentModel(DocumentSummaryModel):
    content: str
    raw_content: str
    frontmatter: Dict[str, Any]
    created_at: int
    indexed_at: int


class DocumentListResponse(ApiModel):
    total: int
    limit: int
    offset: int
    documents: List[DocumentSummaryModel]


class DocumentUpdateRequest(ApiModel):
    path: str
    content: str


class DocumentUpdateResponse(ApiModel):
    message: str
    document: DocumentModel


# Search
class SearchResultModel(DocumentSummaryModel):
    snippet: str
    score: float


class SearchResponse(ApiModel):
    query: str
    total: int
    limit: int
    offset: int
    results: List[SearchResultModel]


class ScanSummaryModel(ApiModel):
    scanned: int
    indexed: int
    failed: int
    removed: int
    cancelled: bool


class IndexResponse(ApiModel):
    message: str
    summary: ScanSummaryModel
    stats: StatsResponse


# Annotations
class AnnotationModel(ApiModel):
    id: str
    document_path: str
    selected_text: str
    note: Optional[str] = None
    color: str
    start_offset: int
    end_offset: int
    created_at: int
    updated_at: int


class AnnotationCreateRequest(ApiModel):
    id: Optional[str] = None
    document_path: str
    selected_text: str
    note: Optional[str] = None
    color: Optional[str] = None
    start_offset: int
    end_offset: int


class AnnotationUpdateRequest(ApiModel):
    note: Optional[str] = None
    color: Optional[str] = None


class AnnotationListResponse(ApiModel):
    annotations: List[AnnotationModel]


# Collections
class CollectionModel(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    color: str
    document_count: int
    created_at: int
    updated_at: int


class CollectionCreateRequest(ApiModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    color: Optional[str] = None


class CollectionUpdateRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


class CollectionListResponse(ApiModel):
    collections: List[CollectionModel]


class CollectionDocumentsResponse(ApiModel):
    documents: List[DocumentSummaryModel]


class MembershipRequest(ApiModel):
    document_path: str


class BulkMembershipRequest(ApiModel):
    document_paths: List[str]
    action: Literal["add", "remove"]


class BulkMembershipResponse(ApiModel):
    message: str
    requested: int
    added: Optional[int] = None
    removed: Optional[int] = None


# Configuration
class ConfigResponse(ApiModel):
    watch_directory: str
    upload_directory: str
    extensions: List[str]
    ignore_dirs: List[str]
    debounce_ms: int
    watching: bool
    state: str


class WatchDirectoryRequest(ApiModel):
    directory: str


class WatchDirectoryResponse(ApiModel):
    message: str
    watch_directory: str
    summary: ScanSummaryModel


# Uploads
class UploadResponse(ApiModel):
    message: str
    filename: str
    path: str
    document: DocumentSummaryModel


class MultiUploadResponse(ApiModel):
    message: str
    files: List[str]
    documents: List[DocumentSummaryModel]
