from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_CONTENT_TYPE = "markdown"
DEFAULT_ANNOTATION_COLOR = "yellow"
DEFAULT_COLLECTION_COLOR = "#3b82f6"


@dataclass
class ParsedDocument:
    """Output of the parser: everything except the persisted timestamps."""

    path: str
    title: str
    content: str
    raw_content: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    content_type: str = DEFAULT_CONTENT_TYPE
    word_count: int = 0


@dataclass
class Document:
    path: str
    title: str
    content: str
    raw_content: str
    frontmatter: Dict[str, Any]
    tags: List[str]
    topics: List[str]
    content_type: str
    word_count: int
    created_at: int
    modified_at: int
    indexed_at: int


@dataclass
class DocumentSummary:
    """Document listing row (no content columns)."""

    path: str
    title: str
    tags: List[str]
    topics: List[str]
    content_type: str
    word_count: int
    modified_at: int


@dataclass
class Annotation:
    id: str
    document_path: str
    selected_text: str
    start_offset: int
    end_offset: int
    note: Optional[str] = None
    color: str = DEFAULT_ANNOTATION_COLOR
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


@dataclass
class Collection:
    id: str
    name: str
    description: Optional[str] = None
    color: str = DEFAULT_COLLECTION_COLOR
    document_count: int = 0
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


@dataclass
class SearchFacets:
    """Structural filters applied alongside the full-text match."""

    tags: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    content_type: Optional[str] = None
    date_from: Optional[int] = None
    date_to: Optional[int] = None


@dataclass
class SearchHit:
    path: str
    title: str
    tags: List[str]
    topics: List[str]
    content_type: str
    word_count: int
    modified_at: int
    snippet: str
    score: float


@dataclass
class SearchPage:
    query: str
    total: int
    results: List[SearchHit]
