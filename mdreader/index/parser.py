"""
Markdown document parser.

Pure function from (relative path, raw bytes) to a ParsedDocument. No I/O and
no shared state: identical bytes always produce an identical record.
"""

import json
import logging
import re
from collections import Counter
from pathlib import PurePosixPath
from typing import Any, Dict, List, Tuple

import yaml

from ..models.document import DEFAULT_CONTENT_TYPE, ParsedDocument

logger = logging.getLogger(__name__)

_FRONTMATTER_OPEN = re.compile(r"\A---[ \t]*\r?\n")
_FRONTMATTER_CLOSE = re.compile(r"^(?:---|\.\.\.)[ \t]*$", re.MULTILINE)

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]*`")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_HEADING_MARK_RE = re.compile(r"^#{1,6}[ \t]+", re.MULTILINE)
_BOLD_RE = re.compile(r"(\*\*|__)(.*?)\1")
_ITALIC_RE = re.compile(r"(\*|_)(.*?)\1")
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_HR_RE = re.compile(r"^(?:-{3,}|\*{3,})$", re.MULTILINE)
_BLANK_LINES_RE = re.compile(r"\n\s*\n")

_TITLE_HEADING_RE = re.compile(r"^#[ \t]+(.*\S)[ \t]*$", re.MULTILINE)
_HASHTAG_RE = re.compile(r"(?<![\w#/&])#(\w+)")
_TERM_RE = re.compile(r"[a-z][a-z0-9]+")

TECH_PATTERNS = {
    "angular": re.compile(r"\bangular\b|@component|ngmodule", re.IGNORECASE),
    "react": re.compile(r"\breact\b|jsx|usestate|useeffect", re.IGNORECASE),
    "vue": re.compile(r"\bvue\b|vue\.js", re.IGNORECASE),
    "node": re.compile(r"\bnode\.js\b|\bexpress\b", re.IGNORECASE),
    "typescript": re.compile(r"\btypescript\b|\.ts\b", re.IGNORECASE),
    "javascript": re.compile(r"\bjavascript\b|\.js\b", re.IGNORECASE),
    "python": re.compile(r"\bpython\b|\.py\b", re.IGNORECASE),
    "database": re.compile(r"\bsql\b|database|postgres|mongodb", re.IGNORECASE),
    "api": re.compile(r"\bapi\b|\brest\b|graphql|\bendpoints?\b", re.IGNORECASE),
    "docker": re.compile(r"\bdocker\b|container", re.IGNORECASE),
    "git": re.compile(r"\bgit\b|github|gitlab", re.IGNORECASE),
}

STOPWORDS = frozenset(
    """
    about above after again against also because been before being below
    between both could does doing down during each from further have having
    here into itself just more most must only other over same should some
    such than that their them then there these they this those through under
    until very were what when where which while will with would your yours
    """.split()
)

MAX_TITLE_CHARS = 100
FREQUENT_TERM_MIN_COUNT = 3
FREQUENT_TERM_LIMIT = 5


def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Split a leading YAML frontmatter block from the body.

    Malformed metadata is not an error: the whole text becomes the body and
    the metadata is empty.
    """
    opening = _FRONTMATTER_OPEN.match(text)
    if not opening:
        return {}, text

    closing = _FRONTMATTER_CLOSE.search(text, opening.end())
    if not closing:
        logger.debug("Unterminated frontmatter block, treating file as body")
        return {}, text

    block = text[opening.end() : closing.start()]
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        logger.debug(f"Malformed frontmatter, treating file as body: {e}")
        return {}, text

    if data is None:
        data = {}
    if not isinstance(data, dict):
        logger.debug("Frontmatter is not a mapping, treating file as body")
        return {}, text

    body = text[closing.end() :]
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]

    # Round-trip through JSON so dates and other YAML scalars become plain values
    data = json.loads(json.dumps(data, default=str))
    return data, body


def _strip_code(markdown: str) -> str:
    text = _CODE_BLOCK_RE.sub("", markdown)
    return _INLINE_CODE_RE.sub("", text)


def strip_markdown(markdown: str) -> str:
    """Reduce markdown to the plain text used for search and word counts."""
    text = _strip_code(markdown)
    text = _IMAGE_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _HEADING_MARK_RE.sub("", text)
    text = _BOLD_RE.sub(r"\2", text)
    text = _ITALIC_RE.sub(r"\2", text)
    text = _HTML_TAG_RE.sub("", text)
    text = _HR_RE.sub("", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def extract_title(body: str, frontmatter: Dict[str, Any], path: str) -> str:
    title = frontmatter.get("title")
    if title is not None and str(title).strip():
        return str(title).strip()

    heading = _TITLE_HEADING_RE.search(_strip_code(body))
    if heading:
        return heading.group(1).strip()

    for line in body.splitlines():
        line = line.strip()
        if line:
            return line[:MAX_TITLE_CHARS].strip()

    return PurePosixPath(path).stem or "Untitled"


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def extract_tags(body: str, frontmatter: Dict[str, Any]) -> List[str]:
    tags = {t.lstrip("#").lower() for t in _as_list(frontmatter.get("tags"))}
    for match in _HASHTAG_RE.finditer(_strip_code(body)):
        tag = match.group(1)
        if not tag.isdigit():
            tags.add(tag.lower())
    tags.discard("")
    return sorted(tags)


def detect_technologies(text: str) -> List[str]:
    return [tech for tech, pattern in TECH_PATTERNS.items() if pattern.search(text)]


def frequent_terms(text: str) -> List[str]:
    """Most frequent significant terms of a single document."""
    counts = Counter(
        term
        for term in _TERM_RE.findall(text.lower())
        if len(term) > 3 and term not in STOPWORDS
    )
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [term for term, count in ranked[:FREQUENT_TERM_LIMIT] if count >= FREQUENT_TERM_MIN_COUNT]


def extract_topics(plain_text: str, frontmatter: Dict[str, Any]) -> List[str]:
    topics = {t.lower() for t in _as_list(frontmatter.get("topics"))}
    topics.update(frequent_terms(plain_text))
    topics.update(detect_technologies(plain_text))
    return sorted(topics)


def extract_content_type(frontmatter: Dict[str, Any]) -> str:
    for key in ("contentType", "content_type"):
        value = frontmatter.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return DEFAULT_CONTENT_TYPE


def decode_bytes(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    if text.startswith("\ufeff"):
        text = text[1:]
    return text


def parse_document(path: str, data: bytes) -> ParsedDocument:
    """
    Parse raw file bytes into a ParsedDocument.

    Args:
        path: document key, relative to the watch root
        data: raw file bytes
    """
    raw = decode_bytes(data)
    frontmatter, body = split_frontmatter(raw)
    plain = strip_markdown(body)

    return ParsedDocument(
        path=path,
        title=extract_title(body, frontmatter, path),
        content=plain,
        raw_content=raw,
        frontmatter=frontmatter,
        tags=extract_tags(body, frontmatter),
        topics=extract_topics(plain, frontmatter),
        content_type=extract_content_type(frontmatter),
        word_count=len(plain.split()),
    )
