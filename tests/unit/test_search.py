import pytest

from mdreader.errors import InvalidInputError
from mdreader.search.fts import SearchService


@pytest.fixture
def service(manager):
    return SearchService(manager)


def note(tags, body="Shared language notes about compilers."):
    return f"---\ntitle: Notes\ntags: [{', '.join(tags)}]\n---\n{body}\n"


class TestFacets:
    @pytest.fixture(autouse=True)
    def _docs(self, add_doc):
        # Same number of tags everywhere so the bm25 scores tie exactly
        add_doc("a.md", note(["go", "alpha"]), modified_at=1_000)
        add_doc("b.md", note(["go", "rust"]), modified_at=2_000)
        add_doc("c.md", note(["rust", "gamma"]), modified_at=3_000)

    def test_single_tag(self, service):
        page = service.search("language", tags=["go"])
        assert page.total == 2
        # Equal relevance falls back to most recently modified first
        assert [hit.path for hit in page.results] == ["b.md", "a.md"]

    def test_tags_are_anded(self, service):
        page = service.search("language", tags=["go", "rust"])
        assert [hit.path for hit in page.results] == ["b.md"]

    def test_tag_filter_is_case_insensitive(self, service):
        page = service.search("language", tags=["#Rust"])
        assert {hit.path for hit in page.results} == {"b.md", "c.md"}

    def test_no_filters(self, service):
        page = service.search("language")
        assert [hit.path for hit in page.results] == ["c.md", "b.md", "a.md"]

    def test_date_range_is_inclusive(self, service):
        page = service.search("language", date_from=2_000, date_to=3_000)
        assert [hit.path for hit in page.results] == ["c.md", "b.md"]

    def test_paging_keeps_total(self, service):
        page = service.search("language", limit=1, offset=1)
        assert page.total == 3
        assert [hit.path for hit in page.results] == ["b.md"]

    def test_offset_past_end(self, service):
        page = service.search("language", offset=10)
        assert page.total == 3
        assert page.results == []


def test_tag_match_is_exact(service, add_doc):
    add_doc("java.md", note(["java"]))
    add_doc("js.md", note(["javascript"]))
    page = service.search("language", tags=["java"])
    assert [hit.path for hit in page.results] == ["java.md"]


def test_topic_filter(service, add_doc):
    add_doc("web.md", "# Web\n\nA react frontend for the language server.\n")
    add_doc("plain.md", "# Plain\n\nA language without frameworks.\n")
    page = service.search("language", topics=["react"])
    assert [hit.path for hit in page.results] == ["web.md"]


def test_content_type_filter(service, add_doc):
    add_doc("guide.md", "---\ncontentType: guide\n---\nlanguage guide\n")
    add_doc("other.md", "language other\n")
    page = service.search("language", content_type="guide")
    assert [hit.path for hit in page.results] == ["guide.md"]


def test_title_outranks_body(service, add_doc):
    add_doc("body.md", "# Something\n\nThis mentions kubernetes once among many other words here.\n")
    add_doc("title.md", "# Kubernetes\n\nUnrelated words only in this body text.\n")
    page = service.search("kubernetes")
    assert page.results[0].path == "title.md"


def test_snippet_highlights_match(service, add_doc):
    add_doc("s.md", "# Title\n\nThe quick brown fox jumps.\n")
    hit = service.search("fox").results[0]
    assert "<mark>fox</mark>" in hit.snippet
    assert hit.title == "Title"


def test_operators(service, add_doc):
    add_doc("both.md", "cats and dogs\n")
    add_doc("cats.md", "only cats\n")
    assert {h.path for h in service.search("cats -dogs").results} == {"cats.md"}
    assert {h.path for h in service.search("cats +dogs").results} == {"both.md"}
    assert {h.path for h in service.search("dogs OR only").results} == {"both.md", "cats.md"}


def test_prefix_and_phrase(service, add_doc):
    add_doc("r.md", "reactive programming notes\n")
    assert service.search("react*").total == 1
    assert service.search('"programming notes"').total == 1
    assert service.search('"notes programming"').total == 0


def test_no_match(service, add_doc):
    add_doc("a.md", "hello world\n")
    page = service.search("absent")
    assert page.total == 0
    assert page.results == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"query": ""},
        {"query": "   "},
        {"query": "x", "limit": 0},
        {"query": "x", "offset": -1},
        {"query": "x", "date_from": 5, "date_to": 4},
    ],
)
def test_invalid_arguments(service, kwargs):
    with pytest.raises(InvalidInputError):
        service.search(**kwargs)


def test_malformed_query(service, add_doc):
    add_doc("a.md", "hello\n")
    with pytest.raises(InvalidInputError):
        service.search('"unterminated')
