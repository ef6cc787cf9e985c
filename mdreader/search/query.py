import re

_PHRASE_RE = re.compile(r'"[^"]*"')
_OPERATOR_RE = re.compile(r"\b(and|or|not)\b", re.IGNORECASE)
_EXCLUDE_RE = re.compile(r"(\s)-(\w+)")
_REQUIRE_RE = re.compile(r"(\s)\+(\w+)")

# FTS5 phrase that matches nothing
EMPTY_QUERY = '""'


def _translate_segment(segment: str) -> str:
    segment = _OPERATOR_RE.sub(lambda m: m.group(1).upper(), segment)
    segment = _EXCLUDE_RE.sub(r"\1NOT \2", segment)
    return _REQUIRE_RE.sub(r"\1AND \2", segment)


def translate_query(query: str) -> str:
    """
    Translate a user search string into an FTS5 MATCH expression.

    Quoted phrases pass through verbatim. Outside of them, boolean words are
    upper-cased into FTS5 operators, ``-term`` becomes ``NOT term`` and
    ``+term`` becomes ``AND term``. Prefix wildcards and bare terms are left
    alone.

    Examples:
        >>> translate_query("foo -bar")
        'foo NOT bar'
        >>> translate_query('"exact phrase" or draft')
        '"exact phrase" OR draft'
    """
    if query is None or not query.strip():
        return EMPTY_QUERY

    parts = []
    pos = 0
    for phrase in _PHRASE_RE.finditer(query):
        parts.append(_translate_segment(query[pos : phrase.start()]))
        parts.append(phrase.group(0))
        pos = phrase.end()
    parts.append(_translate_segment(query[pos:]))

    return "".join(parts).strip()
