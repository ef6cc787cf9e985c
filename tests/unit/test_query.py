import pytest

from mdreader.search.query import EMPTY_QUERY, translate_query


@pytest.mark.parametrize(
    "query, expected",
    [
        ("foo -bar", "foo NOT bar"),
        ("foo +bar", "foo AND bar"),
        ('"exact phrase"', '"exact phrase"'),
        ("cats and dogs or NOT birds", "cats AND dogs OR NOT birds"),
        ("react*", "react*"),
        ("android notes", "android notes"),
        ("  padded  ", "padded"),
    ],
)
def test_translate(query, expected):
    assert translate_query(query) == expected


def test_phrases_are_left_untouched():
    assert translate_query('"a -b and c" -d') == '"a -b and c" NOT d'


def test_operators_between_phrases():
    assert translate_query('"one" or "two"') == '"one" OR "two"'


@pytest.mark.parametrize("query", ["", "   ", "\t\n", None])
def test_blank_query_matches_nothing(query):
    assert translate_query(query) == EMPTY_QUERY == '""'
